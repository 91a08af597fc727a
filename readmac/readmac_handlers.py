"""
Handlers for the extension triggers.

Each handler is called by the reader with the stream positioned just past its
trigger and returns one expression. Handlers only build expressions; the
forms they emit (`make-vector`, `make-map`, `map-put`, `lambda`,
`access-field`, `access-index`) are ordinary calls the evaluator understands,
so printing a result and reading it back with the standard reader gives the
same program.

The `reader` argument is any object providing:
  read(stream)                  -> one expression (raises at end of input)
  read_delimited(stream, closer, loc) -> list of expressions up to closer;
                                   loc is where the literal opened
  read_token(stream)            -> raw token text
  is_closer(ch)                 -> whether ch closes a list
"""

from typing import Any, List, Optional

from readmac.readmac_datatypes import (
    Symbol, Keyword, PathSegment, PATH_SEPARATORS, DEFAULT_MAP_TEST
)
from readmac.readmac_errors import (
    MalformedLiteralError, UnterminatedStringError, InvalidIndexError, InvalidPathError
)

QUOTE = Symbol("quote")
LIST = Symbol("list")
LAMBDA = Symbol("lambda")
OPTIONAL = Symbol("&optional")
DECLARE = Symbol("declare")
IGNORABLE = Symbol("ignorable")
MAKE_VECTOR = Symbol("make-vector")
MAKE_MAP = Symbol("make-map")
MAP_PUT = Symbol("map-put")
ACCESS_FIELD = Symbol("access-field")
ACCESS_INDEX = Symbol("access-index")

# Positional placeholders bound by `#`(...)` and `^(...)`
FIRST_ARG = Symbol("%")
SECOND_ARG = Symbol("%%")

RAW_STRING_TERMINATOR = ("/", "#")


def _trigger_text(key) -> str:
    return "".join(key) if isinstance(key, tuple) else key


def _expect_open(stream, key) -> None:
    line, col = stream.loc
    ch = stream.read_char()
    if ch != "(":
        found = repr(ch) if ch else "end of input"
        raise MalformedLiteralError(
            f"{_trigger_text(key)} must be followed by '(', found {found}", line, col
        )


# =================================================================
# Aggregate literals
# =================================================================

def read_vector(reader, stream, key, loc=None) -> List[Any]:
    """#v(a b c) -> (make-vector 3 (list a b c))"""
    loc = loc or stream.loc
    _expect_open(stream, key)
    items = reader.read_delimited(stream, ")", loc)
    return [MAKE_VECTOR, len(items), [LIST] + items]


def _test_name(spec: Any) -> Optional[str]:
    if isinstance(spec, Symbol):
        return spec.text
    # Also accept a quoted symbol: 'equal
    if (isinstance(spec, list) and len(spec) == 2 and spec[0] == QUOTE
            and isinstance(spec[1], Symbol)):
        return spec[1].text
    return None


def build_map(items: List[Any], size_hint: bool, line: int, col: int, label: str) -> List[Any]:
    """Fold a raw element list into a map constructor.

    An odd count means the first element names the equality test. Pairs are
    inserted in source order so a later duplicate key overwrites an earlier one.
    """
    if len(items) % 2 == 1:
        spec, pairs = items[0], items[1:]
        test = _test_name(spec)
        if test is None:
            shown = f":{spec.text}" if isinstance(spec, Keyword) else repr(spec)
            raise MalformedLiteralError(
                f"{label} has an odd number of elements and {shown} is not an equality test name",
                line, col,
            )
    else:
        test, pairs = DEFAULT_MAP_TEST, items
    if len(pairs) % 2 != 0:
        raise MalformedLiteralError(f"{label} has an unpaired key", line, col)

    ctor: List[Any] = [MAKE_MAP, [QUOTE, Symbol(test)]]
    if size_hint:
        ctor.append(len(pairs) // 2)
    expr = ctor
    for i in range(0, len(pairs), 2):
        expr = [MAP_PUT, expr, pairs[i], pairs[i + 1]]
    return expr


def read_map(reader, stream, key, loc=None) -> List[Any]:
    """#h([test] k v ...) -> a growable map."""
    loc = loc or stream.loc
    line, col = loc
    _expect_open(stream, key)
    items = reader.read_delimited(stream, ")", loc)
    return build_map(items, False, line, col, f"{_trigger_text(key)}(...)")


def read_fixed_map(reader, stream, key, loc=None) -> List[Any]:
    """{[test] k v ...} -> a map sized for its pairs."""
    loc = loc or stream.loc
    line, col = loc
    items = reader.read_delimited(stream, "}", loc)
    return build_map(items, True, line, col, "{...}")


# =================================================================
# Positional lambda
# =================================================================

def read_positional_lambda(reader, stream, key) -> List[Any]:
    """^(+ % %%) -> (lambda (&optional % %%) (declare (ignorable % %%)) (+ % %%))

    A form whose first element is itself a list is taken as a sequence of
    body forms, e.g. ^((print %) (* % 2)).
    """
    form = reader.read(stream)
    if isinstance(form, list) and form and isinstance(form[0], list):
        body = list(form)
    else:
        body = [form]
    return [
        LAMBDA,
        [OPTIONAL, FIRST_ARG, SECOND_ARG],
        [DECLARE, [IGNORABLE, FIRST_ARG, SECOND_ARG]],
    ] + body


# =================================================================
# Raw strings
# =================================================================

def read_raw_string(reader, stream, key) -> str:
    """#/verbatim text/# -> "verbatim text" with no escape processing."""
    line, col = stream.loc
    first, second = RAW_STRING_TERMINATOR
    chars: List[str] = []
    while True:
        ch = stream.read_char()
        if ch == "":
            raise UnterminatedStringError(
                f"Raw string is missing its closing {first}{second}", line, col
            )
        if ch == first and stream.peek_char() == second:
            stream.read_char()
            return "".join(chars)
        chars.append(ch)


# =================================================================
# Path expressions
# =================================================================

def separator_positions(whole: str) -> List[int]:
    """Offsets of every separator after the first character.

    Each search starts past the previous separator, and the first one past
    offset 0, so the base segment can never be empty.
    """
    return [i for i in range(1, len(whole)) if whole[i] in PATH_SEPARATORS]


def split_path(whole: str) -> List[PathSegment]:
    """Split `name.field#3.other` into base, field, index and field segments."""
    positions = separator_positions(whole)
    first_end = positions[0] if positions else len(whole)
    segments = [PathSegment(None, whole[:first_end])]
    for n, pos in enumerate(positions):
        end = positions[n + 1] if n + 1 < len(positions) else len(whole)
        segments.append(PathSegment(whole[pos], whole[pos + 1:end]))
    return segments


def parse_index(text: str, line: Optional[int] = None, col: Optional[int] = None) -> int:
    if not text or not (text.isascii() and text.isdigit()):
        raise InvalidIndexError(f"Path index must be a non-negative integer, got {text!r}", line, col)
    return int(text)


def fold_path(segments: List[PathSegment], line: Optional[int] = None, col: Optional[int] = None) -> Any:
    """Left-fold path segments into nested access-field / access-index calls."""
    if not segments:
        raise InvalidPathError("Path has no segments", line, col)
    if not segments[0].is_base:
        raise InvalidPathError(f"Path must start with a base name, got {segments[0]!r}", line, col)
    expr: Any = Symbol(segments[0].text)
    for seg in segments[1:]:
        if seg.is_field:
            if not seg.text:
                raise InvalidPathError("Path field name is empty", line, col)
            expr = [ACCESS_FIELD, expr, [QUOTE, Symbol(seg.text)]]
        else:
            expr = [ACCESS_INDEX, expr, parse_index(seg.text, line, col)]
    return expr


def read_path(reader, stream, key) -> Any:
    """@name.field#3 -> (access-index (access-field name 'field) 3)

    A trigger not followed by a token reads as the bare symbol itself.
    """
    line, col = stream.loc
    ch = stream.peek_char()
    if ch == "" or ch.isspace() or reader.is_closer(ch):
        return Symbol(_trigger_text(key))
    whole = reader.read_token(stream)
    if not whole:
        return Symbol(_trigger_text(key))
    return fold_path(split_path(whole), line, col)
