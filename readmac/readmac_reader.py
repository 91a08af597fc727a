"""
The reader: turns source text into expressions by dispatching on the trigger
characters bound in a Registry.

Characters without a binding are accumulated into tokens and parsed as atoms
(numbers, keywords, symbols). Bound characters run the matching handler; the
standard handlers live here, the extension handlers in readmac_handlers.
"""

import re
from typing import Any, List, Optional, Tuple

from readmac.readmac_datatypes import Symbol, Keyword, EOF, _Sentinel
from readmac.readmac_errors import (
    UnterminatedListError, UnterminatedStringError, UnmatchedCloseError,
    UnknownDispatchError, UnexpectedEOFError,
)
from readmac.readmac_registry import Registry, HandlerKind, extended_registry, _dbg
from readmac.readmac_stream import CharStream
from readmac import readmac_handlers as handlers

QUOTE = Symbol("quote")
FUNCTION = Symbol("function")

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?$")

_STR_ESCAPE_CHARS = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
}

# Returned for forms that produce nothing, such as comments.
_NO_VALUE = _Sentinel("no-value")
# Returned by the list scanner once the closer is consumed.
_CLOSED = _Sentinel("closed")


def parse_atom(token: str) -> Any:
    """Parse a token into a number, keyword or symbol."""
    if _INT_RE.match(token):
        return int(token)
    if _FLOAT_RE.match(token):
        return float(token)
    if token.startswith(":") and len(token) > 1:
        return Keyword(token[1:])
    return Symbol(token)


class Reader:
    """Reads expressions from a CharStream using a trigger registry."""

    def __init__(self, registry: Optional[Registry] = None):
        self.registry = registry if registry is not None else extended_registry()

    # --- Public API ---

    def read(self, stream: CharStream, eof_error: bool = True, eof_value: Any = EOF) -> Any:
        """Read one expression, skipping whitespace and comments.

        At end of input raises UnexpectedEOFError, or returns eof_value when
        eof_error is false.
        """
        result, line, col = self.read_with_loc(stream)
        if result is EOF:
            if eof_error:
                raise UnexpectedEOFError("Unexpected end of input", line, col)
            return eof_value
        return result

    def read_with_loc(self, stream: CharStream):
        """Read one expression and return (expr, line, col) of where it starts.

        Returns EOF as the expression at end of input.
        """
        while True:
            line, col = self._skip_whitespace(stream)
            result = self._read_once(stream)
            if result is not _NO_VALUE:
                return result, line, col

    def read_delimited(self, stream: CharStream, closer: str,
                       loc: Optional[Tuple[int, int]] = None) -> List[Any]:
        """Read expressions until closer is consumed. The opener must already be consumed.

        `loc` is where the list opened, reported if the stream ends first;
        it defaults to the current position.
        """
        line, col = loc if loc is not None else stream.loc
        items: List[Any] = []
        while True:
            item = self._read_or_close(stream, closer, line, col)
            if item is _CLOSED:
                return items
            items.append(item)

    def read_token(self, stream: CharStream) -> str:
        """Consume characters up to whitespace, a terminating trigger or end of input."""
        chars: List[str] = []
        while True:
            ch = stream.peek_char()
            if ch == "" or ch.isspace() or self.registry.is_terminating(ch):
                return "".join(chars)
            chars.append(stream.read_char())

    def is_closer(self, ch: str) -> bool:
        return self.registry.dispatch(ch) is HandlerKind.LIST_CLOSE

    def read_all(self, text: str) -> List[Any]:
        """Read every top-level expression in text."""
        stream = CharStream(text)
        forms = []
        while True:
            form = self.read(stream, eof_error=False)
            if form is EOF:
                return forms
            forms.append(form)

    def read_from_string(self, text: str) -> Any:
        """Read the first expression in text."""
        return self.read(CharStream(text))

    # --- Internals ---

    def _skip_whitespace(self, stream: CharStream):
        while True:
            ch = stream.peek_char()
            if ch == "" or not ch.isspace():
                return stream.loc
            stream.read_char()

    def _read_or_close(self, stream: CharStream, closer: str, line: int, col: int) -> Any:
        while True:
            self._skip_whitespace(stream)
            ch = stream.peek_char()
            if ch == "":
                raise UnterminatedListError(f"List is missing its closing {closer!r}", line, col)
            if ch == closer:
                stream.read_char()
                return _CLOSED
            result = self._read_once(stream)
            if result is not _NO_VALUE:
                return result

    def _read_once(self, stream: CharStream) -> Any:
        """Read one form or comment starting at the next non-blank character."""
        line, col = stream.loc
        ch = stream.read_char()
        if ch == "":
            return EOF
        kind = self.registry.dispatch(ch)
        if kind is None:
            stream.unread_char()
            return parse_atom(self.read_token(stream))
        return self._invoke(kind, stream, ch, line, col)

    def _invoke(self, kind: HandlerKind, stream: CharStream, key, line: int, col: int) -> Any:
        if not kind.is_standard:
            _dbg("reader: dispatch", repr(key), "->", kind.value, f"at {line}:{col}")
        loc = (line, col)
        match kind:
            case HandlerKind.LIST_OPEN:
                return self.read_delimited(stream, ")", loc)
            case HandlerKind.LIST_CLOSE:
                raise UnmatchedCloseError(f"Unmatched close delimiter {key!r}", line, col)
            case HandlerKind.QUOTE:
                return [QUOTE, self.read(stream)]
            case HandlerKind.STRING:
                return self._read_string(stream, line, col)
            case HandlerKind.LINE_COMMENT:
                self._skip_line(stream)
                return _NO_VALUE
            case HandlerKind.DISPATCH:
                return self._read_dispatch(stream, key, line, col)
            case HandlerKind.FUNCTION:
                return [FUNCTION, self.read(stream)]
            case HandlerKind.BLOCK_COMMENT:
                self._skip_block_comment(stream, line, col)
                return _NO_VALUE
            case HandlerKind.VECTOR:
                return handlers.read_vector(self, stream, key, loc)
            case HandlerKind.MAP:
                return handlers.read_map(self, stream, key, loc)
            case HandlerKind.FIXED_MAP:
                return handlers.read_fixed_map(self, stream, key, loc)
            case HandlerKind.RAW_STRING:
                return handlers.read_raw_string(self, stream, key)
            case HandlerKind.POSITIONAL_LAMBDA:
                return handlers.read_positional_lambda(self, stream, key)
            case HandlerKind.PATH_ACCESS:
                return handlers.read_path(self, stream, key)
            case _:
                raise NotImplementedError(f"No reader for handler kind {kind!r}")

    def _read_dispatch(self, stream: CharStream, ch: str, line: int, col: int) -> Any:
        sub = stream.read_char()
        if sub == "":
            raise UnexpectedEOFError(f"End of input after dispatch character {ch!r}", line, col)
        kind = self.registry.dispatch((ch, sub))
        if kind is None or kind is HandlerKind.DISPATCH:
            raise UnknownDispatchError(f"No dispatch handler for {ch}{sub}", line, col)
        return self._invoke(kind, stream, (ch, sub), line, col)

    def _read_string(self, stream: CharStream, line: int, col: int) -> str:
        chars: List[str] = []
        while True:
            ch = stream.read_char()
            if ch == "":
                raise UnterminatedStringError("String is missing its closing '\"'", line, col)
            if ch == "\\":
                esc = stream.read_char()
                if esc == "":
                    raise UnterminatedStringError("String is missing its closing '\"'", line, col)
                chars.append(_STR_ESCAPE_CHARS.get(esc, esc))
                continue
            if ch == '"':
                return "".join(chars)
            chars.append(ch)

    def _skip_line(self, stream: CharStream) -> None:
        while True:
            ch = stream.read_char()
            if ch == "" or ch == "\n":
                return

    def _skip_block_comment(self, stream: CharStream, line: int, col: int) -> None:
        depth = 1
        while depth:
            ch = stream.read_char()
            if ch == "":
                raise UnterminatedListError("Block comment is missing its closing '|#'", line, col)
            if ch == "|" and stream.peek_char() == "#":
                stream.read_char()
                depth -= 1
            elif ch == "#" and stream.peek_char() == "|":
                stream.read_char()
                depth += 1
