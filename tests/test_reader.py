import pytest

from readmac.readmac_reader import Reader, parse_atom
from readmac.readmac_registry import standard_registry, extended_registry
from readmac.readmac_stream import CharStream
from readmac.readmac_datatypes import Symbol, Keyword, EOF
from readmac.readmac_errors import (
    ReaderError, UnterminatedListError, UnterminatedStringError, UnmatchedCloseError,
    UnknownDispatchError, UnexpectedEOFError,
)

S = Symbol
K = Keyword


@pytest.fixture
def base():
    return Reader(standard_registry())


@pytest.fixture
def ext():
    return Reader(extended_registry())


# =================================================================
# Atoms
# =================================================================

@pytest.mark.parametrize("token, expected", [
    ("42", 42),
    ("-5", -5),
    ("+3", 3),
    ("2.5", 2.5),
    (".5", 0.5),
    ("1e3", 1000.0),
    (":key", K("key")),
    ("foo", S("foo")),
    ("-", S("-")),
    ("1.2.3", S("1.2.3")),
    (":", S(":")),
    ("&optional", S("&optional")),
    ("%%", S("%%")),
])
def test_parse_atom(token, expected):
    result = parse_atom(token)
    assert result == expected
    assert type(result) is type(expected)


# =================================================================
# Baseline syntax
# =================================================================

def test_read_list_of_atoms(base):
    assert base.read_all('(a 1 2.5 :k "s")') == [[S("a"), 1, 2.5, K("k"), "s"]]


def test_read_nested_lists(base):
    assert base.read_all("(a (b (c)) ())") == [[S("a"), [S("b"), [S("c")]], []]]


def test_read_multiple_top_level_forms(base):
    assert base.read_all("1 two (3)") == [1, S("two"), [3]]


def test_quote_and_function(base):
    assert base.read_from_string("'x") == [S("quote"), S("x")]
    assert base.read_from_string("'(1 2)") == [S("quote"), [1, 2]]
    assert base.read_from_string("#'car") == [S("function"), S("car")]


def test_string_escapes(base):
    assert base.read_from_string(r'"a\"b\n\tc\\d\q"') == 'a"b\n\tc\\dq'


def test_comments_are_skipped(base):
    src = "; leading\n(a ; trailing\n b) #| block #| nested |# still |# c"
    assert base.read_all(src) == [[S("a"), S("b")], S("c")]


def test_comment_before_closer(base):
    assert base.read_all("(a ; note\n)") == [[S("a")]]


def test_tokens_stop_at_terminating_characters(base):
    assert base.read_all("(a)b'c") == [[S("a")], S("b"), [S("quote"), S("c")]]


def test_dispatch_char_inside_token_is_constituent(base):
    assert base.read_from_string("a#3") == S("a#3")


def test_baseline_reads_extension_characters_as_symbols(base):
    assert base.read_all("@x.y ^z {a}") == [S("@x.y"), S("^z"), S("{a}")]


# =================================================================
# End of input
# =================================================================

def test_read_at_end_raises_by_default(base):
    with pytest.raises(UnexpectedEOFError):
        base.read(CharStream("   "))


def test_read_at_end_returns_eof_value(base):
    stream = CharStream("x")
    assert base.read(stream, eof_error=False) == S("x")
    assert base.read(stream, eof_error=False) is EOF
    assert base.read(stream, eof_error=False, eof_value="done") == "done"


def test_read_with_loc_reports_form_start(base):
    stream = CharStream("  a\n   (b)")
    assert base.read_with_loc(stream) == (S("a"), 1, 3)
    assert base.read_with_loc(stream) == ([S("b")], 2, 4)
    form, _, _ = base.read_with_loc(stream)
    assert form is EOF


def test_read_all_empty(base):
    assert base.read_all("") == []
    assert base.read_all("; only a comment") == []


# =================================================================
# Errors
# =================================================================

def test_unterminated_list(base):
    with pytest.raises(UnterminatedListError) as excinfo:
        base.read_all("(a b")
    assert (excinfo.value.line, excinfo.value.col) == (1, 1)


def test_unterminated_list_reports_opener_position(base):
    with pytest.raises(UnterminatedListError) as excinfo:
        base.read_all("(a\n  (b c")
    assert (excinfo.value.line, excinfo.value.col) == (2, 3)


def test_unmatched_close(base):
    with pytest.raises(UnmatchedCloseError):
        base.read_all("a)")


def test_unterminated_string(base):
    with pytest.raises(UnterminatedStringError):
        base.read_all('"abc')
    with pytest.raises(UnterminatedStringError):
        base.read_all('"abc\\')


def test_unknown_dispatch(base):
    with pytest.raises(UnknownDispatchError):
        base.read_all("#v(1 2)")


def test_dispatch_at_end_of_input(base):
    with pytest.raises(UnexpectedEOFError):
        base.read_all("#")


def test_unterminated_block_comment(base):
    with pytest.raises(UnterminatedListError):
        base.read_all("#| never closed")


def test_quote_at_end_of_input(base):
    with pytest.raises(UnexpectedEOFError):
        base.read_all("'")


def test_reader_errors_render_location():
    err = UnterminatedListError("List is missing its closing ')'", 3, 7)
    assert isinstance(err, ReaderError)
    assert str(err) == "List is missing its closing ')' (line 3, col 7)"
    assert str(UnterminatedListError("no location")) == "no location"


# =================================================================
# Extended reader
# =================================================================

def test_extended_reader_is_a_superset(base, ext):
    src = "(defun f (x) 'x) #'f \"s\" ; c\n :k #| b |# 1.5"
    assert ext.read_all(src) == base.read_all(src)


def test_default_reader_uses_extended_registry():
    r = Reader()
    assert r.read_from_string("#v()")[0] == S("make-vector")


def test_brace_closes_only_fixed_maps(ext):
    with pytest.raises(UnmatchedCloseError):
        ext.read_all("}")
    with pytest.raises(UnmatchedCloseError):
        ext.read_all("(a }")


@pytest.mark.parametrize("src, where", [
    ("#v(1 2", (1, 1)),
    ("#h(:a 1", (1, 1)),
    ("{:a 1", (1, 1)),
    ("(list 1)\n  #v(1 2", (2, 3)),
    ("(list 1)\n  #h(:a\n 1", (2, 3)),
    ("(list\n {:a #v(1)", (2, 2)),
], ids=["vector", "map", "fixed-map", "vector-line-2", "map-line-2", "fixed-map-nested"])
def test_unterminated_aggregate_reports_opener_position(ext, src, where):
    with pytest.raises(UnterminatedListError) as excinfo:
        ext.read_all(src)
    assert (excinfo.value.line, excinfo.value.col) == where


def test_uppercase_dispatch_subchar(ext):
    assert ext.read_from_string("#V(1)") == ext.read_from_string("#v(1)")
