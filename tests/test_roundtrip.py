"""
Every extension expands to plain calls: printing what the extended reader
produced and reading it back with the standard reader gives the same
expression and the same value.
"""
import pytest

from readmac.readmac_reader import Reader
from readmac.readmac_registry import standard_registry, extended_registry
from readmac.readmac_printer import Printer
from readmac.readmac_runtime import ScriptRunner
from readmac.readmac_datatypes import Closure

ROUNDTRIP_CASES = [
    ("vector", "#v(1 2 (+ 1 2))"),
    ("nested_vector", "#v(#v(1) \"s\" :k)"),
    ("map", "#h(:a 1 :b (* 2 3))"),
    ("map_with_test", '#h(equal "x" 1 "x" 2)'),
    ("fixed_map", "{:a 1 :b 2}"),
    ("fixed_map_with_test", '{equalp "A" 1 "a" 2}'),
    ("raw_string", '#/say "hi" \\n/#'),
    ("path", "(let ((m #h(:xs #v(1 2 3)))) @m.xs#2)"),
    ("lambda", "(funcall ^(+ % %%) 3 4)"),
    ("lambda_sequence", "(funcall #`((list %) (* % 2)) 5)"),
    ("mixed", "(map-get {:f ^(* % 3)} :f)"),
]


@pytest.fixture(scope="module")
def readers():
    return Reader(extended_registry()), Reader(standard_registry())


@pytest.mark.parametrize("name, src", ROUNDTRIP_CASES, ids=[c[0] for c in ROUNDTRIP_CASES])
def test_printed_expansion_reads_back(readers, name, src):
    ext, base = readers
    expr = ext.read_from_string(src)
    printed = Printer().pformat(expr)
    assert base.read_from_string(printed) == expr


@pytest.mark.asyncio
@pytest.mark.parametrize("name, src", ROUNDTRIP_CASES, ids=[c[0] for c in ROUNDTRIP_CASES])
async def test_printed_expansion_evaluates_the_same(readers, name, src):
    ext, base = readers
    expr = ext.read_from_string(src)
    reread = base.read_from_string(Printer().pformat(expr))

    runner = ScriptRunner(load_core=False)
    original = await runner.evaluator.eval(expr, runner.root_scope)
    again = await runner.evaluator.eval(reread, runner.root_scope)
    if isinstance(original, Closure):
        assert await runner.evaluator.call(original, [2]) == await runner.evaluator.call(again, [2])
    else:
        assert original == again


def test_expansion_is_plain_calls(readers):
    ext, _ = readers
    printed = Printer().pformat(ext.read_from_string("{:a #v(1)}"))
    assert printed == "(map-put (make-map 'eql 1) :a (make-vector 1 (list 1)))"


def test_path_expansion_text(readers):
    ext, _ = readers
    printed = Printer().pformat(ext.read_from_string("@name.field#3.other"))
    assert printed == "(access-field (access-index (access-field name 'field) 3) 'other)"


def test_lambda_expansion_text(readers):
    ext, _ = readers
    printed = Printer().pformat(ext.read_from_string("^(+ 2 %)"))
    assert printed == "(lambda (&optional % %%) (declare (ignorable % %%)) (+ 2 %))"
