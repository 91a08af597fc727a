# readmac_runtime.py

import inspect
import operator
import collections.abc
from pathlib import Path
from typing import Any, List, Optional, Literal, Dict
from dataclasses import dataclass, field

from readmac.readmac_interpreter import Evaluator, is_true
from readmac.readmac_reader import Reader
from readmac.readmac_registry import Registry, extended_registry
from readmac.readmac_stream import CharStream
from readmac.readmac_errors import ReaderError
from readmac.readmac_datatypes import (
    Scope, Symbol, Keyword, Vector, HashMap, Closure, EOF,
    UnboundSymbol, FieldNotFound, UnknownTestError, MAP_TESTS, DEFAULT_MAP_TEST
)

# Operator names bound next to their StdLib method names.
OPERATOR_ALIASES = {
    "+": "add",
    "-": "sub",
    "*": "mul",
    "/": "div",
    "=": "num-eq",
    "<": "lt",
    ">": "gt",
    "<=": "lte",
    ">=": "gte",
}


def _field_name(field_spec: Any) -> str:
    if isinstance(field_spec, (Symbol, Keyword)):
        return field_spec.text
    if isinstance(field_spec, str):
        return field_spec
    raise TypeError(f"Field name must be a symbol, keyword or string, not {type(field_spec).__name__}")


def _test_name(test: Any) -> str:
    if test is None:
        return DEFAULT_MAP_TEST
    if isinstance(test, (Symbol, Keyword)):
        return test.text
    if isinstance(test, str):
        return test
    raise UnknownTestError(f"Map test must be a symbol, got {test!r}")


def _chain(op, args) -> bool:
    if not args:
        raise TypeError("Comparison needs at least one argument")
    return all(op(a, b) for a, b in zip(args, args[1:]))


# ===================================================================
# Standard Library
# ===================================================================

class StdLib:
    """Builtins bound into every runner's root scope.

    Methods named `_foo_bar` are exposed as `foo-bar`.
    """

    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    # --- Arithmetic and comparison ---
    def _add(self, *args): return sum(args, 0)

    def _sub(self, first, *rest):
        if not rest:
            return -first
        for x in rest:
            first = first - x
        return first

    def _mul(self, *args):
        result = 1
        for x in args:
            result = result * x
        return result

    def _div(self, first, *rest):
        if not rest:
            rest, first = (first,), 1
        for x in rest:
            if isinstance(first, int) and isinstance(x, int) and x != 0 and first % x == 0:
                first = first // x
            else:
                first = first / x
        return first

    def _num_eq(self, *args): return _chain(operator.eq, args)
    def _lt(self, *args): return _chain(operator.lt, args)
    def _gt(self, *args): return _chain(operator.gt, args)
    def _lte(self, *args): return _chain(operator.le, args)
    def _gte(self, *args): return _chain(operator.ge, args)
    def _not(self, x): return not is_true(x)

    # --- Equality ---
    def _eq(self, a, b): return MAP_TESTS["eq"](a) == MAP_TESTS["eq"](b)
    def _eql(self, a, b): return MAP_TESTS["eql"](a) == MAP_TESTS["eql"](b)
    def _equal(self, a, b): return MAP_TESTS["equal"](a) == MAP_TESTS["equal"](b)
    def _equalp(self, a, b): return MAP_TESTS["equalp"](a) == MAP_TESTS["equalp"](b)

    # --- Lists and strings ---
    def _list(self, *args): return list(args)

    def _length(self, seq):
        if seq is None:
            return 0
        return len(seq)

    def _concat(self, *parts): return "".join(str(p) for p in parts)

    # --- Functions ---
    async def _funcall(self, func, *args):
        return await self.evaluator.call(func, list(args))

    async def _apply(self, func, *args):
        if not args:
            return await self.evaluator.call(func, [])
        spread = args[-1]
        if spread is None:
            spread = []
        if not isinstance(spread, list):
            raise TypeError("The last argument to apply must be a list")
        return await self.evaluator.call(func, list(args[:-1]) + list(spread))

    async def _mapcar(self, func, seq, *more):
        seqs = [seq or []] + [s or [] for s in more]
        results = []
        for items in zip(*seqs):
            results.append(await self.evaluator.call(func, list(items)))
        return results

    # --- Side effects ---
    def _emit(self, topic_or_topics, *message_parts):
        if isinstance(topic_or_topics, (list, tuple)):
            topics = [_field_name(t) for t in topic_or_topics]
        else:
            topics = [_field_name(topic_or_topics)]
        message = " ".join(str(p) for p in message_parts)
        self.evaluator.side_effects.append({'topics': topics, 'message': message})

    def _print(self, *values):
        from readmac.readmac_printer import Printer
        p = Printer()
        message = " ".join(v if isinstance(v, str) else p.pformat(v) for v in values)
        self.evaluator.side_effects.append({'topics': ['stdout'], 'message': message})
        return values[-1] if values else None

    # --- Vectors ---
    def _make_vector(self, size, contents=None):
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise TypeError(f"Vector size must be a non-negative integer, got {size!r}")
        if contents is None:
            return Vector([None] * size)
        items = list(contents)
        if len(items) != size:
            raise ValueError(f"Vector of size {size} given {len(items)} initial element(s)")
        return Vector(items)

    def _vector_push_extend(self, value, vector):
        if not isinstance(vector, Vector):
            raise TypeError("vector-push-extend needs a vector")
        return vector.push_extend(value)

    # --- Maps ---
    def _make_map(self, test=None, size_hint=None):
        if size_hint is not None and (not isinstance(size_hint, int) or size_hint < 0):
            raise TypeError(f"Map size hint must be a non-negative integer, got {size_hint!r}")
        return HashMap(_test_name(test), capacity_hint=size_hint)

    def _map_put(self, target, key, value):
        target[key] = value
        return target

    def _map_get(self, target, key, default=None):
        try:
            return target[key]
        except KeyError:
            return default

    def _map_count(self, target): return len(target)
    def _map_keys(self, target): return list(target.keys())

    # --- Accessors ---
    def _access_field(self, target, field_spec):
        name = _field_name(field_spec)
        if isinstance(target, collections.abc.Mapping):
            for key in (Symbol(name), Keyword(name), name):
                try:
                    return target[key]
                except (KeyError, TypeError):
                    continue
            raise FieldNotFound(name, target)
        if isinstance(target, Scope):
            if name in target:
                return target[name]
            raise FieldNotFound(name, target)
        attr = name.replace("-", "_")
        if target is not None and not attr.startswith("_") and hasattr(target, attr):
            return getattr(target, attr)
        raise FieldNotFound(name, target)

    def _access_index(self, target, index):
        if not isinstance(index, int) or isinstance(index, bool):
            raise TypeError(f"Index must be an integer, got {index!r}")
        if target is None:
            raise IndexError(f"Index {index} out of range for nil")
        return target[index]


# ===================================================================
# Script Execution
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """The error message, located once.

        Messages built by ScriptRunner already carry their `(line L, col C)`
        line; a bare message with a token gets one appended.
        """
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if not self.error_token or self.error_token.get('line') is None:
            return msg
        where = f"(line {self.error_token['line']}, col {self.error_token.get('col')})"
        return msg if where in msg else f"{msg}\n{where}"


class ScriptRunner:
    """Reads and executes readmac source."""

    _registry: Optional[Registry] = None
    _core_forms: Optional[List[Any]] = None

    def _format_error(self, e: Exception, source: str, loc: Optional[tuple]) -> tuple[str, Optional[dict]]:
        match e:
            case ReaderError():
                msg = f"ReadError: {type(e).__name__}: {e.message}"
                if e.line is not None:
                    loc = (e.line, e.col)
            case SyntaxError():
                msg = f"SyntaxError: {e}"
            case UnboundSymbol() as us:
                msg = f"UnboundSymbol: {us.name}"
            case FieldNotFound() as fnf:
                msg = f"FieldNotFound: {fnf.field}"
            case UnknownTestError():
                msg = f"UnknownTest: {e}"
            case TypeError():
                call_name = None
                if self.evaluator.call_stack:
                    call_name = self.evaluator.call_stack[-1].get('name')
                msg = f"TypeError: {e}" + (f" in ({call_name})" if call_name else "")
            case IndexError():
                msg = f"IndexError: {e}"
            case _:
                msg = f"InternalError: {e}"

        token = None
        if loc is not None:
            line, col = loc
            token = {'line': line, 'col': col}
            context = self._source_context(source, line, col)
            msg = f"{msg}\n(line {line}, col {col})"
            if context:
                msg = f"{msg}\n{context}"

        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg, token

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or not 1 <= line <= len(lines):
            return ""
        first = max(1, line - radius)
        shown = lines[first - 1:line + radius]
        width = len(str(first + len(shown) - 1))
        out = []
        for number, text in enumerate(shown, start=first):
            marker = ">" if number == line else " "
            out.append(f"{marker} {number:>{width}} | {text}")
            if number == line and col:
                out.append(f"  {'':>{width}} | {' ' * (col - 1)}^")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        from readmac.readmac_printer import Printer
        pf = Printer().pformat

        def fmt(arg):
            match arg:
                case Closure():
                    return "#<lambda>"
                case list() if not isinstance(arg, Vector):
                    return f"({len(arg)} items)"
                case _:
                    return pf(arg)

        frames = []
        for frame in stack:
            name = frame.get('name') or '<call>'
            args_s = " ".join(fmt(a) for a in frame.get('args') or [])
            frames.append(f"({name} {args_s})" if args_s else f"({name})")
        return "Call stack: " + " ".join(frames)

    @classmethod
    def _default_registry(cls) -> Registry:
        if ScriptRunner._registry is None:
            ScriptRunner._registry = extended_registry()
        return ScriptRunner._registry

    def __init__(self, load_core: bool = True, registry: Optional[Registry] = None):
        self.reader = Reader(registry if registry is not None else self._default_registry())
        self.evaluator = Evaluator()
        self.root_scope = Scope()
        self._load_core = load_core
        self._initialized = False

        stdlib = StdLib(self.evaluator)
        for name, member in inspect.getmembers(stdlib):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                self.root_scope[name[1:].replace('_', '-')] = member
        for op, target in OPERATOR_ALIASES.items():
            self.root_scope[op] = self.root_scope[target]

    async def _initialize(self):
        """Loads core.lisp into the root scope if not already loaded."""
        if self._initialized or not self._load_core:
            self._initialized = True
            return

        # Forms are read once and cached on the class
        if ScriptRunner._core_forms is None:
            core_path = Path(__file__).parent / "core.lisp"
            try:
                # core.lisp is written against the default triggers
                core_reader = Reader(self._default_registry())
                ScriptRunner._core_forms = core_reader.read_all(core_path.read_text(encoding="utf-8"))
            except ReaderError as e:
                raise RuntimeError(f"Failed to read core.lisp: {e}") from e

        await self.evaluator.eval_body(ScriptRunner._core_forms, self.root_scope)
        self._initialized = True

    async def handle_script(self, source_code: str) -> 'ExecutionResult':
        """The main entry point to execute a script.

        Forms are read and evaluated one at a time; the first error stops the run.
        """
        loc = None
        try:
            self.evaluator.side_effects.clear()
            self.evaluator.call_stack.clear()
            await self._initialize()

            stream = CharStream(source_code)
            result = None
            while True:
                form, line, col = self.reader.read_with_loc(stream)
                if form is EOF:
                    break
                loc = (line, col)
                result = await self.evaluator.eval(form, self.root_scope)

            return ExecutionResult(
                status='success',
                value=result,
                side_effects=self.evaluator.side_effects
            )

        except Exception as e:
            err_msg, err_token = self._format_error(e, source_code, loc)
            # Emit consolidated stderr side-effect
            self.evaluator.side_effects.append({'topics': ['stderr'], 'message': err_msg})
            return ExecutionResult(
                status='error',
                error_message=err_msg,
                error_token=err_token,
                side_effects=self.evaluator.side_effects
            )
