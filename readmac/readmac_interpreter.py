"""
The readmac evaluator: executes the expressions the reader produces.
"""
import inspect
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from readmac.readmac_datatypes import Symbol, Scope, Closure, ArityError

OPTIONAL_MARKER = "&optional"
REST_MARKER = "&rest"


def is_true(value: Any) -> bool:
    """Only nil (None), false and the empty list are false."""
    if value is None or value is False:
        return False
    if type(value) is list and not value:
        return False
    return True


def _symbol_text(node: Any, what: str) -> str:
    if not isinstance(node, Symbol):
        raise SyntaxError(f"{what} must be a symbol, got {node!r}")
    return node.text


class Evaluator:
    """The readmac execution engine."""

    def __init__(self):
        self.side_effects: List[Any] = []
        self.call_stack: List[Dict[str, Any]] = []
        self._special_forms = {
            "quote": self._sf_quote,
            "function": self._sf_function,
            "if": self._sf_if,
            "when": self._sf_when,
            "progn": self._sf_progn,
            "let": self._sf_let,
            "let*": self._sf_let_star,
            "setq": self._sf_setq,
            "defvar": self._sf_defvar,
            "defun": self._sf_defun,
            "lambda": self._sf_lambda,
            "declare": self._sf_declare,
            "and": self._sf_and,
            "or": self._sf_or,
        }

    def _push_frame(self, name, func, args):
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("READMAC_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    # --- Evaluation ---

    async def eval(self, node: Any, scope: Scope) -> Any:
        """Evaluate one expression in scope."""
        match node:
            case Symbol():
                return self._lookup(node, scope)
            case list():
                if not node:
                    return None
                return await self._eval_form(node, scope)
            case _:
                # Numbers, strings, keywords and runtime values evaluate to themselves.
                return node

    async def eval_body(self, forms: List[Any], scope: Scope) -> Any:
        """Evaluate forms in order and return the last value (nil when empty)."""
        result = None
        for form in forms:
            result = await self.eval(form, scope)
        return result

    def _lookup(self, sym: Symbol, scope: Scope) -> Any:
        match sym.text:
            case "nil":
                return None
            case "t":
                return True
        return scope[sym]

    async def _eval_form(self, form: List[Any], scope: Scope) -> Any:
        head = form[0]
        if isinstance(head, Symbol):
            special = self._special_forms.get(head.text)
            if special is not None:
                return await special(form, scope)
        func = await self.eval(head, scope)
        args = [await self.eval(arg, scope) for arg in form[1:]]
        name = head.text if isinstance(head, Symbol) else None
        return await self.call(func, args, name=name)

    async def call(self, func: Any, args: List[Any], name: Optional[str] = None) -> Any:
        """Calls a Closure or Python callable with already-evaluated arguments."""
        self._dbg("Evaluator.call", name or type(func).__name__, "argc", len(args))
        if isinstance(func, Closure):
            self._push_frame(name or func.name or "lambda", func, args)
            _ok = False
            try:
                result = await self._apply_closure(func, args)
                _ok = True
            finally:
                if _ok:
                    self._pop_frame()
            return result
        if callable(func):
            self._push_frame(name or getattr(func, "__name__", "<call>"), func, args)
            _ok = False
            try:
                result = func(*args)
                if inspect.isawaitable(result):
                    result = await result
                _ok = True
            finally:
                if _ok:
                    self._pop_frame()
            return result
        raise TypeError(f"Object is not callable: {func!r}")

    async def _apply_closure(self, fn: Closure, args: List[Any]) -> Any:
        n_req, n_opt = len(fn.required), len(fn.optional)
        if len(args) < n_req:
            raise ArityError(f"{fn.name or 'lambda'} expects at least {n_req} argument(s), got {len(args)}")
        if fn.rest is None and len(args) > n_req + n_opt:
            raise ArityError(f"{fn.name or 'lambda'} expects at most {n_req + n_opt} argument(s), got {len(args)}")
        call_scope = Scope(parent=fn.closure)
        for param, value in zip(fn.required, args):
            call_scope[param] = value
        optional_args = args[n_req:n_req + n_opt]
        for i, param in enumerate(fn.optional):
            call_scope[param] = optional_args[i] if i < len(optional_args) else None
        if fn.rest is not None:
            call_scope[fn.rest] = list(args[n_req + n_opt:])
        return await self.eval_body(fn.body, call_scope)

    # --- Special forms ---

    def _check_arity(self, form, low, high=None):
        n = len(form) - 1
        if n < low or (high is not None and n > high):
            raise SyntaxError(f"Malformed ({form[0].text} ...): wrong number of parts")

    async def _sf_quote(self, form, scope):
        self._check_arity(form, 1, 1)
        return form[1]

    async def _sf_function(self, form, scope):
        self._check_arity(form, 1, 1)
        target = form[1]
        if isinstance(target, Symbol):
            return self._lookup(target, scope)
        return await self.eval(target, scope)

    async def _sf_if(self, form, scope):
        self._check_arity(form, 2, 3)
        if is_true(await self.eval(form[1], scope)):
            return await self.eval(form[2], scope)
        if len(form) == 4:
            return await self.eval(form[3], scope)
        return None

    async def _sf_when(self, form, scope):
        self._check_arity(form, 1)
        if is_true(await self.eval(form[1], scope)):
            return await self.eval_body(form[2:], scope)
        return None

    async def _sf_progn(self, form, scope):
        return await self.eval_body(form[1:], scope)

    def _let_bindings(self, form) -> List[Tuple[str, Any]]:
        self._check_arity(form, 1)
        bindings = form[1]
        if not isinstance(bindings, list):
            raise SyntaxError(f"({form[0].text} ...) bindings must be a list")
        out = []
        for b in bindings:
            if isinstance(b, Symbol):
                out.append((b.text, None))
            elif isinstance(b, list) and 1 <= len(b) <= 2:
                out.append((_symbol_text(b[0], "Binding name"), b[1] if len(b) == 2 else None))
            else:
                raise SyntaxError(f"Malformed binding: {b!r}")
        return out

    async def _sf_let(self, form, scope):
        values = [(name, await self.eval(expr, scope)) for name, expr in self._let_bindings(form)]
        inner = Scope(parent=scope)
        for name, value in values:
            inner[name] = value
        return await self.eval_body(form[2:], inner)

    async def _sf_let_star(self, form, scope):
        inner = Scope(parent=scope)
        for name, expr in self._let_bindings(form):
            inner[name] = await self.eval(expr, inner)
        return await self.eval_body(form[2:], inner)

    async def _sf_setq(self, form, scope):
        parts = form[1:]
        if len(parts) % 2 != 0:
            raise SyntaxError("(setq ...) needs name/value pairs")
        value = None
        for i in range(0, len(parts), 2):
            name = _symbol_text(parts[i], "setq target")
            value = await self.eval(parts[i + 1], scope)
            scope.assign(name, value)
        return value

    def _root(self, scope: Scope) -> Scope:
        while scope.parent is not None:
            scope = scope.parent
        return scope

    async def _sf_defvar(self, form, scope):
        self._check_arity(form, 1, 2)
        name = _symbol_text(form[1], "defvar name")
        value = await self.eval(form[2], scope) if len(form) == 3 else None
        self._root(scope)[name] = value
        return form[1]

    def _parse_params(self, params) -> Tuple[List[str], List[str], Optional[str]]:
        if not isinstance(params, list):
            raise SyntaxError(f"Parameter list must be a list, got {params!r}")
        required: List[str] = []
        optional: List[str] = []
        rest: Optional[str] = None
        mode = "required"
        for p in params:
            text = _symbol_text(p, "Parameter")
            if text == OPTIONAL_MARKER:
                mode = "optional"
                continue
            if text == REST_MARKER:
                mode = "rest"
                continue
            match mode:
                case "required":
                    required.append(text)
                case "optional":
                    optional.append(text)
                case "rest":
                    if rest is not None:
                        raise SyntaxError("Only one &rest parameter is allowed")
                    rest = text
        return required, optional, rest

    def _strip_declarations(self, body: List[Any]) -> List[Any]:
        i = 0
        while i < len(body) and isinstance(body[i], list) and body[i] \
                and body[i][0] == Symbol("declare"):
            i += 1
        return body[i:]

    def _make_closure(self, params, body, scope, name=None) -> Closure:
        required, optional, rest = self._parse_params(params)
        return Closure(required, optional, rest, self._strip_declarations(list(body)), scope, name)

    async def _sf_lambda(self, form, scope):
        self._check_arity(form, 1)
        return self._make_closure(form[1], form[2:], scope)

    async def _sf_defun(self, form, scope):
        self._check_arity(form, 2)
        name = _symbol_text(form[1], "defun name")
        self._root(scope)[name] = self._make_closure(form[2], form[3:], scope, name=name)
        return form[1]

    async def _sf_declare(self, form, scope):
        return None

    async def _sf_and(self, form, scope):
        result = True
        for expr in form[1:]:
            result = await self.eval(expr, scope)
            if not is_true(result):
                return result
        return result

    async def _sf_or(self, form, scope):
        for expr in form[1:]:
            result = await self.eval(expr, scope)
            if is_true(result):
                return result
        return None
