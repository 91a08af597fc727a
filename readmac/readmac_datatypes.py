"""
Defines the core data types for the readmac reader and runtime.

This module provides the atoms the reader produces (symbols, keywords), the
path segments the path scanner works with, and the runtime values the
evaluator builds from constructor expressions (vectors, hash maps, closures
and scopes).
"""

import collections.abc
from typing import List, Dict, Any, Optional, Tuple


class UnboundSymbol(Exception):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


class FieldNotFound(Exception):
    def __init__(self, field: str, target: Any = None):
        super().__init__(field)
        self.field = field
        self.target = target


class UnknownTestError(ValueError):
    """A map literal named an equality test the runtime does not know."""


class ArityError(TypeError):
    """A closure was called with more arguments than it accepts, or too few required ones."""


# =================================================================
# Atoms
# =================================================================

class Symbol:
    """A symbol atom, e.g. `car` or `%`."""
    __slots__ = ("text",)

    def __init__(self, text: str):
        self.text = text

    def __repr__(self) -> str:
        return f"Symbol<{self.text!r}>"

    def __eq__(self, other):
        return isinstance(other, Symbol) and self.text == other.text

    def __hash__(self):
        return hash(("sym", self.text))


class Keyword:
    """A self-evaluating keyword atom, written `:name`. `text` excludes the colon."""
    __slots__ = ("text",)

    def __init__(self, text: str):
        self.text = text

    def __repr__(self) -> str:
        return f"Keyword<{self.text!r}>"

    def __eq__(self, other):
        return isinstance(other, Keyword) and self.text == other.text

    def __hash__(self):
        return hash(("kw", self.text))


class _Sentinel:
    """Internal helper class for stateless singleton markers."""
    def __init__(self, name):
        self._name = name

    def __repr__(self):
        return f"{self._name.capitalize()}<>"

    def __bool__(self):
        return False


# Returned by the reader at end of input.
EOF = _Sentinel("eof")


# =================================================================
# Path Segments
# =================================================================

FIELD_SEPARATOR = "."
INDEX_SEPARATOR = "#"
PATH_SEPARATORS = (FIELD_SEPARATOR, INDEX_SEPARATOR)


class PathSegment:
    """One piece of a compound path token.

    `separator` is None for the base segment, otherwise the character that
    preceded the segment: '.' for field access or '#' for index access.
    """
    __slots__ = ("separator", "text")

    def __init__(self, separator: Optional[str], text: str):
        if separator is not None and separator not in PATH_SEPARATORS:
            raise ValueError(f"Unknown path separator: {separator!r}")
        self.separator = separator
        self.text = text

    @property
    def is_base(self) -> bool:
        return self.separator is None

    @property
    def is_field(self) -> bool:
        return self.separator == FIELD_SEPARATOR

    @property
    def is_index(self) -> bool:
        return self.separator == INDEX_SEPARATOR

    def __repr__(self) -> str:
        return f"PathSegment({self.separator!r}, {self.text!r})"

    def __eq__(self, other):
        return (
            isinstance(other, PathSegment)
            and self.separator == other.separator
            and self.text == other.text
        )

    def __hash__(self):
        return hash((self.separator, self.text))


# =================================================================
# Core Runtime Types
# =================================================================

class Scope:
    """A lexical environment: bindings plus an optional parent scope."""
    def __init__(self, parent: Optional['Scope'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def _normalize_key(self, key: Any) -> str:
        if isinstance(key, Symbol):
            return key.text
        if not isinstance(key, str):
            raise TypeError(f"Scope key must be a str or Symbol, not {type(key)}")
        return key

    def find_owner(self, key: str) -> Optional['Scope']:
        """Finds the Scope in the lexical chain that binds key."""
        scope = self
        while scope is not None:
            if key in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def __getitem__(self, key: Any) -> Any:
        key = self._normalize_key(key)
        owner = self.find_owner(key)
        if owner is None:
            raise UnboundSymbol(key)
        return owner.bindings[key]

    def __setitem__(self, key: Any, value: Any):
        self.bindings[self._normalize_key(key)] = value

    def __contains__(self, key: Any) -> bool:
        return self.find_owner(self._normalize_key(key)) is not None

    def assign(self, key: Any, value: Any):
        """Rebind key in the scope that owns it, or in the outermost scope if unbound."""
        key = self._normalize_key(key)
        owner = self.find_owner(key)
        if owner is None:
            owner = self
            while owner.parent is not None:
                owner = owner.parent
        owner.bindings[key] = value

    def keys(self) -> collections.abc.KeysView:
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"


class Vector(list):
    """A growable vector built by `make-vector`.

    A plain list with an explicit `fill_pointer` view; appending through
    `push_extend` grows it without limit.
    """

    @property
    def fill_pointer(self) -> int:
        return len(self)

    def push_extend(self, value: Any) -> int:
        """Append value and return its index."""
        self.append(value)
        return len(self) - 1

    def __repr__(self) -> str:
        return f"Vector({list.__repr__(self)})"


def _eql_key(value: Any) -> Tuple:
    if value is None or isinstance(value, (bool, int, float, Symbol, Keyword)):
        return ("v", type(value).__name__, value)
    return ("id", id(value))


def _equal_key(value: Any, fold_case: bool = False) -> Tuple:
    if isinstance(value, str):
        return ("s", value.casefold() if fold_case else value)
    if isinstance(value, (list, tuple)):
        return ("l",) + tuple(_equal_key(v, fold_case) for v in value)
    if fold_case and isinstance(value, (int, float)) and not isinstance(value, bool):
        # equalp compares numbers by value across int and float
        return ("n", value)
    return _eql_key(value)


MAP_TESTS = {
    "eq": _eql_key,
    "eql": _eql_key,
    "equal": _equal_key,
    "equalp": lambda v: _equal_key(v, fold_case=True),
}

DEFAULT_MAP_TEST = "eql"


class HashMap(collections.abc.MutableMapping):
    """A hash map whose key equality is chosen by a named test.

    Keys are normalized through the test before hashing; the first key object
    inserted for a given normalized key is kept for iteration. `capacity_hint`
    records the size the literal asked for and never limits growth.
    """
    def __init__(self, test: str = DEFAULT_MAP_TEST, capacity_hint: Optional[int] = None):
        if test not in MAP_TESTS:
            raise UnknownTestError(f"Unknown map test: {test}")
        self.test = test
        self.capacity_hint = capacity_hint
        self._key_fn = MAP_TESTS[test]
        self._data: Dict[Tuple, Tuple[Any, Any]] = {}

    def __getitem__(self, key):
        try:
            return self._data[self._key_fn(key)][1]
        except KeyError:
            raise KeyError(key) from None

    def __setitem__(self, key, value):
        nk = self._key_fn(key)
        existing = self._data.get(nk)
        stored_key = existing[0] if existing is not None else key
        self._data[nk] = (stored_key, value)

    def __delitem__(self, key):
        try:
            del self._data[self._key_fn(key)]
        except KeyError:
            raise KeyError(key) from None

    def __iter__(self):
        return (k for k, _ in self._data.values())

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other):
        if isinstance(other, HashMap):
            return self.test == other.test and dict(self.items()) == dict(other.items())
        if isinstance(other, collections.abc.Mapping):
            return dict(self.items()) == dict(other.items())
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        from readmac.readmac_printer import Printer
        return Printer().pformat(self)


class Closure:
    """A function created by `lambda` or `defun`.

    Bundles the parameter lists, the body forms and the lexical scope in
    which the function was defined.
    """
    def __init__(self, required: List[str], optional: List[str], rest: Optional[str],
                 body: List[Any], closure: Scope, name: Optional[str] = None):
        self.required = required
        self.optional = optional
        self.rest = rest
        self.body = body
        self.closure = closure
        self.name = name

    @property
    def params(self) -> List[str]:
        return list(self.required) + list(self.optional) + ([self.rest] if self.rest else [])

    def __repr__(self) -> str:
        label = self.name or "lambda"
        return f"<Closure {label} ({' '.join(self.params)})>"

    def __eq__(self, other):
        if not isinstance(other, Closure):
            return NotImplemented
        # NOTE: closure scope comparison is intentionally omitted.
        return (self.required, self.optional, self.rest, self.body) == \
            (other.required, other.optional, other.rest, other.body)

    __hash__ = object.__hash__
