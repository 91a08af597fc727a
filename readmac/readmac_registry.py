"""
The trigger registry: which characters (or character pairs) activate which
reader handler.

A registry maps a TriggerKey to a HandlerKind. The reader matches on the kind
to run the handler, so the set of behaviors is closed and known up front. The
extended registry is built by copying the standard one and applying the rows
of the YAML readtable on top of it, then frozen.
"""

import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import yaml

from readmac.readmac_errors import RegistryFrozenError, ReadtableConfigError

TriggerKey = Union[str, Tuple[str, str]]

READTABLE_ENV = "READMAC_READTABLE"
DEFAULT_READTABLE = Path(__file__).parent / "readtable.yaml"


def _dbg(*parts):
    if os.environ.get("READMAC_DEBUG"):
        try:
            print("[DBG]", *parts, file=sys.stderr)
        except Exception:
            pass


class HandlerKind(Enum):
    """Every behavior a trigger can be bound to."""
    # Standard reader
    LIST_OPEN = "list-open"
    LIST_CLOSE = "list-close"
    QUOTE = "quote"
    STRING = "string"
    LINE_COMMENT = "line-comment"
    DISPATCH = "dispatch"
    FUNCTION = "function"
    BLOCK_COMMENT = "block-comment"
    # Extensions
    VECTOR = "vector"
    MAP = "map"
    FIXED_MAP = "fixed-map"
    RAW_STRING = "raw-string"
    POSITIONAL_LAMBDA = "positional-lambda"
    PATH_ACCESS = "path-access"

    @property
    def is_standard(self) -> bool:
        return self in _STANDARD_KINDS


_STANDARD_KINDS = frozenset({
    HandlerKind.LIST_OPEN, HandlerKind.LIST_CLOSE, HandlerKind.QUOTE,
    HandlerKind.STRING, HandlerKind.LINE_COMMENT, HandlerKind.DISPATCH,
    HandlerKind.FUNCTION, HandlerKind.BLOCK_COMMENT,
})


def _normalize_key(trigger: TriggerKey) -> TriggerKey:
    if isinstance(trigger, tuple):
        if len(trigger) != 2 or not all(isinstance(c, str) and len(c) == 1 for c in trigger):
            raise ValueError(f"Dispatch trigger must be a pair of characters: {trigger!r}")
        # Sub-characters are case-insensitive, as with `#V` and `#v`.
        return (trigger[0], trigger[1].lower())
    if not isinstance(trigger, str) or len(trigger) != 1:
        raise ValueError(f"Trigger must be a single character: {trigger!r}")
    return trigger


class Registry:
    """Maps trigger characters and dispatch pairs to handler kinds.

    Single-character triggers also record whether they are terminating,
    i.e. whether they end a token when met in the middle of one.
    """

    def __init__(self):
        self._bindings: Dict[TriggerKey, HandlerKind] = {}
        self._terminating: Set[str] = set()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, trigger: TriggerKey, kind: HandlerKind, terminating: bool = True) -> None:
        """Install or replace the binding for trigger. Last write wins."""
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {trigger!r} on a frozen registry")
        key = _normalize_key(trigger)
        if isinstance(key, tuple) and self._bindings.get(key[0]) is not HandlerKind.DISPATCH:
            raise ValueError(f"{key[0]!r} is not a dispatching character")
        self._bindings[key] = kind
        if isinstance(key, str):
            if terminating:
                self._terminating.add(key)
            else:
                self._terminating.discard(key)

    def dispatch(self, trigger: TriggerKey) -> Optional[HandlerKind]:
        """Return the kind bound to trigger, or None to fall back to plain tokenizing."""
        try:
            return self._bindings.get(_normalize_key(trigger))
        except ValueError:
            return None

    def is_terminating(self, ch: str) -> bool:
        return ch in self._terminating

    def copy(self) -> 'Registry':
        """Return an unfrozen copy carrying the same bindings."""
        new = Registry()
        new._bindings = dict(self._bindings)
        new._terminating = set(self._terminating)
        return new

    def freeze(self) -> 'Registry':
        self._frozen = True
        return self

    def keys(self):
        return self._bindings.keys()

    def __contains__(self, trigger) -> bool:
        return self.dispatch(trigger) is not None

    def __len__(self) -> int:
        return len(self._bindings)

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"<Registry {len(self._bindings)} bindings {state}>"


def standard_registry() -> Registry:
    """The baseline bindings every reader starts from."""
    reg = Registry()
    reg.register("(", HandlerKind.LIST_OPEN)
    reg.register(")", HandlerKind.LIST_CLOSE)
    reg.register("'", HandlerKind.QUOTE)
    reg.register('"', HandlerKind.STRING)
    reg.register(";", HandlerKind.LINE_COMMENT)
    reg.register("#", HandlerKind.DISPATCH, terminating=False)
    reg.register(("#", "'"), HandlerKind.FUNCTION)
    reg.register(("#", "|"), HandlerKind.BLOCK_COMMENT)
    return reg.freeze()


def _parse_row(row: Any, index: int) -> Tuple[TriggerKey, HandlerKind, bool]:
    if not isinstance(row, dict):
        raise ReadtableConfigError(f"Readtable row {index} must be a mapping, got {type(row).__name__}")
    trigger = row.get("trigger")
    if not isinstance(trigger, str) or len(trigger) != 1:
        raise ReadtableConfigError(f"Readtable row {index}: 'trigger' must be one character")
    sub = row.get("sub")
    if sub is not None and (not isinstance(sub, str) or len(sub) != 1):
        raise ReadtableConfigError(f"Readtable row {index}: 'sub' must be one character")
    try:
        kind = HandlerKind(row.get("handler"))
    except ValueError:
        raise ReadtableConfigError(
            f"Readtable row {index}: unknown handler {row.get('handler')!r}"
        ) from None
    terminating = row.get("terminating", True)
    if not isinstance(terminating, bool):
        raise ReadtableConfigError(f"Readtable row {index}: 'terminating' must be true or false")
    key: TriggerKey = (trigger, sub) if sub is not None else trigger
    return key, kind, terminating


def load_readtable(path: Optional[Union[str, Path]] = None) -> List[Tuple[TriggerKey, HandlerKind, bool]]:
    """Load the extension rows from a YAML readtable.

    The path defaults to $READMAC_READTABLE, then to the bundled readtable.yaml.
    """
    if path is None:
        path = os.environ.get(READTABLE_ENV) or DEFAULT_READTABLE
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    rows = (data or {}).get("triggers") if isinstance(data, dict) else None
    if not isinstance(rows, list):
        raise ReadtableConfigError(f"{path}: expected a top-level 'triggers' list")
    return [_parse_row(row, i) for i, row in enumerate(rows)]


def extended_registry(baseline: Optional[Registry] = None,
                      rows: Optional[List[Tuple[TriggerKey, HandlerKind, bool]]] = None) -> Registry:
    """Copy the baseline bindings and apply the extension rows on top."""
    base = baseline if baseline is not None else standard_registry()
    reg = base.copy()
    if rows is None:
        rows = load_readtable()
    for key, kind, terminating in rows:
        if reg.dispatch(key) is not None:
            _dbg("readtable: rebinding", repr(key), "->", kind.value)
        reg.register(key, kind, terminating=terminating)
    _dbg("readtable: composed", len(reg), "bindings")
    return reg.freeze()
