import pytest

from readmac.readmac_registry import (
    Registry, HandlerKind, standard_registry, extended_registry, load_readtable,
    READTABLE_ENV,
)
from readmac.readmac_errors import RegistryFrozenError, ReadtableConfigError

# =================================================================
# Standard registry
# =================================================================

def test_standard_registry_bindings():
    reg = standard_registry()
    assert reg.frozen
    assert reg.dispatch("(") is HandlerKind.LIST_OPEN
    assert reg.dispatch(")") is HandlerKind.LIST_CLOSE
    assert reg.dispatch("'") is HandlerKind.QUOTE
    assert reg.dispatch('"') is HandlerKind.STRING
    assert reg.dispatch(";") is HandlerKind.LINE_COMMENT
    assert reg.dispatch("#") is HandlerKind.DISPATCH
    assert reg.dispatch(("#", "'")) is HandlerKind.FUNCTION
    assert reg.dispatch(("#", "|")) is HandlerKind.BLOCK_COMMENT


def test_unregistered_trigger_passes_to_tokenizing():
    reg = standard_registry()
    assert reg.dispatch("a") is None
    assert reg.dispatch("@") is None
    assert reg.dispatch(("#", "v")) is None
    assert "@" not in reg


def test_dispatch_of_malformed_key_is_none():
    reg = standard_registry()
    assert reg.dispatch("ab") is None
    assert reg.dispatch(("#",)) is None


# =================================================================
# Extended registry
# =================================================================

EXTENSION_ROWS = [
    (("#", "v"), HandlerKind.VECTOR),
    (("#", "h"), HandlerKind.MAP),
    ("{", HandlerKind.FIXED_MAP),
    ("}", HandlerKind.LIST_CLOSE),
    (("#", "`"), HandlerKind.POSITIONAL_LAMBDA),
    ("^", HandlerKind.POSITIONAL_LAMBDA),
    (("#", "/"), HandlerKind.RAW_STRING),
    ("@", HandlerKind.PATH_ACCESS),
]


@pytest.mark.parametrize("trigger, kind", EXTENSION_ROWS, ids=[str(r[0]) for r in EXTENSION_ROWS])
def test_extended_registry_rows(trigger, kind):
    reg = extended_registry()
    assert reg.dispatch(trigger) is kind


def test_extended_registry_preserves_baseline():
    base = standard_registry()
    ext = extended_registry(base)
    for key in base.keys():
        assert ext.dispatch(key) is base.dispatch(key)
    assert len(ext) == len(base) + len(EXTENSION_ROWS)
    # The baseline itself is untouched
    assert base.dispatch(("#", "v")) is None
    assert base.dispatch("@") is None


def test_extended_registry_is_frozen():
    ext = extended_registry()
    assert ext.frozen
    with pytest.raises(RegistryFrozenError):
        ext.register("!", HandlerKind.QUOTE)


def test_dispatch_subchar_is_case_insensitive():
    ext = extended_registry()
    assert ext.dispatch(("#", "V")) is HandlerKind.VECTOR
    assert ext.dispatch(("#", "H")) is HandlerKind.MAP


def test_terminating_flags():
    ext = extended_registry()
    assert ext.is_terminating("(")
    assert ext.is_terminating("{")
    assert ext.is_terminating("}")
    assert not ext.is_terminating("#")
    assert not ext.is_terminating("@")
    assert not ext.is_terminating("^")
    assert not ext.is_terminating("a")


def test_reregistration_replaces_binding():
    reg = standard_registry().copy()
    before = len(reg)
    reg.register("(", HandlerKind.FIXED_MAP)
    assert reg.dispatch("(") is HandlerKind.FIXED_MAP
    assert len(reg) == before


def test_reregistration_can_clear_terminating_flag():
    reg = Registry()
    reg.register("!", HandlerKind.QUOTE)
    assert reg.is_terminating("!")
    reg.register("!", HandlerKind.QUOTE, terminating=False)
    assert not reg.is_terminating("!")


def test_copy_is_unfrozen_and_independent():
    base = standard_registry()
    c = base.copy()
    assert not c.frozen
    c.register("@", HandlerKind.PATH_ACCESS, terminating=False)
    assert base.dispatch("@") is None


def test_pair_on_non_dispatching_char_is_rejected():
    reg = Registry()
    with pytest.raises(ValueError):
        reg.register(("x", "y"), HandlerKind.VECTOR)


def test_bad_trigger_shapes_are_rejected():
    reg = Registry()
    with pytest.raises(ValueError):
        reg.register("ab", HandlerKind.QUOTE)
    with pytest.raises(ValueError):
        reg.register(("#", "ab"), HandlerKind.QUOTE)


# =================================================================
# Readtable configuration
# =================================================================

def test_default_readtable_rows():
    rows = load_readtable()
    assert [(key, kind) for key, kind, _ in rows] == EXTENSION_ROWS
    terminating = {key: flag for key, _, flag in rows}
    assert terminating["@"] is False
    assert terminating["^"] is False
    assert terminating["{"] is True


def test_readtable_from_path(tmp_path):
    table = tmp_path / "table.yaml"
    table.write_text(
        "triggers:\n"
        "  - trigger: '#'\n"
        "    sub: 'v'\n"
        "    handler: vector\n",
        encoding="utf-8",
    )
    ext = extended_registry(rows=load_readtable(table))
    assert ext.dispatch(("#", "v")) is HandlerKind.VECTOR
    assert ext.dispatch("@") is None


def test_readtable_env_override(tmp_path, monkeypatch):
    table = tmp_path / "only-path.yaml"
    table.write_text(
        "triggers:\n"
        "  - trigger: '@'\n"
        "    handler: path-access\n"
        "    terminating: false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(READTABLE_ENV, str(table))
    ext = extended_registry()
    assert ext.dispatch("@") is HandlerKind.PATH_ACCESS
    assert ext.dispatch(("#", "v")) is None


@pytest.mark.parametrize("content", [
    "rows: []\n",
    "triggers:\n  - trigger: '@'\n    handler: no-such-handler\n",
    "triggers:\n  - trigger: '@@'\n    handler: path-access\n",
    "triggers:\n  - trigger: '#'\n    sub: 'vv'\n    handler: vector\n",
    "triggers:\n  - trigger: '@'\n    handler: path-access\n    terminating: 'no'\n",
    "triggers:\n  - just-a-string\n",
], ids=["missing_triggers", "unknown_handler", "long_trigger", "long_sub", "bad_flag", "not_a_mapping"])
def test_bad_readtable_rows(tmp_path, content):
    table = tmp_path / "bad.yaml"
    table.write_text(content, encoding="utf-8")
    with pytest.raises(ReadtableConfigError):
        load_readtable(table)
