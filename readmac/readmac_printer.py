"""
A printer for readmac expressions and runtime values.
"""
import collections.abc

from readmac.readmac_datatypes import (
    Symbol, Keyword, Vector, HashMap, Closure, DEFAULT_MAP_TEST
)

_STR_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
}

_QUOTE_PREFIXES = {
    "quote": "'",
    "function": "#'",
}


class Printer:
    """Formats expressions and values as source text the standard reader accepts."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, HashMap):
            return self._pformat_map
        if isinstance(obj, Vector):
            return self._pformat_vector
        if isinstance(obj, list):
            return self._pformat_list
        if isinstance(obj, collections.abc.Mapping):
            return self._pformat_mapping
        if callable(obj):
            return self._pformat_builtin
        # Default to Python's repr for unknown types
        return repr

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            Symbol: self._pformat_symbol,
            Keyword: self._pformat_keyword,
            list: self._pformat_list,
            Vector: self._pformat_vector,
            HashMap: self._pformat_map,
            Closure: self._pformat_closure,
        }

    def _pformat_primitive(self, obj):
        return repr(obj)

    def _pformat_str(self, obj):
        escaped = "".join(_STR_ESCAPES.get(ch, ch) for ch in obj)
        return f'"{escaped}"'

    def _pformat_bool(self, obj):
        return 't' if obj else 'nil'

    def _pformat_none(self, obj):
        return 'nil'

    def _pformat_symbol(self, obj):
        return obj.text

    def _pformat_keyword(self, obj):
        return f":{obj.text}"

    def _pformat_list(self, obj):
        if len(obj) == 2 and isinstance(obj[0], Symbol) and obj[0].text in _QUOTE_PREFIXES:
            return f"{_QUOTE_PREFIXES[obj[0].text]}{self.pformat(obj[1])}"
        inner = " ".join(self.pformat(item) for item in obj)
        return f"({inner})"

    def _pformat_datum(self, obj):
        """Format a value stored inside a vector or map.

        Literal contents are evaluated when read back, so symbols and plain
        lists are quoted to come back as data.
        """
        if isinstance(obj, Symbol) or type(obj) is list:
            return f"'{self.pformat(obj)}"
        return self.pformat(obj)

    def _pformat_vector(self, obj):
        inner = " ".join(self._pformat_datum(item) for item in obj)
        return f"#v({inner})"

    def _pformat_map(self, obj):
        parts = [] if obj.test == DEFAULT_MAP_TEST else [obj.test]
        for key, value in obj.items():
            parts.append(self._pformat_datum(key))
            parts.append(self._pformat_datum(value))
        return f"#h({' '.join(parts)})"

    def _pformat_mapping(self, obj):
        parts = []
        for key, value in obj.items():
            parts.append(self._pformat_datum(key))
            parts.append(self._pformat_datum(value))
        return f"{{{' '.join(parts)}}}"

    def _pformat_closure(self, obj):
        label = obj.name or "lambda"
        return f"#<{label} ({' '.join(obj.params)})>"

    def _pformat_builtin(self, obj):
        name = getattr(obj, "__name__", None) or "builtin"
        return f"#<builtin {name.lstrip('_').replace('_', '-')}>"
