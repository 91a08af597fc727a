"""
readmac: a Lisp-style reader with pluggable trigger syntaxes.
"""

from readmac.readmac_registry import (
    Registry, HandlerKind, standard_registry, extended_registry, load_readtable
)
from readmac.readmac_reader import Reader
from readmac.readmac_stream import CharStream
from readmac.readmac_printer import Printer
from readmac.readmac_runtime import ScriptRunner, ExecutionResult

__all__ = [
    "Registry", "HandlerKind", "standard_registry", "extended_registry", "load_readtable",
    "Reader", "CharStream", "Printer", "ScriptRunner", "ExecutionResult",
]
