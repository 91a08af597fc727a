"""
Error types raised while reading source text.

Every reader error carries the line and column where it was detected so the
script runner can point at the offending source.
"""

from typing import Optional


class ReaderError(Exception):
    """Base class for all failures raised by the reader and its handlers."""

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col

    def __str__(self) -> str:
        if self.line is not None and self.col is not None:
            return f"{self.message} (line {self.line}, col {self.col})"
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, line={self.line}, col={self.col})"


class UnterminatedListError(ReaderError):
    """The stream ended before a delimited list saw its closer."""


class UnterminatedStringError(ReaderError):
    """The stream ended inside a string or raw string."""


class MalformedLiteralError(ReaderError):
    """A literal is structurally inconsistent (missing opener, odd pairs, bad test)."""


class InvalidIndexError(ReaderError):
    """A path index segment is not a non-negative integer."""


class InvalidPathError(ReaderError):
    """A path field segment is empty, e.g. `a..b` or `a.`."""


class UnexpectedEOFError(ReaderError):
    """The stream ended where a form was required."""


class UnmatchedCloseError(ReaderError):
    """A closing delimiter appeared where no list was open."""


class UnknownDispatchError(ReaderError):
    """A dispatch character was followed by an unbound sub-character."""


class RegistryFrozenError(Exception):
    """Raised when registering on a registry that has already been frozen."""


class ReadtableConfigError(ValueError):
    """A readtable configuration row is missing fields or names an unknown handler."""
