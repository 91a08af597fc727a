"""
A character cursor over source text with lookahead and pushback.
"""

from bisect import bisect_right
from typing import Tuple


class CharStream:
    """A simple string-backed stream with one-character lookahead.

    `read_char` and `peek_char` return the empty string at end of input.
    Lines and columns are 1-based and refer to the character returned by the
    next `peek_char`.
    """

    __slots__ = ("_text", "_pos", "_line_starts")

    def __init__(self, text: str):
        self._text = text
        self._pos = 0
        self._line_starts = [0]
        for i, ch in enumerate(text):
            if ch == "\n":
                self._line_starts.append(i + 1)

    @property
    def text(self) -> str:
        return self._text

    @property
    def pos(self) -> int:
        return self._pos

    @property
    def at_eof(self) -> bool:
        return self._pos >= len(self._text)

    @property
    def line(self) -> int:
        return bisect_right(self._line_starts, self._pos)

    @property
    def col(self) -> int:
        return self._pos - self._line_starts[self.line - 1] + 1

    @property
    def loc(self) -> Tuple[int, int]:
        """Return (line, col) of the next character."""
        return self.line, self.col

    def peek_char(self) -> str:
        """Return the next character without consuming it."""
        if self._pos >= len(self._text):
            return ""
        return self._text[self._pos]

    def read_char(self) -> str:
        """Consume and return the next character."""
        if self._pos >= len(self._text):
            return ""
        ch = self._text[self._pos]
        self._pos += 1
        return ch

    def unread_char(self) -> None:
        """Push the most recently read character back onto the stream."""
        if self._pos == 0:
            raise IndexError("Nothing to unread at start of stream")
        self._pos -= 1

    def __repr__(self) -> str:
        line, col = self.loc
        return f"<CharStream line={line} col={col} eof={self.at_eof}>"
