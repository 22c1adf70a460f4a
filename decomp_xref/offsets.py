"""
(line, column) -> absolute character offset for reconstructed source.

Lines and columns are 1-based, offsets are 0-based. The text is assumed to be
newline-normalized (every line ending is a single "\\n").
"""
from __future__ import annotations

from itertools import accumulate
from typing import List, Sequence


class OutOfRange(ValueError):
    """A position that does not exist in the indexed text."""


class OffsetIndex:
    def __init__(self, line_lengths: Sequence[int]) -> None:
        self.line_lengths: List[int] = [int(n) for n in line_lengths]
        # line_starts[i] is the offset of the first character of line i + 1
        self.line_starts: List[int] = [0] + list(accumulate(n + 1 for n in self.line_lengths))[:-1]
        if not self.line_lengths:
            self.line_starts = []

    @property
    def line_count(self) -> int:
        return len(self.line_lengths)

    def offset(self, line: int, column: int) -> int:
        if line < 1 or line > self.line_count:
            raise OutOfRange(f"line {line} outside 1..{self.line_count}")
        # column may point one past the last character (exclusive end of a line)
        max_col = self.line_lengths[line - 1] + 1
        if column < 1 or column > max_col:
            raise OutOfRange(f"column {column} outside 1..{max_col} on line {line}")
        return self.line_starts[line - 1] + (column - 1)

    def span(self, start: tuple, end: tuple) -> tuple:
        """Offsets for a (line, column) start and (exclusive) end pair."""
        return self.offset(*start), self.offset(*end)
