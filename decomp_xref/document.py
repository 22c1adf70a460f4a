"""
SourceDocument: newline-normalized reconstructed text for one class view.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .offsets import OffsetIndex

_NEWLINES = re.compile(r"\r*\n|\r")
# unpaired UTF-16 halves cannot be encoded for the parser
_SURROGATES = re.compile(r"[\ud800-\udfff]")

DIAGNOSTIC_HEADER = "Error: could not parse this file. Hyperlinks will not be inserted."


def normalize_newlines(text: str) -> str:
    return _NEWLINES.sub("\n", text or "")


@dataclass(frozen=True)
class SourceDocument:
    text: str
    owner_internal_name: str
    archive_id: str
    lines: Tuple[str, ...] = field(default=(), repr=False)

    @classmethod
    def from_text(cls, text: str, owner_internal_name: str, archive_id: str) -> "SourceDocument":
        # one U+FFFD per surrogate keeps character columns aligned
        normalized = _SURROGATES.sub("\ufffd", normalize_newlines(text))
        return cls(
            text=normalized,
            owner_internal_name=owner_internal_name,
            archive_id=archive_id,
            lines=tuple(normalized.split("\n")),
        )

    @property
    def line_lengths(self) -> List[int]:
        return [len(ln) for ln in self.lines]

    @property
    def package_prefix(self) -> str:
        """Owner's package in internal form with a trailing slash, or ""."""
        idx = self.owner_internal_name.rfind("/")
        return self.owner_internal_name[: idx + 1] if idx != -1 else ""

    @property
    def owner_simple_name(self) -> str:
        return self.owner_internal_name.rsplit("/", 1)[-1]

    def offset_index(self) -> OffsetIndex:
        return OffsetIndex(self.line_lengths)

    def encoded(self) -> bytes:
        return self.text.encode("utf-8")

    def char_position(self, point: Tuple[int, int]) -> Tuple[int, int]:
        """Tree-sitter (row, byte column), both 0-based -> 1-based (line, char column)."""
        row, byte_col = int(point[0]), int(point[1])
        if row < 0 or row >= len(self.lines):
            # let the offset index report it
            return row + 1, byte_col + 1
        line = self.lines[row]
        if line.isascii():
            return row + 1, byte_col + 1
        prefix = line.encode("utf-8")[:byte_col]
        return row + 1, len(prefix.decode("utf-8", errors="ignore")) + 1

    def with_diagnostic(self, detail: Iterable[str]) -> str:
        """The document text followed by a delimited diagnostic block comment."""
        out: List[str] = ["", "/*", f" * {DIAGNOSTIC_HEADER}"]
        for line in detail:
            out.append(" * " + str(line).replace("*/", "* /"))
        out.append(" */")
        return self.text + "\n" + "\n".join(out) + "\n"


def excerpt(text: str, limit: int = 40) -> str:
    t = " ".join((text or "").split())
    if len(t) > limit:
        t = t[:limit] + "..."
    return t
