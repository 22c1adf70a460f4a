"""
Link table: resolved spans handed to the presentation layer.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterator, List, Optional

from .corpus import entry_name


@dataclass(frozen=True)
class SymbolLink:
    start_offset: int
    end_offset: int
    source_line: int
    source_column: int
    target_archive_id: str
    target_internal_class_name: str
    target_anchor: Optional[str] = None
    kind: str = "type"  # "type" | "method" | "import"

    @property
    def target_entry_name(self) -> str:
        return entry_name(self.target_internal_class_name)

    def covers(self, offset: int) -> bool:
        return self.start_offset <= offset < self.end_offset

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["target_entry_name"] = self.target_entry_name
        return d


class LinkTable:
    """Append-only, ordered as the links were produced during traversal."""

    def __init__(self) -> None:
        self._links: List[SymbolLink] = []

    def append(self, link: SymbolLink) -> None:
        self._links.append(link)

    def __iter__(self) -> Iterator[SymbolLink]:
        return iter(self._links)

    def __len__(self) -> int:
        return len(self._links)

    def __getitem__(self, i: int) -> SymbolLink:
        return self._links[i]

    def at(self, offset: int) -> Optional[SymbolLink]:
        """The link a click at *offset* navigates to (innermost if nested)."""
        hits = [ln for ln in self._links if ln.covers(offset)]
        if not hits:
            return None
        return min(hits, key=lambda ln: ln.end_offset - ln.start_offset)

    def to_list(self) -> List[Dict]:
        return [ln.to_dict() for ln in self._links]
