"""
Outcome of resolving one reference.

Resolvers return one of these instead of raising; only Resolved produces a link.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Resolved:
    archive_id: str
    internal_name: str
    anchor: Optional[str] = None
    # object return type of a resolved method, for an outer chained call
    return_type: Optional[str] = None


@dataclass(frozen=True)
class Unresolved:
    reason: str


@dataclass(frozen=True)
class Ambiguous:
    candidates: Tuple[str, ...]


@dataclass(frozen=True)
class Unsupported:
    reason: str


Resolution = Union[Resolved, Unresolved, Ambiguous, Unsupported]


def describe(res: Resolution) -> str:
    if isinstance(res, Resolved):
        return f"resolved {res.internal_name} in {res.archive_id}"
    if isinstance(res, Ambiguous):
        return "ambiguous " + ", ".join(res.candidates)
    if isinstance(res, Unsupported):
        return "unsupported: " + res.reason
    return "unresolved: " + res.reason
