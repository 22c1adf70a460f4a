"""
Class corpus: the loaded archives and a read-only lookup over them.

Archives are enumerated in load order. A lookup checks the archive owning the
current document first, then every other archive in load order, and returns
the first match.
"""
from __future__ import annotations

import logging
import os
import threading
import zipfile
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .classfile import ClassFormatError, ClassStructure, read_class_structure

logger = logging.getLogger(__name__)

CLASS_SUFFIX = ".class"
ROOT_CLASS = "java/lang/Object"


def entry_name(internal_name: str) -> str:
    return internal_name + CLASS_SUFFIX


class Archive:
    """One loaded jar / classpath entry: entry name -> raw bytes."""

    def __init__(
        self,
        archive_id: str,
        entries: Optional[Mapping[str, bytes]] = None,
        *,
        reader: Callable[[bytes], ClassStructure] = read_class_structure,
    ) -> None:
        self.archive_id = archive_id
        self._entries: Dict[str, bytes] = dict(entries or {})
        self._reader = reader
        self._structures: Dict[str, Optional[ClassStructure]] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Archive({self.archive_id!r}, entries={len(self._entries)})"

    def add(self, name: str, data: bytes) -> None:
        self._entries[name] = data

    def entry_names(self) -> List[str]:
        return list(self._entries)

    def has_class(self, internal_name: str) -> bool:
        return entry_name(internal_name) in self._entries

    def class_bytes(self, internal_name: str) -> Optional[bytes]:
        return self._entries.get(entry_name(internal_name))

    def structure(self, internal_name: str) -> Optional[ClassStructure]:
        """Parsed structural metadata, read lazily and cached."""
        with self._lock:
            if internal_name in self._structures:
                return self._structures[internal_name]
        data = self.class_bytes(internal_name)
        parsed: Optional[ClassStructure] = None
        if data is not None:
            try:
                parsed = self._reader(data)
            except ClassFormatError as e:
                logger.debug("cannot read %s in %s: %s", internal_name, self.archive_id, e)
        with self._lock:
            self._structures.setdefault(internal_name, parsed)
            return self._structures[internal_name]

    @classmethod
    def from_jar(cls, path: str | Path, archive_id: Optional[str] = None) -> "Archive":
        p = Path(path)
        archive = cls(archive_id or p.name)
        with zipfile.ZipFile(p) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                archive.add(info.filename, zf.read(info))
        return archive

    @classmethod
    def from_directory(cls, path: str | Path, archive_id: Optional[str] = None) -> "Archive":
        root = Path(path)
        archive = cls(archive_id or root.name)
        for dirpath, _, files in os.walk(root):
            for fn in files:
                full = Path(dirpath) / fn
                archive.add(full.relative_to(root).as_posix(), full.read_bytes())
        return archive


class ClassCorpus:
    """All loaded archives. Loading appends; resolution only reads."""

    def __init__(self, archives: Iterable[Archive] = ()) -> None:
        self._archives: Dict[str, Archive] = {}
        for a in archives:
            self.add_archive(a)

    def add_archive(self, archive: Archive) -> Archive:
        if archive.archive_id in self._archives:
            raise ValueError(f"archive already loaded: {archive.archive_id}")
        self._archives[archive.archive_id] = archive
        return archive

    @property
    def archives(self) -> Tuple[Archive, ...]:
        return tuple(self._archives.values())

    def get_archive(self, archive_id: str) -> Optional[Archive]:
        return self._archives.get(archive_id)

    def _search_order(self, prefer: Optional[str]) -> List[Archive]:
        ordered = list(self._archives.values())
        first = self._archives.get(prefer) if prefer else None
        if first is None:
            return ordered
        return [first] + [a for a in ordered if a is not first]

    def lookup_archive(self, internal_name: str, *, prefer: Optional[str] = None) -> Optional[str]:
        for archive in self._search_order(prefer):
            if archive.has_class(internal_name):
                return archive.archive_id
        return None

    def find(self, internal_name: str, *, prefer: Optional[str] = None) -> Optional[Tuple[str, bytes]]:
        for archive in self._search_order(prefer):
            data = archive.class_bytes(internal_name)
            if data is not None:
                return archive.archive_id, data
        return None

    def class_structure(self, archive_id: str, internal_name: str) -> Optional[ClassStructure]:
        archive = self._archives.get(archive_id)
        return archive.structure(internal_name) if archive else None
