"""Pytest fixtures: tiny class files, corpora and a one-call resolve helper."""

import struct
from typing import Dict, Iterable, Optional, Sequence, Tuple

import pytest

from decomp_xref.config import XrefConfig
from decomp_xref.corpus import Archive, ClassCorpus
from decomp_xref.document import SourceDocument
from decomp_xref.java_ast import JavaSourceParser
from decomp_xref.resolver import ReferenceResolver

Methods = Sequence[Tuple[str, str]]


def build_class_file(
    internal_name: str,
    super_name: Optional[str] = "java/lang/Object",
    methods: Methods = (),
    *,
    with_long_constant: bool = False,
) -> bytes:
    """Assemble a minimal but well-formed class file."""
    pool = []
    index: Dict[Tuple[str, str], int] = {}

    def utf8(s: str) -> int:
        if ("u", s) not in index:
            raw = s.encode("utf-8")
            pool.append(struct.pack(">BH", 1, len(raw)) + raw)
            index[("u", s)] = len(pool)
        return index[("u", s)]

    def cls(s: str) -> int:
        name_idx = utf8(s)
        if ("c", s) not in index:
            pool.append(struct.pack(">BH", 7, name_idx))
            index[("c", s)] = len(pool)
        return index[("c", s)]

    this_idx = cls(internal_name)
    if with_long_constant:
        # Long occupies two pool slots
        pool.append(struct.pack(">Bq", 5, 42))
        pool.append(b"")
    super_idx = cls(super_name) if super_name else 0
    method_refs = [(utf8(n), utf8(d)) for n, d in methods]

    out = struct.pack(">IHH", 0xCAFEBABE, 0, 52)
    out += struct.pack(">H", len(pool) + 1) + b"".join(pool)
    out += struct.pack(">HHH", 0x21, this_idx, super_idx)
    out += struct.pack(">H", 0)  # interfaces
    out += struct.pack(">H", 0)  # fields
    out += struct.pack(">H", len(method_refs))
    for name_idx, desc_idx in method_refs:
        out += struct.pack(">HHHH", 0x1, name_idx, desc_idx, 0)
    out += struct.pack(">H", 0)  # attributes
    return out


@pytest.fixture
def class_file():
    return build_class_file


@pytest.fixture
def make_archive():
    def _make(archive_id: str, classes: Dict[str, Tuple[Optional[str], Methods]], **kwargs) -> Archive:
        archive = Archive(archive_id, **kwargs)
        for internal_name, (super_name, methods) in classes.items():
            archive.add(internal_name + ".class", build_class_file(internal_name, super_name, methods))
        return archive

    return _make


@pytest.fixture
def make_corpus(make_archive):
    def _make(archives: Dict[str, Dict[str, Tuple[Optional[str], Methods]]]) -> ClassCorpus:
        return ClassCorpus(make_archive(aid, classes) for aid, classes in archives.items())

    return _make


@pytest.fixture
def resolve_source():
    def _resolve(
        text: str,
        corpus: ClassCorpus,
        *,
        owner: str = "com/example/Main",
        archive_id: str = "app.jar",
        config: Optional[XrefConfig] = None,
        is_cancelled=None,
    ) -> ReferenceResolver:
        document = SourceDocument.from_text(text, owner, archive_id)
        parsed = JavaSourceParser().parse(document)
        assert parsed.ok, parsed.errors
        resolver = ReferenceResolver(corpus, parsed, config=config, is_cancelled=is_cancelled)
        resolver.resolve()
        return resolver

    return _resolve


def link_texts(resolver: ReferenceResolver, kind: Optional[str] = None) -> Iterable[Tuple[str, str]]:
    text = resolver.document.text
    return [
        (text[ln.start_offset:ln.end_offset], ln.target_internal_class_name)
        for ln in resolver.links
        if kind is None or ln.kind == kind
    ]


@pytest.fixture
def spans():
    return link_texts
