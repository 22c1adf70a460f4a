"""
Fold link tables into a NetworkX class cross-reference graph.

Nodes are classes ("archive!internal/Name"), edges are the links found in a
class's decompiled source:
  - IMPORTS     import declarations
  - REFERENCES  type references
  - CALLS       method calls (edge attribute `anchor` holds the method name)
Repeated links between the same pair of classes with the same relation are
merged into one edge carrying every source line.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable

import networkx as nx

from .links import SymbolLink
from .task import XrefResult

logger = logging.getLogger(__name__)

_RELATION_BY_KIND = {"import": "IMPORTS", "type": "REFERENCES", "method": "CALLS"}


def class_node_id(archive_id: str, internal_name: str) -> str:
    return f"{archive_id}!{internal_name}"


class XrefGraphBuilder:
    def __init__(self) -> None:
        self.graph = nx.MultiDiGraph()

    def _ensure_class(self, archive_id: str, internal_name: str) -> str:
        node_id = class_node_id(archive_id, internal_name)
        if node_id not in self.graph:
            self.graph.add_node(
                node_id,
                id=node_id,
                type="Class",
                archive=archive_id,
                name=internal_name.rsplit("/", 1)[-1],
                internal_name=internal_name,
            )
        return node_id

    def add_links(self, archive_id: str, internal_name: str, links: Iterable[SymbolLink]) -> None:
        src = self._ensure_class(archive_id, internal_name)
        for link in links:
            tgt = self._ensure_class(link.target_archive_id, link.target_internal_class_name)
            relation = _RELATION_BY_KIND.get(link.kind, "REFERENCES")
            key = f"{relation}:{link.target_anchor or ''}"
            if self.graph.has_edge(src, tgt, key=key):
                self.graph.edges[src, tgt, key]["lines"].append(link.source_line)
                continue
            self.graph.add_edge(
                src,
                tgt,
                key=key,
                relation=relation,
                type=relation,
                anchor=link.target_anchor or "",
                lines=[link.source_line],
            )

    def add_result(self, result: XrefResult) -> None:
        req = result.request
        self.add_links(req.archive_id, req.internal_name, result.links)

    def get_graph(self) -> nx.MultiDiGraph:
        return self.graph

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {"classes": self.graph.number_of_nodes()}
        for _, _, attrs in self.graph.edges(data=True):
            counts[attrs["relation"]] = counts.get(attrs["relation"], 0) + 1
        logger.info("[XrefGraph] %s", counts)
        return counts

    def export_graphml(self, path: str) -> None:
        # GraphML has no list type
        export = nx.MultiDiGraph()
        export.add_nodes_from(self.graph.nodes(data=True))
        for u, v, k, attrs in self.graph.edges(keys=True, data=True):
            flat = dict(attrs)
            flat["lines"] = ",".join(str(n) for n in attrs["lines"])
            export.add_edge(u, v, key=k, **flat)
        nx.write_graphml(export, path)
