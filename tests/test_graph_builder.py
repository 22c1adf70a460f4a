import networkx as nx

from decomp_xref.graph_builder import XrefGraphBuilder, class_node_id
from decomp_xref.links import SymbolLink


def _link(line, target, anchor=None, kind="type", archive="app.jar"):
    return SymbolLink(
        start_offset=line * 10,
        end_offset=line * 10 + 3,
        source_line=line,
        source_column=1,
        target_archive_id=archive,
        target_internal_class_name=target,
        target_anchor=anchor,
        kind=kind,
    )


def _builder():
    b = XrefGraphBuilder()
    b.add_links(
        "app.jar",
        "com/example/Main",
        [
            _link(2, "com/example/Foo", kind="import"),
            _link(3, "com/example/Foo", "Foo"),
            _link(5, "com/example/Foo", "Foo"),
            _link(6, "com/example/Foo", "go", kind="method"),
            _link(7, "java/lang/String", "String", archive="rt.jar"),
        ],
    )
    return b


def test_links_fold_into_class_edges():
    g = _builder().get_graph()
    main = class_node_id("app.jar", "com/example/Main")
    foo = class_node_id("app.jar", "com/example/Foo")

    assert g.nodes[foo]["name"] == "Foo"
    assert g.nodes[class_node_id("rt.jar", "java/lang/String")]["archive"] == "rt.jar"
    assert g.number_of_edges(main, foo) == 3
    assert g.edges[main, foo, "REFERENCES:Foo"]["lines"] == [3, 5]
    assert g.edges[main, foo, "CALLS:go"]["anchor"] == "go"


def test_summary_counts_relations():
    assert _builder().summary() == {"classes": 3, "IMPORTS": 1, "REFERENCES": 2, "CALLS": 1}


def test_graphml_export(tmp_path):
    path = tmp_path / "xref.graphml"
    _builder().export_graphml(str(path))

    g = nx.read_graphml(path, force_multigraph=True)
    lines = sorted(d["lines"] for _, _, d in g.edges(data=True))
    assert "3,5" in lines
    assert g.number_of_nodes() == 3
