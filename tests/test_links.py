from decomp_xref.links import LinkTable, SymbolLink


def _link(start, end, target, kind="type"):
    return SymbolLink(
        start_offset=start,
        end_offset=end,
        source_line=1,
        source_column=start + 1,
        target_archive_id="app.jar",
        target_internal_class_name=target,
        kind=kind,
    )


def test_click_picks_innermost_link():
    table = LinkTable()
    table.append(_link(10, 25, "com/example/Outer", kind="import"))
    table.append(_link(20, 25, "com/example/Outer$Inner"))
    table.append(_link(30, 33, "com/example/Foo"))

    assert table.at(12).target_internal_class_name == "com/example/Outer"
    assert table.at(22).target_internal_class_name == "com/example/Outer$Inner"
    assert table.at(30).target_internal_class_name == "com/example/Foo"


def test_click_outside_links_and_at_exclusive_end():
    table = LinkTable()
    table.append(_link(30, 33, "com/example/Foo"))

    assert table.at(29) is None
    assert table.at(33) is None
    assert LinkTable().at(0) is None


def test_table_keeps_append_order_and_exports_entry_names():
    table = LinkTable()
    table.append(_link(30, 33, "com/example/Foo"))
    table.append(_link(5, 8, "com/example/Bar", kind="method"))

    assert [ln.target_internal_class_name for ln in table] == ["com/example/Foo", "com/example/Bar"]
    rows = table.to_list()
    assert rows[0]["target_entry_name"] == "com/example/Foo.class"
    assert rows[1]["kind"] == "method"
