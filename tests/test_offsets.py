"""Tests for the (line, column) -> offset index."""

import pytest
from hypothesis import given, settings, strategies as st

from decomp_xref.document import SourceDocument
from decomp_xref.offsets import OffsetIndex, OutOfRange


def test_offsets_match_text_positions():
    doc = SourceDocument.from_text("class A {\r\n  int x;\r\n}", "A", "a.jar")
    index = doc.offset_index()

    assert doc.text == "class A {\n  int x;\n}"
    assert index.offset(1, 1) == 0
    assert doc.text[index.offset(2, 3):].startswith("int x;")
    assert doc.text[index.offset(3, 1)] == "}"


def test_end_of_line_column_is_allowed():
    index = OffsetIndex([3, 0, 2])
    assert index.offset(1, 4) == 3
    assert index.offset(2, 1) == 4
    assert index.offset(3, 3) == 7


@pytest.mark.parametrize("line,column", [(0, 1), (4, 1), (1, 0), (1, 5), (2, 2)])
def test_positions_outside_the_text_raise(line, column):
    index = OffsetIndex([3, 0, 2])
    with pytest.raises(OutOfRange):
        index.offset(line, column)


def test_out_of_range_is_a_value_error():
    with pytest.raises(ValueError):
        OffsetIndex([]).offset(1, 1)


line_lengths = st.lists(st.integers(min_value=0, max_value=40), min_size=1, max_size=30)


@st.composite
def index_and_positions(draw):
    lengths = draw(line_lengths)
    positions = st.integers(min_value=1, max_value=len(lengths)).flatmap(
        lambda ln: st.tuples(st.just(ln), st.integers(min_value=1, max_value=lengths[ln - 1] + 1))
    )
    return lengths, draw(positions), draw(positions)


@given(index_and_positions())
@settings(max_examples=300)
def test_offsets_are_monotonic(data):
    lengths, a, b = data
    index = OffsetIndex(lengths)
    lo, hi = sorted([a, b])
    assert index.offset(*lo) <= index.offset(*hi)


@given(index_and_positions())
def test_offsets_are_deterministic_and_point_into_the_text(data):
    lengths, a, _ = data
    text = "\n".join("x" * n for n in lengths)
    index = OffsetIndex(lengths)

    off = index.offset(*a)
    assert off == OffsetIndex(lengths).offset(*a)
    assert 0 <= off <= len(text)
    line, column = a
    # the character before the offset on the same line, or a newline at column 1
    prefix = text[:off]
    assert prefix.count("\n") == line - 1
    assert len(prefix) - (prefix.rfind("\n") + 1) == column - 1
