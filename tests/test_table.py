import pytest

from tsparquet.search.table import NULL_SYMBOL, ColumnChunk, RowGroup, Table


def test_column_chunk_round_trip():
    values = ["a", None, "b", "a", "c"]
    chunk = ColumnChunk.from_values("x", values, 2)
    assert list(chunk) == values
    assert [v for page in chunk.pages for v in page] == values
    assert chunk.num_values == len(values)


def test_pages_respect_page_size():
    values = [str(i) for i in range(7)]
    chunk = ColumnChunk.from_values("x", values, 3)
    assert all(1 <= len(page) <= 3 for page in chunk.pages)
    assert sum(len(page) for page in chunk.pages) == len(values)


def test_first_rows_and_offsets_are_contiguous():
    values = ["alpha", None, "beta", "gamma", None, "delta", "alpha"]
    chunk = ColumnChunk.from_values("x", values, 2)
    assert chunk.pages[0].first_row == 0
    assert chunk.pages[0].offset == 0
    for prev, nxt in zip(chunk.pages, chunk.pages[1:]):
        assert nxt.first_row == prev.first_row + len(prev)
        assert nxt.offset == prev.offset + prev.compressed_size


def test_page_get_and_null_symbol():
    chunk = ColumnChunk.from_values("x", [None, "v"], 2)
    page = chunk.pages[0]
    assert page.get(0) is None
    assert page.get(1) == "v"
    assert page.symbols[0] == NULL_SYMBOL


def test_dictionary_is_shared_between_pages():
    chunk = ColumnChunk.from_values("x", ["a", "b", "a"], 1)
    assert chunk.pages[0].symbols[0] == chunk.pages[2].symbols[0]
    assert set(chunk.dictionary) == {"a", "b"}
    assert chunk.pages[2].get(0) == "a"


def test_page_statistics():
    chunk = ColumnChunk.from_values("x", [None, None, "b", "a"], 2)
    first, second = chunk.pages
    assert first.null_page
    assert first.min_value is None and first.max_value is None
    assert not second.null_page
    assert (second.min_value, second.max_value) == ("a", "b")


@pytest.mark.parametrize(
    "values, ascending, descending",
    [
        (["a", "b", "c", "d"], True, False),
        (["d", "c", "b", "a"], False, True),
        (["b", "a", "c"], False, False),
        (["a", None, "b"], True, False),
    ],
)
def test_boundary_order(values, ascending, descending):
    chunk = ColumnChunk.from_values("x", values, 1)
    assert chunk.is_ascending is ascending
    assert chunk.is_descending is descending


def test_kinds_are_inferred():
    assert ColumnChunk.from_values("x", [b"\x00", None], 4).kind == "bytes"
    assert ColumnChunk.from_values("x", [1, 2], 4).kind == "int64"
    assert ColumnChunk.from_values("x", [None, None], 4).kind == "string"


def test_invalid_inputs_raise():
    with pytest.raises(TypeError):
        ColumnChunk.from_values("x", ["a", b"b"], 2)
    with pytest.raises(TypeError):
        ColumnChunk.from_values("x", [1.5], 2)
    with pytest.raises(ValueError):
        ColumnChunk.from_values("x", ["a"], 0)


def test_row_group_from_rows():
    rows = [{"a": "1", "b": "x"}, {"a": "2"}, {"a": "3", "b": None}]
    rg = RowGroup.from_rows(rows, ["a", "b"], page_size=2, sorting_columns=["a"])
    assert rg.num_rows == len(rows)
    assert list(rg.column("a")) == ["1", "2", "3"]
    assert list(rg.column("b")) == ["x", None, None]
    assert rg.sorting_columns == ("a",)
    assert rg.column("missing") is None


def test_row_group_rejects_unknown_columns():
    with pytest.raises(ValueError):
        RowGroup.from_rows([{"a": "1", "z": "2"}], ["a"])
    with pytest.raises(ValueError):
        RowGroup.from_rows([{"a": "1"}], ["a"], sorting_columns=["z"])
    with pytest.raises(ValueError):
        RowGroup.from_rows([{"a": "1"}], ["a", "a"])


def test_table_splits_row_groups_in_order():
    rows = [{"a": str(i), "b": "x" if i % 2 else None} for i in range(7)]
    table = Table.from_rows(rows, ["a", "b"], row_group_size=3, page_size=2)
    assert table.num_rows == len(rows)
    assert all(rg.num_rows <= 3 for rg in table.row_groups)
    assert [v for rg in table.row_groups for v in rg.column("a")] == [r["a"] for r in rows]
    assert [v for rg in table.row_groups for v in rg.column("b")] == [r["b"] for r in rows]


def test_table_column_names_and_kinds():
    table = Table.from_rows(
        [{"b": "x", "a": b"\x01"}], ["b", "a"], sorting_columns=["b"]
    )
    assert table.column_names() == ["b", "a"]
    assert table.kinds == {"b": "string", "a": "bytes"}
    assert table.row_groups[0].sorting_columns == ("b",)


def test_empty_table_has_no_row_groups():
    table = Table.from_rows([], ["a"])
    assert table.row_groups == ()
    assert table.column_names() == ["a"]


def test_table_rejects_bad_sizes():
    with pytest.raises(ValueError):
        Table.from_rows([{"a": "1"}], ["a"], row_group_size=0)
    with pytest.raises(ValueError):
        Table.from_rows([{"a": "1"}], ["a"], page_size=0)