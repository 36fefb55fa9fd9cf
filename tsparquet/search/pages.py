"""Planning and performing reads of the pages of a column chunk for a set of row ranges."""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from tsparquet.search.metrics import (
    COLUMN_MATERIALIZED,
    PAGES_READ,
    PAGES_READ_SIZE,
    ROWS_MATERIALIZED,
    current_method,
)
from tsparquet.search.partitioner import MAX_UINT64, GapBasedPartitioner
from tsparquet.search.rowrange import RowRange, intersect, intersection, simplify
from tsparquet.search.table import ColumnChunk


@dataclass(frozen=True)
class PageEntryRead:
    """A run of pages read together, and the row ranges wanted from them."""

    pages: tuple[int, ...]
    rows: tuple[RowRange, ...]


def total_rows(rr: Iterable[RowRange]) -> int:
    """Number of rows covered by the ranges."""
    return sum(r.count for r in rr)


def pages_to_rows(
    column: ColumnChunk, num_rows: int, rr: Iterable[RowRange]
) -> dict[int, list[RowRange]]:
    """Map each page index that ``rr`` touches to the parts of ``rr`` inside that page."""
    rr = list(rr)
    pages = column.pages
    ends = [p.first_row for p in pages[1:]] + [num_rows]
    res: dict[int, list[RowRange]] = {}
    for i, (page, end) in enumerate(zip(pages, ends)):
        span = RowRange(page.first_row, end - page.first_row)
        hits = [intersection(r, span) for r in rr if intersect(span, r)]
        if hits:
            res[i] = hits
    return res


def partition_page_ranges(
    max_range_size: int,
    max_gap_size: int,
    page_rows: Mapping[int, list[RowRange]],
    column: ColumnChunk,
) -> list[PageEntryRead]:
    """Group the wanted pages into byte-contiguous reads bounded by size and gap."""
    if not page_rows:
        return []
    indexes = sorted(page_rows)
    pages = column.pages

    def byte_range(i: int) -> tuple[int, int]:
        page = pages[indexes[i]]
        return page.offset, page.offset + page.compressed_size

    partitioner = GapBasedPartitioner(max_range_size, max_gap_size)
    res = []
    for part in partitioner.partition(len(indexes), byte_range):
        chosen = indexes[part.elem_rng[0]:part.elem_rng[1]]
        rows = [r for idx in chosen for r in page_rows[idx]]
        res.append(PageEntryRead(pages=tuple(chosen), rows=tuple(simplify(rows))))
    return res


def _method_or_none() -> str | None:
    try:
        return current_method()
    except LookupError:
        return None


def _value_at(column: ColumnChunk, firsts: list[int], row: int) -> Any:
    if row < 0 or row >= column.num_values:
        raise ValueError(f"row {row} is out of range for column {column.name!r}")
    page = column.pages[bisect_right(firsts, row) - 1]
    return page.get(row - page.first_row)


def read_column_values(
    column: ColumnChunk,
    num_rows: int,
    rr: Iterable[RowRange],
    max_range_size: int = MAX_UINT64,
    max_gap_size: int = MAX_UINT64,
) -> list[Any]:
    """Values of ``column`` at the rows of ``rr``, in row order; ``None`` for nulls."""
    rr = list(rr)
    if not rr:
        return []

    page_rows = pages_to_rows(column, num_rows, rr)
    parts = partition_page_ranges(max_range_size, max_gap_size, page_rows, column)

    method = _method_or_none()
    if method is not None:
        COLUMN_MATERIALIZED.add(1, column.name, method)
        ROWS_MATERIALIZED.add(total_rows(rr), column.name, method)

    firsts = [p.first_row for p in column.pages]
    collected: dict[RowRange, list[Any]] = {}
    for part in parts:
        if method is not None:
            first = column.pages[part.pages[0]]
            last = column.pages[part.pages[-1]]
            PAGES_READ.add(len(part.pages), column.name, method)
            PAGES_READ_SIZE.add(
                last.offset + last.compressed_size - first.offset, column.name, method
            )
        for r in part.rows:
            collected[r] = [_value_at(column, firsts, row) for row in range(r.start, r.end)]

    return [v for r in sorted(collected, key=lambda r: r.start) for v in collected[r]]