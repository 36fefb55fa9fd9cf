"""Reconstruction of label sets, chunks, label names and label values from matching rows."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable

from tsparquet.schema.block import Meta
from tsparquet.schema.columns import (
    LABEL_INDEX_COLUMN,
    V0,
    V1,
    V2,
    chunk_column_index,
    chunk_column_name,
    column_to_label_name,
    label_name_to_column,
)
from tsparquet.search.pages import read_column_values, total_rows
from tsparquet.search.rowrange import RowRange
from tsparquet.search.table import ColumnChunk, RowGroup, Table

METRIC_NAME = "__name__"

_CHUNK_HEADER = struct.Struct(">IQQI")
_UINT64_MASK = 2**64 - 1


class ChunkEncoding(IntEnum):
    """Encodings a stored chunk may use."""

    XOR = 1
    HISTOGRAM = 2
    FLOAT_HISTOGRAM = 3


@dataclass(frozen=True)
class ChunkMeta:
    """One encoded chunk of samples and the time span it covers."""

    min_time: int
    max_time: int
    encoding: ChunkEncoding
    data: bytes = field(repr=False)


@dataclass
class SeriesChunks:
    """A series' labels, their hash, and the chunks holding its samples."""

    labels: dict[str, str] = field(default_factory=dict)
    chunks: list[ChunkMeta] = field(default_factory=list)
    lset_hash: int = 0


def _zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def decode_chunks(data: bytes | None) -> list[ChunkMeta]:
    """Decode the concatenated chunks stored in one chunk cell; ``None`` holds none."""
    view = memoryview(data or b"")
    res = []
    pos = 0
    while pos < len(view):
        if len(view) - pos < _CHUNK_HEADER.size:
            raise ValueError(f"truncated chunk header at byte {pos}")
        enc, umin, umax, length = _CHUNK_HEADER.unpack_from(view, pos)
        pos += _CHUNK_HEADER.size
        if pos + length > len(view):
            raise ValueError(f"truncated chunk data at byte {pos}: want {length} bytes")
        try:
            encoding = ChunkEncoding(enc)
        except ValueError:
            raise ValueError(
                f"unable to create chunk from data: invalid chunk encoding {enc}"
            ) from None
        res.append(
            ChunkMeta(
                min_time=_zigzag_decode(umin & _UINT64_MASK),
                max_time=_zigzag_decode(umax & _UINT64_MASK),
                encoding=encoding,
                data=bytes(view[pos:pos + length]),
            )
        )
        pos += length
    return res


def _decode_label_column_index(value: Any) -> list[int]:
    """Column positions listed in a label index cell, written as ``"1,4,7"``."""
    if value is None:
        return []
    text = value.decode("ascii", errors="replace") if isinstance(value, bytes) else value
    if not text:
        return []
    try:
        idxs = [int(part) for part in text.split(",")]
    except ValueError:
        raise ValueError(f"unable to decode column index {value!r}") from None
    return idxs


def _column_name_at(table: Table, idx: int) -> str:
    if not 0 <= idx < len(table.columns):
        raise ValueError(f"column index {idx} is out of range for the table schema")
    return table.columns[idx]


def _row_group_column(row_group: RowGroup, name: str) -> ColumnChunk:
    chunk = row_group.column(name)
    if chunk is None:
        raise ValueError(f"unable to find column {name!r}")
    return chunk


def materialize_label_column(
    row_group: RowGroup, column: ColumnChunk, rr: Iterable[RowRange]
) -> list[Any]:
    """Values of a label column at the rows of ``rr``; ``None`` for nulls."""
    return read_column_values(column, row_group.num_rows, rr)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value.decode() if isinstance(value, bytes) else value


def _columns_v0(meta: Meta, table: Table, row_group: RowGroup, rr: list[RowRange]) -> list[str]:
    """Columns named by the metric map for the metric names found in ``rr``."""
    name_column = label_name_to_column(METRIC_NAME)
    if name_column not in table.columns:
        raise ValueError(f"unable to find column {name_column!r}")
    metric_names = materialize_label_column(
        row_group, _row_group_column(row_group, name_column), rr
    )
    columns: dict[str, None] = {}
    for metric in dict.fromkeys(_text(v) for v in metric_names):
        for col in meta.columns_for_name.get(metric, []):
            if col in table.columns:
                columns[col] = None
    return list(columns)


def _columns_v1(table: Table, row_group: RowGroup, rr: list[RowRange]) -> list[str]:
    """Columns listed in the label index cells of the rows in ``rr``."""
    if LABEL_INDEX_COLUMN not in table.columns:
        raise ValueError(f"unable to find label index column {LABEL_INDEX_COLUMN!r}")
    cells = materialize_label_column(
        row_group, _row_group_column(row_group, LABEL_INDEX_COLUMN), rr
    )
    columns: dict[str, None] = {}
    for cell in dict.fromkeys(cells):
        for idx in _decode_label_column_index(cell):
            columns[_column_name_at(table, idx)] = None
    return list(columns)


def _label_columns(
    meta: Meta, table: Table, row_group: RowGroup, rr: list[RowRange], what: str
) -> list[str]:
    if meta.version == V0:
        return _columns_v0(meta, table, row_group, rr)
    if meta.version in (V1, V2):
        return _columns_v1(table, row_group, rr)
    raise ValueError(f"unable to materialize {what} for block of version {meta.version!r}")


def materialize_labels(
    meta: Meta, table: Table, row_group_index: int, rr: Iterable[RowRange]
) -> list[dict[str, str]]:
    """The label set of every row in ``rr``, in row order, keys sorted."""
    rr = list(rr)
    row_group = table.row_groups[row_group_index]
    if meta.version == V0:
        # The metric name column always belongs to the label set.
        name_column = label_name_to_column(METRIC_NAME)
        columns = list(
            dict.fromkeys([name_column, *_label_columns(meta, table, row_group, rr, "labels")])
        )
    else:
        columns = _label_columns(meta, table, row_group, rr, "labels")

    builders: list[dict[str, str]] = [{} for _ in range(total_rows(rr))]
    for name in columns:
        label = column_to_label_name(name)
        values = materialize_label_column(row_group, _row_group_column(row_group, name), rr)
        for builder, value in zip(builders, values):
            if value is not None:
                builder[label] = _text(value)
    return [dict(sorted(b.items())) for b in builders]


def materialize_chunks(
    meta: Meta,
    table: Table,
    row_group_index: int,
    mint: int,
    maxt: int,
    rr: Iterable[RowRange],
) -> list[list[ChunkMeta]]:
    """Chunks of every row in ``rr`` from the chunk columns covering ``[mint, maxt]``.

    Each row's chunks are ordered by their minimum time.
    """
    rr = list(rr)
    row_group = table.row_groups[row_group_index]
    first = chunk_column_index(meta, mint)
    last = chunk_column_index(meta, maxt)

    res: list[list[ChunkMeta]] = [[] for _ in range(total_rows(rr))]
    for i in range(first, last + 1):
        name = chunk_column_name(i)
        chunk = row_group.column(name)
        if chunk is None:
            raise ValueError(f"unable to find chunk column for column name {name!r}")
        values = read_column_values(chunk, row_group.num_rows, rr)
        for row_chunks, value in zip(res, values):
            row_chunks.extend(decode_chunks(value))

    for row_chunks in res:
        row_chunks.sort(key=lambda c: c.min_time)
    return res


def materialize_label_names(
    meta: Meta, table: Table, row_group_index: int, rr: Iterable[RowRange]
) -> list[str]:
    """Sorted names of the labels that the rows of ``rr`` carry."""
    rr = list(rr)
    row_group = table.row_groups[row_group_index]
    columns = _label_columns(meta, table, row_group, rr, "labels names")
    return sorted({column_to_label_name(c) for c in columns})


def materialize_label_values(
    table: Table, name: str, row_group_index: int, rr: Iterable[RowRange]
) -> list[str]:
    """Distinct non-null values of label ``name`` in the rows of ``rr``, first seen first."""
    column = label_name_to_column(name)
    if column not in table.columns:
        return []
    row_group = table.row_groups[row_group_index]
    chunk = row_group.column(column)
    if chunk is None:
        return []
    values = materialize_label_column(row_group, chunk, rr)
    return list(dict.fromkeys(_text(v) for v in values if v is not None))