"""Column naming conventions of the parquet layout."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tsparquet.schema.block import Meta

LABEL_COLUMN_PREFIX = "___cf_meta_label_"
LABEL_INDEX_COLUMN = "___cf_meta_index"
LABEL_HASH_COLUMN = "___cf_meta_hash"
CHUNKS_COLUMN_0 = "___cf_meta_chunk_0"
CHUNKS_COLUMN_1 = "___cf_meta_chunk_1"
CHUNKS_COLUMN_2 = "___cf_meta_chunk_2"

CHUNK_COLUMN_LENGTH = timedelta(hours=8)
CHUNK_COLUMNS_PER_DAY = 3

# Blocks hold a map from metric name to the columns of its series.
V0 = 0
# Labels file holds an encoded list of the columns each row populates.
V1 = 1
# Chunks file holds the hash of each series' labels.
V2 = 2

CHUNK_COLUMNS = (LABEL_HASH_COLUMN, CHUNKS_COLUMN_0, CHUNKS_COLUMN_1, CHUNKS_COLUMN_2)

_CHUNK_COLUMN_NAMES = (CHUNKS_COLUMN_0, CHUNKS_COLUMN_1, CHUNKS_COLUMN_2)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def chunk_column_name(i: int) -> str:
    """Name of the i-th chunk column."""
    if 0 <= i < len(_CHUNK_COLUMN_NAMES):
        return _CHUNK_COLUMN_NAMES[i]
    raise ValueError(f"no chunk column with index {i}")


def label_name_to_column(lbl: str) -> str:
    """Column name holding the given label."""
    return f"{LABEL_COLUMN_PREFIX}{lbl}"


def column_to_label_name(col: str) -> str:
    """Label name stored in the given column."""
    return col[len(LABEL_COLUMN_PREFIX):] if col.startswith(LABEL_COLUMN_PREFIX) else col


def _as_datetime(t: datetime | int) -> datetime:
    if isinstance(t, datetime):
        return t if t.tzinfo is not None else t.replace(tzinfo=timezone.utc)
    return _EPOCH + timedelta(milliseconds=t)


def chunk_column_index(meta: Meta, t: datetime | int) -> int:
    """Index of the chunk column covering time ``t`` (datetime or unix milliseconds)."""
    start = _as_datetime(meta.mint)
    delta = _as_datetime(t) - start
    if delta < CHUNK_COLUMN_LENGTH:
        return 0
    return min(delta // CHUNK_COLUMN_LENGTH, CHUNK_COLUMNS_PER_DAY - 1)