"""Block naming and block metadata."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

META_FILE = "meta.pb"

_DATE_FORMAT = "{:04d}/{:02d}/{:02d}"
_DATE_PREFIX = re.compile(r"(\d{1,4})/(\d{1,2})/(\d{1,2})")
_BLOCK_PATH = re.compile(r"(\d{1,4})/(\d{1,2})/(\d{1,2})/(\S+)")


@dataclass
class Meta:
    """Metadata describing a block."""

    version: int = 0
    name: str = ""
    mint: int = 0
    maxt: int = 0
    shards: int = 0
    columns_for_name: dict[str, list[str]] = field(default_factory=dict)


def split_block_path(name: str) -> tuple[str, str] | None:
    """Split ``YYYY/MM/DD/<file>`` into its directory and file part.

    Returns ``None`` when the name is not a block path.
    """
    match = _BLOCK_PATH.match(name)
    if match is None:
        return None
    return posixpath.dirname(name), match.group(4)


def _normalized_date(year: int, month: int, day: int) -> datetime:
    # Out of range months and days roll over into neighbouring periods.
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        first = datetime(year, month, 1, tzinfo=timezone.utc)
        return first + timedelta(days=day - 1)
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"date {year}/{month}/{day} is out of range") from exc


def day_from_block_name(blk: str) -> datetime:
    """Return the UTC day a block name refers to."""
    match = _DATE_PREFIX.match(blk)
    if match is None:
        raise ValueError(f"unable to read timestamp from block name: {blk!r}")
    year, month, day = (int(g) for g in match.groups())
    return _normalized_date(year, month, day)


def block_name_for_day(t: datetime) -> str:
    """Return the block name for a UTC, day-aligned timestamp."""
    if t.tzinfo is None or t.utcoffset() != timedelta(0):
        raise ValueError(f"block start time {t} must be in UTC")
    if (t.hour, t.minute, t.second, t.microsecond) != (0, 0, 0, 0):
        raise ValueError(f"block start time {t} must be aligned to a day")
    return _DATE_FORMAT.format(t.year, t.month, t.day)


def labels_pfile_name_for_shard(name: str, shard: int) -> str:
    """Path of the labels parquet file of a shard."""
    return f"{name}/{shard}.labels.parquet"


def chunks_pfile_name_for_shard(name: str, shard: int) -> str:
    """Path of the chunks parquet file of a shard."""
    return f"{name}/{shard}.chunks.parquet"


def meta_file_name_for_block(name: str) -> str:
    """Path of the metadata file of a block."""
    return f"{name}/{META_FILE}"