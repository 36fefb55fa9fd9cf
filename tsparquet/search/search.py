"""Series, label name and label value lookups over a block's label and chunk tables."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from tsparquet.schema.block import Meta
from tsparquet.schema.columns import LABEL_COLUMN_PREFIX, column_to_label_name, label_name_to_column
from tsparquet.search.constraint import filter_row_group, initialize, matchers_to_constraints
from tsparquet.search.materialize import (
    SeriesChunks,
    materialize_chunks,
    materialize_label_names,
    materialize_label_values,
    materialize_labels,
)
from tsparquet.search.matchers import Matcher
from tsparquet.search.metrics import (
    METHOD_LABEL_NAMES,
    METHOD_LABEL_VALUES,
    METHOD_SELECT,
    method_context,
)
from tsparquet.search.rowrange import RowRange, limit_row_ranges
from tsparquet.search.table import Table

TRUNCATED_RESPONSE = "results truncated due to limit"
DROPPED_LABEL_VALUES = "dropped label values after external label mangling"

SERIES_FUNC = "series"


@dataclass
class SelectReadMeta:
    """The tables and metadata a select reads, and how to post-process labels."""

    meta: Meta
    label_table: Table
    chunk_table: Table
    external_labels: Mapping[str, str] = field(default_factory=dict)
    replica_label_names: Sequence[str] = ()


@dataclass
class LabelValuesReadMeta:
    """The label table and metadata a label values lookup reads."""

    meta: Meta
    label_table: Table
    external_labels: Mapping[str, str] = field(default_factory=dict)
    replica_label_names: Sequence[str] = ()


@dataclass
class LabelNamesReadMeta:
    """The label table and metadata a label names lookup reads."""

    meta: Meta
    label_table: Table
    external_labels: Mapping[str, str] = field(default_factory=dict)
    replica_label_names: Sequence[str] = ()


def match_external_labels(
    ext_labels: Mapping[str, str], matchers: Iterable[Matcher]
) -> list[Matcher] | None:
    """Consume matchers on external labels.

    Returns the matchers left to evaluate against the table, or ``None`` when
    an external label fails its matcher and nothing can match.
    """
    remain = []
    for matcher in matchers:
        if matcher.name in ext_labels:
            if not matcher.matches(ext_labels[matcher.name]):
                return None
            continue
        remain.append(matcher)
    return remain


def external_label_values(
    ext_labels: Mapping[str, str], replica_label_names: Sequence[str], name: str
) -> str:
    """Value of external label ``name``, or ``""`` if absent or a replica label."""
    if name in replica_label_names:
        return ""
    return ext_labels.get(name, "")


def external_label_names(
    ext_labels: Mapping[str, str], replica_label_names: Sequence[str]
) -> list[str]:
    """Sorted names of the external labels that are not replica labels."""
    return [name for name in sorted(ext_labels) if name not in replica_label_names]


def _labels_hash(labels: Mapping[str, str]) -> int:
    digest = hashlib.blake2b(digest_size=8)
    for name, value in labels.items():
        digest.update(name.encode())
        digest.update(b"\xff")
        digest.update(value.encode())
        digest.update(b"\xff")
    return int.from_bytes(digest.digest(), "big")


def _matching_ranges(table: Table, row_group_index: int, matchers: Sequence[Matcher]) -> list[RowRange]:
    constraints = matchers_to_constraints(*matchers)
    initialize(table, *constraints)
    return filter_row_group(table.row_groups[row_group_index], *constraints)


def _materialize_series(
    meta: SelectReadMeta,
    row_group_index: int,
    mint: int,
    maxt: int,
    limit: int,
    func: str,
    rr: list[RowRange],
) -> tuple[list[SeriesChunks], set[str]]:
    warnings: set[str] = set()
    if limit > 0:
        warnings.add(TRUNCATED_RESPONSE)
        # Every row is a distinct series, so limiting rows limits series.
        rr = limit_row_ranges(limit, rr)

    label_sets = materialize_labels(meta.meta, meta.label_table, row_group_index, rr)
    if func == SERIES_FUNC:
        row_chunks = [[] for _ in label_sets]
    else:
        row_chunks = materialize_chunks(
            meta.meta, meta.chunk_table, row_group_index, mint, maxt, rr
        )

    series = []
    for labels, chunks in zip(label_sets, row_chunks):
        labels = {**labels, **meta.external_labels}
        for name in meta.replica_label_names:
            labels.pop(name, None)
        labels = dict(sorted(labels.items()))
        series.append(SeriesChunks(labels=labels, chunks=list(chunks), lset_hash=_labels_hash(labels)))
    return series, warnings


def select(
    meta: SelectReadMeta, mint: int, maxt: int, limit: int, func: str, *matchers: Matcher
) -> tuple[list[SeriesChunks], set[str]]:
    """Series matching all matchers, with their chunks covering ``[mint, maxt]``.

    ``limit`` caps the series taken from each row group when positive; ``func``
    equal to ``"series"`` skips reading chunks. Returns the series and warnings.
    """
    with method_context(METHOD_SELECT):
        remain = match_external_labels(meta.external_labels, matchers)
        if remain is None:
            return [], set()

        res: list[SeriesChunks] = []
        warnings: set[str] = set()
        for i in range(len(meta.label_table.row_groups)):
            rr = _matching_ranges(meta.label_table, i, remain)
            if not rr:
                continue
            series, warns = _materialize_series(meta, i, mint, maxt, limit, func, rr)
            res.extend(series)
            warnings |= warns
        return res, warnings


def _sort_unique_limited(values: Iterable[str], limit: int, warnings: set[str]) -> list[str]:
    res = sorted(set(values))
    if limit > 0 and len(res) > limit:
        res = res[:limit]
        warnings.add(TRUNCATED_RESPONSE)
    return res


def _as_text(value: object) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def label_values(
    meta: LabelValuesReadMeta, name: str, limit: int, *matchers: Matcher
) -> tuple[list[str], set[str]]:
    """Sorted distinct values of label ``name`` among series matching all matchers."""
    with method_context(METHOD_LABEL_VALUES):
        remain = match_external_labels(meta.external_labels, matchers)
        if remain is None:
            return [], set()
        ext_value = external_label_values(meta.external_labels, meta.replica_label_names, name)

        res: list[str] = []
        warnings: set[str] = set()
        table = meta.label_table
        column = label_name_to_column(name)

        if not remain:
            # Without matchers the column dictionaries hold every value.
            values = []
            for row_group in table.row_groups:
                chunk = row_group.column(column)
                if chunk is not None:
                    values.extend(_as_text(v) for v in chunk.dictionary)
            if ext_value:
                if values:
                    warnings.add(DROPPED_LABEL_VALUES)
                res.append(ext_value)
            else:
                res.extend(values)
        else:
            for i in range(len(table.row_groups)):
                rr = _matching_ranges(table, i, remain)
                if not rr:
                    continue
                values = materialize_label_values(table, name, i, rr)
                if ext_value:
                    if values:
                        warnings.add(DROPPED_LABEL_VALUES)
                    res.append(ext_value)
                else:
                    res.extend(values)

        return _sort_unique_limited(res, limit, warnings), warnings


def label_names(
    meta: LabelNamesReadMeta, limit: int, *matchers: Matcher
) -> tuple[list[str], set[str]]:
    """Sorted names of the labels carried by series matching all matchers."""
    with method_context(METHOD_LABEL_NAMES):
        remain = match_external_labels(meta.external_labels, matchers)
        if remain is None:
            return [], set()

        res: list[str] = []
        warnings: set[str] = set()
        table = meta.label_table
        ext_names = external_label_names(meta.external_labels, meta.replica_label_names)

        if not remain:
            res.extend(
                column_to_label_name(c) for c in table.columns if c.startswith(LABEL_COLUMN_PREFIX)
            )
            res.extend(ext_names)
        else:
            for i in range(len(table.row_groups)):
                rr = _matching_ranges(table, i, remain)
                if not rr:
                    continue
                names = materialize_label_names(meta.meta, table, i, rr)
                res.extend(ext_names)
                res.extend(names)

        return _sort_unique_limited(res, limit, warnings), warnings