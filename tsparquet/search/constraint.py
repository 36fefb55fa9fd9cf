"""Constraints on label columns that narrow a row group down to matching row ranges."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from bisect import bisect_left, bisect_right
from itertools import groupby
from typing import Any, Callable, Iterator

from tsparquet.schema.columns import label_name_to_column
from tsparquet.search.matchers import Matcher, MatchType
from tsparquet.search.metrics import PAGES_SCANNED, SCAN_EQUAL, SCAN_REGEX, current_method
from tsparquet.search.rowrange import (
    RowRange,
    complement_row_ranges,
    intersect_row_ranges,
    simplify,
)
from tsparquet.search.table import ColumnChunk, Page, RowGroup, Table

_STRING_KIND = "string"


def _quote(value: Any) -> str:
    return json.dumps(str(value), ensure_ascii=False)


def _as_text(value: Any) -> Any:
    # Nulls compare and match like the empty string.
    return "" if value is None else value


def _page_spans(
    chunk: ColumnChunk, num_rows: int, start: int, end: int
) -> Iterator[tuple[Page, int, int]]:
    """Pages of ``chunk`` that touch rows ``[start, end]``, with their row bounds."""
    pages = chunk.pages
    next_firsts = [p.first_row for p in pages[1:]] + [num_rows]
    for page, page_end in zip(pages, next_firsts):
        page_start = page.first_row
        if page_start > end:
            return
        if page_end < start:
            continue
        yield page, page_start, page_end


def _matching_runs(
    page: Page, lo: int, hi: int, page_start: int, pred: Callable[[Any], bool]
) -> Iterator[RowRange]:
    """Runs of consecutive rows in ``[lo, hi)`` of the page that satisfy ``pred``."""
    for matched, group in groupby(range(lo, hi), key=lambda j: pred(page.get(j))):
        if matched:
            rows = list(group)
            yield RowRange(page_start + rows[0], len(rows))


def _check_string_column(table: Table, path: str) -> bool:
    """Whether the column exists; raises if it exists but does not hold strings."""
    kind = table.kinds.get(path)
    if kind is None:
        return False
    if kind != _STRING_KIND:
        raise ValueError(
            f"schema: cannot search value of kind {_STRING_KIND} in column of kind {kind}"
        )
    return True


class Constraint(ABC):
    """A condition on one column of a row group."""

    @property
    @abstractmethod
    def path(self) -> str:
        """Name of the constrained column."""

    @abstractmethod
    def init(self, table: Table) -> None:
        """Prepare the constraint for the table's schema; raises ValueError on a mismatch."""

    @abstractmethod
    def filter(self, row_group: RowGroup, primary: bool, rr: list[RowRange]) -> list[RowRange]:
        """Non-overlapping increasing row ranges within ``rr`` that may satisfy the constraint."""


class EqualConstraint(Constraint):
    """Rows whose column value equals a given string; nulls count as the empty string."""

    def __init__(self, path: str, value: Any) -> None:
        self._path = path
        self.value = value

    @property
    def path(self) -> str:
        return self._path

    def __str__(self) -> str:
        return f"equal({_quote(self._path)},{_quote(self.value)})"

    def __repr__(self) -> str:
        return f"EqualConstraint({self._path!r}, {self.value!r})"

    def matches(self, value: Any) -> bool:
        return _as_text(value) == self.value

    def init(self, table: Table) -> None:
        if self._path not in table.kinds:
            return
        if not isinstance(self.value, str):
            raise ValueError(
                f"schema: can only search string kind, got: {type(self.value).__name__}"
            )
        _check_string_column(table, self._path)

    def _skip_by_bloom_filter(self, chunk: ColumnChunk) -> bool:
        return chunk.bloom_filter is not None and self.value not in chunk.bloom_filter

    def filter(self, row_group: RowGroup, primary: bool, rr: list[RowRange]) -> list[RowRange]:
        if not rr:
            return []
        method = current_method()
        start, end = rr[0].start, rr[-1].end

        chunk = row_group.column(self._path)
        if chunk is None:
            return list(rr) if self.matches(None) else []
        if self._skip_by_bloom_filter(chunk):
            return []

        matches_empty = self.matches(None)
        ascending = chunk.is_ascending
        descending = chunk.is_descending
        res: list[RowRange] = []
        for page, page_start, page_end in _page_spans(chunk, row_group.num_rows, start, end):
            if page.null_page:
                if matches_empty:
                    res.append(RowRange(page_start, page_end - page_start))
                continue

            # Without the empty string in play, page statistics can rule pages out.
            if not matches_empty:
                if page.max_value is not None and self.value > page.max_value:
                    if descending:
                        break
                    continue
                if page.min_value is not None and self.value < page.min_value:
                    if ascending:
                        break
                    continue

            PAGES_SCANNED.add(1, self._path, SCAN_EQUAL, method)

            n = page.num_rows
            lo = max(page_start, start) - page_start
            hi = n - (page_end - min(page_end, end))
            if ascending and primary:
                values = [_as_text(v) for v in page]
                left = max(lo, bisect_left(values, self.value))
                right = min(hi, bisect_right(values, self.value))
                if right > left:
                    res.append(RowRange(page_start + left, right - left))
            else:
                res.extend(_matching_runs(page, lo, hi, page_start, self.matches))

        if not res:
            return []
        return intersect_row_ranges(simplify(res), rr)


class RegexConstraint(Constraint):
    """Rows whose column value fully matches a regular expression."""

    def __init__(self, path: str, pattern: str | re.Pattern) -> None:
        self._path = path
        if isinstance(pattern, re.Pattern):
            self._regex = pattern
        else:
            try:
                self._regex = re.compile(pattern, re.DOTALL)
            except re.error as exc:
                raise ValueError(f"invalid regular expression {pattern!r}: {exc}") from exc
        self._cache: dict[Any, bool] = {}

    @property
    def path(self) -> str:
        return self._path

    @property
    def pattern(self) -> str:
        return self._regex.pattern

    def __str__(self) -> str:
        return f"regex({self._path},{self._regex.pattern})"

    def __repr__(self) -> str:
        return f"RegexConstraint({self._path!r}, {self._regex.pattern!r})"

    def matches(self, value: Any) -> bool:
        text = _as_text(value)
        accept = self._cache.get(text)
        if accept is None:
            accept = self._regex.fullmatch(text) is not None
            self._cache[text] = accept
        return accept

    def init(self, table: Table) -> None:
        if not _check_string_column(table, self._path):
            return
        self._cache = {}

    def filter(self, row_group: RowGroup, primary: bool, rr: list[RowRange]) -> list[RowRange]:
        if not rr:
            return []
        method = current_method()
        start, end = rr[0].start, rr[-1].end

        chunk = row_group.column(self._path)
        if chunk is None:
            return list(rr) if self.matches(None) else []

        matches_empty = self.matches(None)
        res: list[RowRange] = []
        for page, page_start, page_end in _page_spans(chunk, row_group.num_rows, start, end):
            if page.null_page:
                if matches_empty:
                    res.append(RowRange(page_start, page_end - page_start))
                continue

            PAGES_SCANNED.add(1, self._path, SCAN_REGEX, method)

            n = page.num_rows
            lo = max(page_start, start) - page_start
            hi = n - (page_end - min(page_end, end))
            res.extend(_matching_runs(page, lo, hi, page_start, self.matches))

        if not res:
            return []
        return intersect_row_ranges(simplify(res), rr)


class NotConstraint(Constraint):
    """Rows that the wrapped constraint rules out."""

    def __init__(self, constraint: Constraint) -> None:
        self.constraint = constraint

    @property
    def path(self) -> str:
        return self.constraint.path

    def __str__(self) -> str:
        return f"not({self.constraint})"

    def __repr__(self) -> str:
        return f"NotConstraint({self.constraint!r})"

    def init(self, table: Table) -> None:
        self.constraint.init(table)

    def filter(self, row_group: RowGroup, primary: bool, rr: list[RowRange]) -> list[RowRange]:
        base = self.constraint.filter(row_group, primary, rr)
        return complement_row_ranges(base, rr)


def equal(path: str, value: Any) -> EqualConstraint:
    """Constraint that the column ``path`` equals ``value``."""
    return EqualConstraint(path, value)


def regex(path: str, pattern: str | re.Pattern) -> RegexConstraint:
    """Constraint that the column ``path`` fully matches ``pattern``."""
    return RegexConstraint(path, pattern)


def not_(constraint: Constraint) -> NotConstraint:
    """Negation of ``constraint``."""
    return NotConstraint(constraint)


def initialize(table: Table, *constraints: Constraint) -> None:
    """Prepare every constraint for the table's schema."""
    for i, constraint in enumerate(constraints):
        try:
            constraint.init(table)
        except ValueError as exc:
            raise ValueError(f"unable to initialize constraint {i}: {exc}") from exc


def filter_row_group(row_group: RowGroup, *constraints: Constraint) -> list[RowRange]:
    """Row ranges of the row group that satisfy all constraints.

    Constraints on sorting columns are cheaper and are evaluated first.
    """
    sorting = row_group.sorting_columns
    rank = {name: i for i, name in enumerate(sorting)}
    ordered = sorted(constraints, key=lambda c: rank.get(c.path, len(rank)))

    rr = [RowRange(0, row_group.num_rows)]
    for constraint in ordered:
        primary = bool(sorting) and constraint.path == sorting[0]
        rr = constraint.filter(row_group, primary, rr)
    return rr


def matchers_to_constraints(*matchers: Matcher) -> list[Constraint]:
    """Constraints on label columns equivalent to the given label matchers."""
    res: list[Constraint] = []
    for matcher in matchers:
        column = label_name_to_column(matcher.name)
        if matcher.type is MatchType.EQUAL:
            res.append(equal(column, matcher.value))
        elif matcher.type is MatchType.NOT_EQUAL:
            res.append(not_(equal(column, matcher.value)))
        elif matcher.type in (MatchType.REGEXP, MatchType.NOT_REGEXP):
            literals = matcher.set_matches()
            if len(literals) == 1:
                inner: Constraint = equal(column, literals[0])
            else:
                inner = regex(column, matcher.value)
            res.append(inner if matcher.type is MatchType.REGEXP else not_(inner))
        else:
            raise ValueError(f"unsupported matcher type {matcher.type}")
    return res