"""An in-memory columnar table laid out in row groups, column chunks and pages.

Values of a column chunk are dictionary encoded: every page keeps, per row,
an index into the chunk's dictionary, or ``NULL_SYMBOL`` for a missing value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Hashable, Iterable, Iterator, Mapping, Sequence

NULL_SYMBOL = -1

DEFAULT_PAGE_SIZE = 1024
DEFAULT_ROW_GROUP_SIZE = 1_000_000

_DEFINITION_LEVEL_BYTES = 1
_LENGTH_PREFIX_BYTES = 4
_INT64_BYTES = 8

_KINDS = ((bool, None), (str, "string"), (bytes, "bytes"), (int, "int64"))


def _kind_of(values: Iterable[Any]) -> str:
    kinds = set()
    for value in values:
        if value is None:
            continue
        for typ, kind in _KINDS:
            if isinstance(value, typ):
                if kind is None:
                    raise TypeError(f"unsupported value type {type(value).__name__}")
                kinds.add(kind)
                break
        else:
            raise TypeError(f"unsupported value type {type(value).__name__}")
    if len(kinds) > 1:
        raise TypeError(f"column mixes value kinds: {sorted(kinds)}")
    return kinds.pop() if kinds else "string"


def _encoded_size(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return _LENGTH_PREFIX_BYTES + len(value.encode())
    if isinstance(value, bytes):
        return _LENGTH_PREFIX_BYTES + len(value)
    return _INT64_BYTES


@dataclass(frozen=True)
class Page:
    """A run of consecutive rows of one column chunk, with its statistics."""

    dictionary: tuple[Hashable, ...] = field(repr=False)
    symbols: tuple[int, ...]
    first_row: int
    offset: int
    compressed_size: int
    min_value: Any = None
    max_value: Any = None

    def __len__(self) -> int:
        return len(self.symbols)

    @property
    def num_rows(self) -> int:
        return len(self.symbols)

    @property
    def null_page(self) -> bool:
        """Whether every row of the page is null."""
        return all(s == NULL_SYMBOL for s in self.symbols)

    def get(self, i: int) -> Any:
        """Value of the i-th row of the page, ``None`` for a null."""
        symbol = self.symbols[i]
        return None if symbol == NULL_SYMBOL else self.dictionary[symbol]

    def __iter__(self) -> Iterator[Any]:
        for symbol in self.symbols:
            yield None if symbol == NULL_SYMBOL else self.dictionary[symbol]


@dataclass(frozen=True)
class ColumnChunk:
    """All values of one column in one row group."""

    name: str
    kind: str
    dictionary: tuple[Hashable, ...] = field(repr=False)
    pages: tuple[Page, ...]
    bloom_filter: frozenset | None = None

    @property
    def num_values(self) -> int:
        return sum(len(p) for p in self.pages)

    def _boundaries(self) -> list[tuple[Any, Any]]:
        return [(p.min_value, p.max_value) for p in self.pages if not p.null_page]

    @property
    def is_ascending(self) -> bool:
        """Whether page minima and maxima never decrease from page to page."""
        bounds = self._boundaries()
        return all(
            a_min <= b_min and a_max <= b_max
            for (a_min, a_max), (b_min, b_max) in zip(bounds, bounds[1:])
        )

    @property
    def is_descending(self) -> bool:
        """Whether page minima and maxima never increase, and the chunk is not ascending."""
        if self.is_ascending:
            return False
        bounds = self._boundaries()
        return all(
            a_min >= b_min and a_max >= b_max
            for (a_min, a_max), (b_min, b_max) in zip(bounds, bounds[1:])
        )

    def __iter__(self) -> Iterator[Any]:
        for page in self.pages:
            yield from page

    @classmethod
    def from_values(
        cls, name: str, values: Iterable[Any], page_size: int = DEFAULT_PAGE_SIZE
    ) -> ColumnChunk:
        """Encode values, ``None`` meaning null, into pages of ``page_size`` rows."""
        if page_size < 1:
            raise ValueError(f"page size must be positive, got {page_size}")
        values = list(values)
        kind = _kind_of(values)

        index: dict[Hashable, int] = {}
        symbols = []
        for value in values:
            if value is None:
                symbols.append(NULL_SYMBOL)
            else:
                symbols.append(index.setdefault(value, len(index)))
        dictionary = tuple(index)

        pages = []
        offset = 0
        for first in range(0, len(values), page_size):
            page_values = values[first:first + page_size]
            present = [v for v in page_values if v is not None]
            size = _DEFINITION_LEVEL_BYTES * len(page_values) + sum(
                _encoded_size(v) for v in present
            )
            pages.append(
                Page(
                    dictionary=dictionary,
                    symbols=tuple(symbols[first:first + page_size]),
                    first_row=first,
                    offset=offset,
                    compressed_size=size,
                    min_value=min(present) if present else None,
                    max_value=max(present) if present else None,
                )
            )
            offset += size
        return cls(name=name, kind=kind, dictionary=dictionary, pages=tuple(pages))


def _check_columns(columns: Sequence[str], sorting_columns: Sequence[str]) -> None:
    if len(set(columns)) != len(columns):
        raise ValueError(f"duplicate column names in {list(columns)}")
    unknown = [c for c in sorting_columns if c not in columns]
    if unknown:
        raise ValueError(f"sorting columns {unknown} are not columns of the table")


def _check_rows(rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> None:
    known = set(columns)
    for row in rows:
        unknown = set(row) - known
        if unknown:
            raise ValueError(f"row has unknown columns {sorted(unknown)}")


@dataclass(frozen=True)
class RowGroup:
    """A horizontal slice of a table, holding one chunk per column."""

    num_rows: int
    columns: dict[str, ColumnChunk]
    sorting_columns: tuple[str, ...] = ()

    def column(self, name: str) -> ColumnChunk | None:
        """The chunk of the named column, or ``None`` when there is none."""
        return self.columns.get(name)

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        columns: Sequence[str],
        page_size: int = DEFAULT_PAGE_SIZE,
        sorting_columns: Sequence[str] = (),
    ) -> RowGroup:
        """Build a row group; missing keys and ``None`` values are nulls."""
        rows = list(rows)
        columns = tuple(columns)
        sorting_columns = tuple(sorting_columns)
        _check_columns(columns, sorting_columns)
        _check_rows(rows, columns)
        chunks = {
            name: ColumnChunk.from_values(name, (row.get(name) for row in rows), page_size)
            for name in columns
        }
        return cls(num_rows=len(rows), columns=chunks, sorting_columns=sorting_columns)


@dataclass(frozen=True)
class Table:
    """A table of named columns split into row groups."""

    columns: tuple[str, ...]
    kinds: dict[str, str]
    row_groups: tuple[RowGroup, ...]

    @property
    def num_rows(self) -> int:
        return sum(rg.num_rows for rg in self.row_groups)

    def column_names(self) -> list[str]:
        """Names of the columns in schema order."""
        return list(self.columns)

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        columns: Sequence[str],
        row_group_size: int = DEFAULT_ROW_GROUP_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
        sorting_columns: Sequence[str] = (),
    ) -> Table:
        """Build a table, cutting rows into groups of ``row_group_size``."""
        if row_group_size < 1:
            raise ValueError(f"row group size must be positive, got {row_group_size}")
        if page_size < 1:
            raise ValueError(f"page size must be positive, got {page_size}")
        rows = list(rows)
        columns = tuple(columns)
        sorting_columns = tuple(sorting_columns)
        _check_columns(columns, sorting_columns)
        _check_rows(rows, columns)
        kinds = {name: _kind_of(row.get(name) for row in rows) for name in columns}

        groups = []
        it = iter(rows)
        while batch := list(islice(it, row_group_size)):
            groups.append(RowGroup.from_rows(batch, columns, page_size, sorting_columns))
        return cls(columns=columns, kinds=kinds, row_groups=tuple(groups))