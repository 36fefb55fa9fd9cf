"""Counters describing the work searches do, and the search method in progress."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterable, Iterator

SCAN_REGEX = "regex"
SCAN_EQUAL = "equal"

METHOD_SELECT = "select"
METHOD_LABEL_NAMES = "label_names"
METHOD_LABEL_VALUES = "label_values"


class AlreadyRegisteredError(ValueError):
    """Raised when a collector with the same name is registered twice."""


class CounterVec:
    """A family of monotonically increasing counters keyed by label values."""

    def __init__(self, name: str, help_text: str, label_names: Iterable[str]) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._values: dict[tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def _key(self, label_values: tuple[object, ...]) -> tuple[str, ...]:
        if len(label_values) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, "
                f"got {len(label_values)}"
            )
        return tuple(str(v) for v in label_values)

    def add(self, amount: float, *args: object) -> None:
        """Increase the counter for the given label values by ``amount``."""
        key = self._key(args)
        if amount < 0:
            raise ValueError(f"{self.name}: counter cannot decrease in value")
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def get(self, *args: object) -> float:
        """Current value of the counter for the given label values."""
        key = self._key(args)
        with self._lock:
            return self._values.get(key, 0.0)

    def __repr__(self) -> str:
        return f"CounterVec(name={self.name!r}, label_names={self.label_names!r})"


class Registry:
    """A set of collectors with unique names."""

    def __init__(self) -> None:
        self._collectors: dict[str, CounterVec] = {}
        self._lock = threading.Lock()

    def register(self, collector: CounterVec) -> None:
        """Add a collector; a second one of the same name is rejected."""
        with self._lock:
            if collector.name in self._collectors:
                raise AlreadyRegisteredError(
                    f"duplicate metrics collector registration attempted: {collector.name}"
                )
            self._collectors[collector.name] = collector

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._collectors


PAGES_SCANNED = CounterVec(
    "pages_scanned_total",
    "Pages read during scans",
    ("column", "scan", "method"),
)
PAGES_READ = CounterVec(
    "pages_read_total",
    "Pages read during parquet operations",
    ("column", "method"),
)
PAGES_READ_SIZE = CounterVec(
    "pages_read_size_bytes_total",
    "Cumulative size of pages in bytes that were read during parquet operations",
    ("column", "method"),
)
COLUMN_MATERIALIZED = CounterVec(
    "column_materialized_total",
    "How often we had to materialize a column during queries",
    ("column", "method"),
)
ROWS_MATERIALIZED = CounterVec(
    "rows_materialized_total",
    "How many rows we had to materialize for queries",
    ("column", "method"),
)

_ALL_COUNTERS = (
    PAGES_SCANNED,
    PAGES_READ,
    PAGES_READ_SIZE,
    COLUMN_MATERIALIZED,
    ROWS_MATERIALIZED,
)


def register_metrics(registry: Registry) -> None:
    """Register every search counter, reporting all failures together."""
    errors = []
    for counter in _ALL_COUNTERS:
        try:
            registry.register(counter)
        except AlreadyRegisteredError as exc:
            errors.append(str(exc))
    if errors:
        raise AlreadyRegisteredError("\n".join(errors))


_METHOD: ContextVar[str] = ContextVar("search_method")


@contextmanager
def method_context(method: str) -> Iterator[str]:
    """Mark the code run inside the block as part of ``method``."""
    token = _METHOD.set(method)
    try:
        yield method
    finally:
        _METHOD.reset(token)


def current_method() -> str:
    """The search method in progress; LookupError when none is set."""
    try:
        return _METHOD.get()
    except LookupError:
        raise LookupError("no search method is set in this context") from None