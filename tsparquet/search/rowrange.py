"""Half-open ranges of rows and set operations on sorted lists of them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class RowRange:
    """Rows ``start`` up to but excluding ``start + count``."""

    start: int
    count: int

    @property
    def end(self) -> int:
        return self.start + self.count


def intersect(a: RowRange, b: RowRange) -> bool:
    """Whether two ranges share at least one row."""
    return a.start < b.end and b.start < a.end


def intersection(a: RowRange, b: RowRange) -> RowRange:
    """The overlap of two intersecting ranges."""
    start = max(a.start, b.start)
    return RowRange(start, min(a.end, b.end) - start)


def limit_row_ranges(limit: int, rr: Iterable[RowRange]) -> list[RowRange]:
    """Truncate ranges so that they cover at most ``limit`` rows."""
    res = []
    cur = 0
    for r in rr:
        if cur + r.count > limit:
            res.append(RowRange(r.start, limit - cur))
            break
        res.append(r)
        cur += r.count
    return simplify(res)


def intersect_row_ranges(lhs: list[RowRange], rhs: list[RowRange]) -> list[RowRange]:
    """Rows present in both simplified lists."""
    res = []
    left = right = 0
    while left < len(lhs) and right < len(rhs):
        a, b = lhs[left], rhs[right]
        if a.start <= b.end and b.start <= a.end:
            start = max(a.start, b.start)
            res.append(RowRange(start, min(a.end, b.end) - start))
        if a.end <= b.end:
            left += 1
        else:
            right += 1
    return simplify(res)


def complement_row_ranges(lhs: list[RowRange], rhs: list[RowRange]) -> list[RowRange]:
    """Rows in ``rhs`` that are not in ``lhs``; both lists must be simplified."""
    res = []
    rhs = list(rhs)
    left = right = 0
    while left < len(lhs) and right < len(rhs):
        al, bl = lhs[left].start, lhs[left].end
        ar, br = rhs[right].start, rhs[right].end

        if al > br or ar > bl:
            if bl <= br:
                left += 1
            else:
                res.append(RowRange(ar, br - ar))
                right += 1
        elif al < ar and bl > br:
            right += 1
        elif al < ar:
            cut = min(bl, br) - ar
            rhs[right] = RowRange(ar + cut, rhs[right].count - cut)
            left += 1
        elif bl > br:
            res.append(RowRange(ar, max(al, ar) - ar))
            right += 1
        else:
            os_, oe = max(al, ar), min(bl, br)
            res.append(RowRange(ar, os_ - ar))
            rhs[right] = RowRange(oe, br - oe)
            left += 1

    res.extend(rhs[right:])
    return simplify(res)


def simplify(rr: Iterable[RowRange]) -> list[RowRange]:
    """Sort ranges, merge overlapping or adjacent ones and drop empty ones."""
    ordered = sorted(rr, key=lambda r: r.start)
    if not ordered:
        return []

    merged = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if current.end < nxt.start:
            merged.append(current)
            current = nxt
            continue
        start = min(current.start, nxt.start)
        count = max(current.end, nxt.end) - start
        if count == 0:
            continue
        current = RowRange(start, count)
    merged.append(current)
    return [r for r in merged if r.count != 0]