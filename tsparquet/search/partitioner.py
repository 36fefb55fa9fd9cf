"""Coalescing of byte ranges into fewer, larger reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

MAX_UINT64 = 2**64 - 1


@dataclass(frozen=True)
class Part:
    """A merged byte range and the half-open span of input entries it covers."""

    start: int
    end: int
    elem_rng: tuple[int, int]


@dataclass(frozen=True)
class GapBasedPartitioner:
    """Merges ranges separated by small gaps, up to a maximum size."""

    max_range_size: int
    max_gap_size: int

    def partition(self, length: int, rng: Callable[[int], tuple[int, int]]) -> list[Part]:
        """Partition ``length`` entries, sorted by lower bound, into covering parts."""
        parts = []
        k = 0
        while k < length:
            first = k
            start, end = rng(first)
            k += 1
            while k < length:
                s, e = rng(k)
                if (e - start) & MAX_UINT64 > self.max_range_size:
                    break
                if self.max_gap_size != MAX_UINT64 and (end + self.max_gap_size) & MAX_UINT64 < s:
                    break
                end = max(end, e)
                k += 1
            parts.append(Part(start, end, (first, k)))
        return parts