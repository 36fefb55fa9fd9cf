import pytest

from tsparquet.search.partitioner import MAX_UINT64, GapBasedPartitioner, Part


@pytest.mark.parametrize(
    "max_range, max_gap, pages, expect",
    [
        (
            15,
            2,
            [(0, 3), (4, 6), (6, 15), (10, 40), (43, 44), (46, 58), (58, 59)],
            [Part(0, 15, (0, 3)), Part(10, 40, (3, 4)), Part(43, 58, (4, 6)), Part(58, 59, (6, 7))],
        ),
        (
            10,
            10,
            [(0, 10), (11, 20), (21, 30), (31, 40)],
            [Part(0, 10, (0, 1)), Part(11, 20, (1, 2)), Part(21, 30, (2, 3)), Part(31, 40, (3, 4))],
        ),
        (
            20,
            100,
            [(0, 10), (21, 30), (31, 40)],
            [Part(0, 10, (0, 1)), Part(21, 40, (1, 3))],
        ),
        (
            100,
            5,
            [(10, 20), (26, 40), (42, 55), (60, 75), (81, 90)],
            [Part(10, 20, (0, 1)), Part(26, 75, (1, 4)), Part(81, 90, (4, 5))],
        ),
        (
            30,
            10,
            [(5, 15), (18, 25), (26, 35), (36, 45), (50, 60)],
            [Part(5, 35, (0, 3)), Part(36, 60, (3, 5))],
        ),
        (
            100,
            20,
            [(10, 30), (50, 70), (91, 100)],
            [Part(10, 70, (0, 2)), Part(91, 100, (2, 3))],
        ),
        (
            50,
            10,
            [(10, 10), (15, 25), (20, 30), (42, 42), (45, 60)],
            [Part(10, 30, (0, 3)), Part(42, 60, (3, 5))],
        ),
        (
            MAX_UINT64,
            MAX_UINT64,
            [(10, 20), (100, 200), (1000, 2000), (10000, 20000)],
            [Part(10, 20000, (0, 4))],
        ),
    ],
)
def test_partitioner(max_range, max_gap, pages, expect):
    partitioner = GapBasedPartitioner(max_range_size=max_range, max_gap_size=max_gap)
    assert partitioner.partition(len(pages), lambda i: pages[i]) == expect


def test_partitioner_empty():
    partitioner = GapBasedPartitioner(max_range_size=10, max_gap_size=10)
    assert partitioner.partition(0, lambda i: (0, 0)) == []


def test_partitioner_covers_all_entries():
    pages = [(0, 5), (7, 9), (30, 31), (32, 40), (100, 101)]
    parts = GapBasedPartitioner(max_range_size=20, max_gap_size=3).partition(
        len(pages), lambda i: pages[i]
    )
    covered = [i for p in parts for i in range(*p.elem_rng)]
    assert covered == list(range(len(pages)))
    for p in parts:
        lo, hi = p.elem_rng
        assert p.start == pages[lo][0]
        assert p.end == max(e for _, e in pages[lo:hi])