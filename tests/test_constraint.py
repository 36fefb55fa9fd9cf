import dataclasses

import pytest

from tsparquet.search.constraint import (
    EqualConstraint,
    NotConstraint,
    RegexConstraint,
    equal,
    filter_row_group,
    initialize,
    matchers_to_constraints,
    not_,
    regex,
)
from tsparquet.search.matchers import Matcher, MatchType
from tsparquet.search.metrics import PAGES_SCANNED, SCAN_EQUAL, method_context
from tsparquet.search.rowrange import RowRange
from tsparquet.search.table import ColumnChunk, RowGroup, Table

COLUMNS = ("A", "B", "C")


def rows_of(*triples):
    return [{"A": a, "B": b, "C": c} for a, b, c in triples]


def R(start, count):
    return RowRange(start, count)


def run(table, constraints):
    initialize(table, *constraints)
    with method_context("test"):
        return [filter_row_group(rg, *constraints) for rg in table.row_groups]


CASE_1 = rows_of(
    ("1", "2", "a"),
    ("3", "4", "b"),
    ("7", "12", "c"),
    ("9", "22", "d"),
    ("0", "1", "e"),
    ("7", "1", "f"),
    ("7", "1", "g"),
    ("0", "1", "h"),
)

CASE_2 = rows_of(
    ("1", "2", None),
    ("1", "3", None),
    ("1", "4", None),
    ("1", "4", None),
    ("1", "5", None),
    ("1", "5", None),
    ("2", "5", None),
    ("2", "5", None),
    ("2", "5", None),
    ("3", "5", None),
    ("3", "6", None),
    ("3", "2", None),
    ("4", "8", "foo"),
)

CASE_3 = rows_of(
    ("1", "1", None),
    ("1", "2", None),
    ("2", "1", None),
    ("2", "2", None),
    ("1", "1", None),
    ("1", "2", None),
    ("2", "1", None),
    ("2", "2", None),
)

CASE_4 = rows_of(
    (None, None, "foo"),
    (None, None, "bar"),
    (None, None, "foo"),
    (None, None, "buz"),
)

FILTER_CASES = [
    (CASE_1, lambda: [equal("A", "7"), equal("C", "g")], [R(6, 1)]),
    (CASE_1, lambda: [equal("A", "7")], [R(2, 1), R(5, 2)]),
    (CASE_1, lambda: [equal("A", "7"), not_(equal("B", "1"))], [R(2, 1)]),
    (CASE_1, lambda: [equal("A", "7"), not_(equal("C", "c"))], [R(5, 2)]),
    (CASE_1, lambda: [not_(equal("A", "227"))], [R(0, 8)]),
    (CASE_1, lambda: [regex("C", "a|c|d")], [R(0, 1), R(2, 2)]),
    (CASE_2, lambda: [regex("C", "")], [R(0, 12)]),
    (CASE_2, lambda: [equal("C", "")], [R(0, 12)]),
    (CASE_2, lambda: [not_(equal("A", "3"))], [R(0, 9), R(12, 1)]),
    (CASE_2, lambda: [not_(equal("A", "3")), equal("B", "5")], [R(4, 5)]),
    (
        CASE_2,
        lambda: [not_(equal("A", "3")), not_(equal("A", "1"))],
        [R(6, 3), R(12, 1)],
    ),
    (CASE_2, lambda: [equal("A", "2"), not_(equal("B", "5"))], []),
    (CASE_2, lambda: [equal("A", "3"), not_(equal("B", "2"))], [R(9, 2)]),
    (
        CASE_3,
        lambda: [not_(equal("A", "1")), not_(equal("B", "2"))],
        [R(2, 1), R(6, 1)],
    ),
    (CASE_4, lambda: [regex("C", "f.*")], [R(0, 1), R(2, 1)]),
    (CASE_4, lambda: [regex("C", "b.*")], [R(1, 1), R(3, 1)]),
    (CASE_4, lambda: [regex("C", "f.*|b.*")], [R(0, 4)]),
]


@pytest.mark.parametrize("page_size", [1, 2, 3, 100])
@pytest.mark.parametrize("rows, make_constraints, expected", FILTER_CASES)
def test_filter(rows, make_constraints, expected, page_size):
    table = Table.from_rows(rows, COLUMNS, page_size=page_size)
    assert run(table, make_constraints()) == [expected]


@pytest.mark.parametrize("page_size", [1, 2, 4])
def test_filter_on_primary_sorting_column(page_size):
    rows = [{"A": a, "B": b} for a, b in zip("112223", "xyzxyz")]
    table = Table.from_rows(rows, ("A", "B"), page_size=page_size, sorting_columns=("A",))
    assert run(table, [equal("A", "2")]) == [[R(2, 3)]]
    assert run(table, [equal("B", "x"), equal("A", "2")]) == [[R(3, 1)]]
    assert run(table, [not_(equal("A", "2"))]) == [[R(0, 2), R(5, 1)]]


def test_filter_per_row_group():
    table = Table.from_rows(CASE_1, COLUMNS, row_group_size=4, page_size=2)
    assert run(table, [equal("A", "7")]) == [[R(2, 1)], [R(1, 2)]]


def test_missing_column():
    table = Table.from_rows(CASE_1, COLUMNS, page_size=2)
    assert run(table, [equal("Z", "x")]) == [[]]
    assert run(table, [equal("Z", "")]) == [[R(0, 8)]]
    assert run(table, [not_(equal("Z", "x"))]) == [[R(0, 8)]]
    assert run(table, [regex("Z", ".*")]) == [[R(0, 8)]]
    assert run(table, [regex("Z", ".+")]) == [[]]


def test_bloom_filter_skips_chunk():
    chunk = ColumnChunk.from_values("C", ["b", "b"], page_size=1)
    chunk = dataclasses.replace(chunk, bloom_filter=frozenset({"a"}))
    row_group = RowGroup(num_rows=2, columns={"C": chunk})
    with method_context("test"):
        assert filter_row_group(row_group, equal("C", "b")) == []
        assert filter_row_group(row_group, not_(equal("C", "b"))) == [R(0, 2)]


def test_filter_requires_method():
    table = Table.from_rows(CASE_1, COLUMNS)
    constraint = equal("A", "7")
    initialize(table, constraint)
    with pytest.raises(LookupError):
        filter_row_group(table.row_groups[0], constraint)


def test_pages_scanned_counted():
    table = Table.from_rows(CASE_1, COLUMNS, page_size=2)
    constraint = equal("C", "g")
    initialize(table, constraint)
    before = PAGES_SCANNED.get("C", SCAN_EQUAL, "test-counting")
    with method_context("test-counting"):
        assert filter_row_group(table.row_groups[0], constraint) == [R(6, 1)]
    assert PAGES_SCANNED.get("C", SCAN_EQUAL, "test-counting") > before


def test_initialize_rejects_non_string_value():
    table = Table.from_rows(CASE_1, COLUMNS)
    with pytest.raises(ValueError, match="can only search string kind"):
        initialize(table, equal("A", 5))


def test_initialize_rejects_non_string_column():
    table = Table.from_rows([{"N": 1}, {"N": 2}], ("N",))
    with pytest.raises(ValueError, match="cannot search value of kind string"):
        initialize(table, equal("N", "1"))
    with pytest.raises(ValueError, match="unable to initialize constraint 1"):
        initialize(table, equal("Z", "1"), not_(regex("N", "1")))


def test_invalid_regex():
    with pytest.raises(ValueError, match="invalid regular expression"):
        regex("C", "(")


def test_string_forms():
    assert str(equal("A", "7")) == 'equal("A","7")'
    assert str(regex("C", "a|b")) == "regex(C,a|b)"
    assert str(not_(equal("A", "7"))) == 'not(equal("A","7"))'


def test_matchers_to_constraints():
    constraints = matchers_to_constraints(
        Matcher(MatchType.EQUAL, "job", "api"),
        Matcher(MatchType.NOT_EQUAL, "job", "api"),
        Matcher(MatchType.REGEXP, "job", "api"),
        Matcher(MatchType.REGEXP, "job", "a.*"),
        Matcher(MatchType.NOT_REGEXP, "job", "api"),
        Matcher(MatchType.NOT_REGEXP, "job", "a|b"),
    )
    assert [str(c) for c in constraints] == [
        'equal("___cf_meta_label_job","api")',
        'not(equal("___cf_meta_label_job","api"))',
        'equal("___cf_meta_label_job","api")',
        "regex(___cf_meta_label_job,a.*)",
        'not(equal("___cf_meta_label_job","api"))',
        "not(regex(___cf_meta_label_job,a|b))",
    ]
    assert isinstance(constraints[3], RegexConstraint)
    assert isinstance(constraints[5], NotConstraint)
    assert isinstance(constraints[0], EqualConstraint)


def test_matcher_constraints_filter_table():
    rows = [
        {"___cf_meta_label_job": job, "___cf_meta_label_env": env}
        for job, env in [("api", "prod"), ("db", "prod"), ("api", "dev"), ("web", None)]
    ]
    table = Table.from_rows(rows, ("___cf_meta_label_job", "___cf_meta_label_env"), page_size=2)
    constraints = matchers_to_constraints(
        Matcher(MatchType.REGEXP, "job", "api|web"),
        Matcher(MatchType.NOT_EQUAL, "env", "dev"),
    )
    assert run(table, constraints) == [[R(0, 1), R(3, 1)]]