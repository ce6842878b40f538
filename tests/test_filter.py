from datetime import date

import pytest

from grid_filter import FilterCriteria, distinct_values, filter_rows
from grid_schema import Row


def ids(rows):
    return [r.id for r in rows]


def test_empty_criteria_match_all(sample_rows):
    assert ids(filter_rows(sample_rows, FilterCriteria(), '')) == [1, 2, 3, 4, 5]
    assert FilterCriteria().is_empty()


def test_search_is_case_insensitive_over_every_field(sample_rows):
    assert ids(filter_rows(sample_rows, FilterCriteria(), 'DESIGN')) == [2, 4]
    assert ids(filter_rows(sample_rows, FilterCriteria(), 'kevin')) == [5]
    assert ids(filter_rows(sample_rows, FilterCriteria(), '3,500')) == [2]


def test_status_and_search_compose(sample_rows):
    criteria = FilterCriteria().toggle('status', 'Complete')
    assert ids(filter_rows(sample_rows, criteria, 'design')) == [4]

    blocked = criteria.toggle('status', 'Complete').toggle('status', 'Blocked')
    assert blocked.status == frozenset({'Blocked'})
    assert filter_rows(sample_rows, blocked, 'design') == []


def test_inclusion_sets(sample_rows):
    criteria = FilterCriteria().toggle('priority', 'Low').toggle('priority', 'High')
    assert ids(filter_rows(sample_rows, criteria)) == [2, 4, 5]
    criteria = criteria.toggle('submitter', 'Jessica Brown')
    assert ids(filter_rows(sample_rows, criteria)) == [5]
    assert ids(filter_rows(sample_rows, FilterCriteria().toggle('assigned', 'Tom Wright'))) == [4]


def test_toggle_unknown_field():
    with pytest.raises(KeyError):
        FilterCriteria().toggle('url', 'x')


def test_date_range_is_inclusive(sample_rows):
    criteria = FilterCriteria().with_date_range(date(2024, 11, 15), date(2024, 12, 5))
    assert ids(filter_rows(sample_rows, criteria)) == [1, 3]


def test_single_date_bound_is_inert(sample_rows):
    criteria = FilterCriteria().with_date_range(date(2025, 1, 1), None)
    assert not criteria.date_range_active
    assert ids(filter_rows(sample_rows, criteria)) == [1, 2, 3, 4, 5]


def test_unparseable_submitted_never_in_range():
    rows = [Row(1, submitted='soon'), Row(2, submitted='01-01-2025')]
    criteria = FilterCriteria().with_date_range(date(2024, 1, 1), date(2025, 12, 31))
    assert ids(filter_rows(rows, criteria)) == [2]


def test_filter_preserves_input_order(sample_rows):
    reordered = list(reversed(sample_rows))
    assert ids(filter_rows(reordered, FilterCriteria(), 'in')) == [
        r.id for r in reordered if any('in' in str(v).lower() for v in (
            r.id, r.job_request, r.submitted, r.status, r.submitter, r.url,
            r.assigned, r.priority, r.due_date, r.est_value))]


def test_cleared():
    criteria = FilterCriteria().toggle('status', 'Blocked').with_date_range(date(2024, 1, 1), date(2024, 2, 1))
    assert not criteria.is_empty()
    assert criteria.cleared().is_empty()


def test_distinct_values(sample_rows):
    rows = sample_rows + [Row(6, submitter='Irfan Khan')]
    assert distinct_values(rows, 'submitter') == [
        'Aisha Patel', 'Irfan Khan', 'Mark Johnson', 'Emily Green', 'Jessica Brown']
