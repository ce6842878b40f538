from grid_schema import Row
from grid_sort import ASCENDING, DESCENDING, SortDirective, numeric_key, sort_rows, toggle_sort


def ids(rows):
    return [r.id for r in rows]


def test_toggle_same_column_flips():
    first = toggle_sort(None, 'status')
    assert first == SortDirective('status', ASCENDING)
    assert toggle_sort(first, 'status').direction == DESCENDING
    assert toggle_sort(toggle_sort(first, 'status'), 'status').direction == ASCENDING


def test_new_column_resets_to_ascending():
    current = SortDirective('status', DESCENDING)
    assert toggle_sort(current, 'priority') == SortDirective('priority', ASCENDING)


def test_est_value_sorts_numerically(sample_rows):
    ordered = sort_rows(sample_rows, SortDirective('estValue'))
    assert [r.est_value for r in ordered] == [
        '2,800,000', '3,500,000', '4,750,000', '5,900,000', '6,200,000']
    reverse = sort_rows(sample_rows, SortDirective('estValue', DESCENDING))
    assert ids(reverse) == [1, 4, 3, 2, 5]


def test_numeric_key_ignores_separators():
    assert numeric_key('1,000') == numeric_key('1000') == numeric_key('$1.000')
    assert numeric_key('n/a') < numeric_key('0')


def test_dates_sort_chronologically(sample_rows):
    ordered = sort_rows(sample_rows, SortDirective('submitted'))
    assert ids(ordered) == [2, 1, 3, 4, 5]


def test_unparseable_dates_sort_lowest(sample_rows):
    rows = sample_rows + [Row(6, due_date='someday')]
    assert ids(sort_rows(rows, SortDirective('dueDate')))[0] == 6
    assert ids(sort_rows(rows, SortDirective('dueDate', DESCENDING)))[-1] == 6


def test_text_sort(sample_rows):
    ordered = sort_rows(sample_rows, SortDirective('submitter'))
    assert [r.submitter for r in ordered] == [
        'Aisha Patel', 'Emily Green', 'Irfan Khan', 'Jessica Brown', 'Mark Johnson']


def test_text_sort_ignores_case():
    rows = [Row(1, 'banana'), Row(2, 'Apple'), Row(3, 'cherry')]
    assert ids(sort_rows(rows, SortDirective('jobRequest'))) == [2, 1, 3]


def test_ties_keep_prior_order_both_directions(tied_rows):
    asc = sort_rows(tied_rows, SortDirective('estValue'))
    assert ids(asc) == [3, 1, 2, 4]
    desc = sort_rows(asc, SortDirective('estValue', DESCENDING))
    assert ids(desc) == [1, 2, 4, 3]
    again = sort_rows(desc, SortDirective('estValue'))
    assert ids(again) == ids(asc)


def test_short_inputs():
    assert sort_rows([], SortDirective('status')) == []
    assert ids(sort_rows([Row(3)], SortDirective('status'))) == [3]
