import pytest

from grid_schema import Row, default_row
from grid_store import RowStore


def test_get_all_keeps_insertion_order(store):
    assert [r.id for r in store.get_all()] == [1, 2, 3, 4, 5]


def test_upsert_existing_row_changes_one_field(store):
    updated = store.upsert_field(3, 'assigned', 'Nina')
    assert updated.get(3).assigned == 'Nina'
    assert updated.get(3).submitter == store.get(3).submitter
    # Original value untouched
    assert store.get(3).assigned == 'Rachel Lee'
    assert len(updated) == 5


def test_upsert_beyond_data_fills_gap(store):
    updated = store.upsert_field(7, 'jobRequest', 'Audit')
    assert [r.id for r in updated.get_all()] == [1, 2, 3, 4, 5, 6, 7]
    assert updated.get(6) == default_row(6)
    assert updated.get(7).job_request == 'Audit'


def test_upsert_next_slot_creates_exactly_one_row(store):
    updated = store.upsert_field(6, 'status', 'Blocked')
    assert len(updated) == 6
    assert updated.get(6).status == 'Blocked'


def test_upsert_absent_id_below_max_is_ignored():
    store = RowStore([Row(1), Row(4)])
    assert store.upsert_field(2, 'url', 'x') is store


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError):
        RowStore([Row(1), Row(1)])
    with pytest.raises(ValueError):
        RowStore([Row(1)]).append(Row(1))


def test_next_id_and_replace(store):
    assert store.next_id() == 6
    replaced = store.replace_all([Row(10)])
    assert replaced.next_id() == 11
    assert [r.id for r in replaced] == [10]


def test_reorder_requires_same_rows(store):
    rows = list(reversed(store.get_all()))
    assert [r.id for r in store.reorder(rows)] == [5, 4, 3, 2, 1]
    with pytest.raises(ValueError):
        store.reorder(rows[:-1])
