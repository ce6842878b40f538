"""
Filter and search engine

Pure functions over rows; the view preserves store order and never mutates.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import FrozenSet, List, Optional, Sequence

from grid_schema import ALL_KEYS, Row, cell_text, parse_date, read_cell

INCLUSION_FIELDS = ('status', 'priority', 'submitter', 'assigned')


@dataclass(frozen=True)
class FilterCriteria:
    status: FrozenSet[str] = frozenset()
    priority: FrozenSet[str] = frozenset()
    submitter: FrozenSet[str] = frozenset()
    assigned: FrozenSet[str] = frozenset()
    date_start: Optional[date] = None
    date_end: Optional[date] = None

    def toggle(self, field: str, value: str) -> 'FilterCriteria':
        """Add value to an inclusion set, or remove it if already present"""
        if field not in INCLUSION_FIELDS:
            raise KeyError(field)
        current = getattr(self, field)
        updated = current - {value} if value in current else current | {value}
        return replace(self, **{field: frozenset(updated)})

    def with_date_range(self, start: Optional[date], end: Optional[date]) -> 'FilterCriteria':
        return replace(self, date_start=start, date_end=end)

    def cleared(self) -> 'FilterCriteria':
        return FilterCriteria()

    @property
    def date_range_active(self) -> bool:
        # A single bound is inert
        return self.date_start is not None and self.date_end is not None

    def is_empty(self) -> bool:
        return not any(getattr(self, f) for f in INCLUSION_FIELDS) and not self.date_range_active


def matches_search(row: Row, query: str) -> bool:
    if not query:
        return True
    needle = query.lower()
    return any(needle in cell_text(row, key).lower() for key in ALL_KEYS)


def matches_criteria(row: Row, criteria: FilterCriteria) -> bool:
    for field in INCLUSION_FIELDS:
        allowed = getattr(criteria, field)
        if allowed and read_cell(row, field) not in allowed:
            return False

    if criteria.date_range_active:
        submitted = parse_date(row.submitted)
        if submitted is None:
            return False
        if not (criteria.date_start <= submitted <= criteria.date_end):
            return False
    return True


def filter_rows(rows: Sequence[Row], criteria: FilterCriteria, search: str = '') -> List[Row]:
    """Visible subsequence of rows: search AND every active criterion"""
    return [row for row in rows if matches_search(row, search) and matches_criteria(row, criteria)]


def distinct_values(rows: Sequence[Row], key: str) -> List[str]:
    """Values present in a column, first-seen order (filter option lists)"""
    seen = []
    for row in rows:
        value = cell_text(row, key)
        if value not in seen:
            seen.append(value)
    return seen
