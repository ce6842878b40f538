"""
Row store: the ordered collection of work-item rows

Stores are values. Every mutation returns a new RowStore so application
state can be passed through pure transition functions.
"""

import logging
from typing import Iterable, Optional, Tuple

from grid_schema import Row, default_row, write_cell

logger = logging.getLogger(__name__)


class RowStore:
    """Ordered rows with unique ids"""

    __slots__ = ('_rows',)

    def __init__(self, rows: Iterable[Row] = ()):
        self._rows: Tuple[Row, ...] = tuple(rows)
        ids = [row.id for row in self._rows]
        if len(set(ids)) != len(ids):
            raise ValueError("duplicate row id")

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self):
        return iter(self._rows)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RowStore):
            return NotImplemented
        return self._rows == other._rows

    def __repr__(self) -> str:
        return f"RowStore({len(self._rows)} rows, max_id={self.max_id()})"

    def get_all(self) -> Tuple[Row, ...]:
        """Rows in current order (last sort, else insertion order)"""
        return self._rows

    def get(self, row_id: int) -> Optional[Row]:
        for row in self._rows:
            if row.id == row_id:
                return row
        return None

    def max_id(self) -> int:
        return max((row.id for row in self._rows), default=0)

    def next_id(self) -> int:
        return self.max_id() + 1

    def append(self, row: Row) -> 'RowStore':
        return RowStore(self._rows + (row,))

    def extend(self, rows: Iterable[Row]) -> 'RowStore':
        return RowStore(self._rows + tuple(rows))

    def replace_all(self, rows: Iterable[Row]) -> 'RowStore':
        """Used by structured import; the new rows become the whole store"""
        return RowStore(rows)

    def reorder(self, rows: Iterable[Row]) -> 'RowStore':
        """Adopt a new order of the same rows (sort engine output)"""
        rows = tuple(rows)
        if sorted(r.id for r in rows) != sorted(r.id for r in self._rows):
            raise ValueError("reorder must keep the same rows")
        return RowStore(rows)

    def upsert_field(self, row_id: int, key: str, value: str) -> 'RowStore':
        """Set one field; ids beyond the current maximum are materialized first"""
        current_max = self.max_id()
        if row_id > current_max:
            # Gap rows keep ids contiguous up to the addressed one
            gap = [default_row(i) for i in range(current_max + 1, row_id + 1)]
            if len(gap) > 1:
                logger.debug("Materializing %d gap rows before id %d", len(gap) - 1, row_id)
            gap[-1] = write_cell(gap[-1], key, value)
            return RowStore(self._rows + tuple(gap))

        updated = []
        found = False
        for row in self._rows:
            if row.id == row_id:
                row = write_cell(row, key, value)
                found = True
            updated.append(row)

        if not found:
            logger.debug("Ignoring edit for absent row id %d", row_id)
            return self
        return RowStore(updated)
