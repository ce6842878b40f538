"""
Cell address model

Translates between stable row ids and on-screen row numbers, and between
column keys and their index in the visible column sequence.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from grid_schema import ColumnDescriptor, Row

MIN_ROW_SLOTS = 25


@dataclass(frozen=True)
class CellPosition:
    row_id: int
    column_key: str
    column_index: int


def visible_columns(columns: Sequence[ColumnDescriptor]) -> Tuple[ColumnDescriptor, ...]:
    return tuple(c for c in columns if c.visible)


def column_index(columns: Sequence[ColumnDescriptor], key: str) -> Optional[int]:
    """Index of key among the visible columns, None if hidden or unknown"""
    for index, column in enumerate(visible_columns(columns)):
        if column.key == key:
            return index
    return None


class GridAddress:
    """Addressing over one computed view (filtered rows + visible columns)"""

    def __init__(self, view_rows: Sequence[Row], columns: Sequence[ColumnDescriptor], max_id: int):
        self.view_rows = tuple(view_rows)
        self.columns = visible_columns(columns)
        # Virtual slot ids continue after the store maximum
        self.max_id = max_id

    @property
    def max_row(self) -> int:
        return max(len(self.view_rows), MIN_ROW_SLOTS)

    @property
    def max_column_index(self) -> int:
        return len(self.columns) - 1

    def row_number(self, row_id: int) -> Optional[int]:
        """1-based on-screen row number of an id, None if not addressable"""
        for number, row in enumerate(self.view_rows, start=1):
            if row.id == row_id:
                return number
        if row_id > self.max_id:
            number = len(self.view_rows) + (row_id - self.max_id)
            if number <= self.max_row:
                return number
        return None

    def row_id_at(self, number: int) -> int:
        if number <= len(self.view_rows):
            return self.view_rows[number - 1].id
        return self.max_id + (number - len(self.view_rows))

    def is_virtual(self, number: int) -> bool:
        return number > len(self.view_rows)

    def clamp(self, number: int, index: int) -> Tuple[int, int]:
        number = max(1, min(self.max_row, number))
        index = max(0, min(self.max_column_index, index))
        return number, index

    def position_at(self, number: int, index: int) -> CellPosition:
        number, index = self.clamp(number, index)
        return CellPosition(self.row_id_at(number), self.columns[index].key, index)

    def move(self, position: CellPosition, delta_row: int, delta_col: int) -> CellPosition:
        """Move with clamping at the grid edges, never wrapping"""
        number = self.row_number(position.row_id)
        if number is None:
            number = 1
        return self.position_at(number + delta_row, position.column_index + delta_col)
