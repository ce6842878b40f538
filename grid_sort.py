"""
Sort engine: column-aware stable ordering of rows
"""

import locale
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

import polars as pl

from grid_schema import Row, cell_text, parse_date

ASCENDING = 'asc'
DESCENDING = 'desc'

NUMERIC_COLUMNS = ('estValue',)
DATE_COLUMNS = ('submitted', 'dueDate')

# Unparseable values sort below every real value
LOWEST_DATE = date(1, 1, 1)
LOWEST_NUMBER = -1

_NON_DIGITS = re.compile(r'[^\d]')


@dataclass(frozen=True)
class SortDirective:
    column_key: str
    direction: str = ASCENDING

    @property
    def ascending(self) -> bool:
        return self.direction == ASCENDING


def toggle_sort(current: Optional[SortDirective], column_key: str) -> SortDirective:
    """Same column flips direction, a new column starts ascending"""
    if current is not None and current.column_key == column_key:
        flipped = DESCENDING if current.ascending else ASCENDING
        return SortDirective(column_key, flipped)
    return SortDirective(column_key, ASCENDING)


def numeric_key(text: str) -> int:
    digits = _NON_DIGITS.sub('', str(text))
    return int(digits) if digits else LOWEST_NUMBER


def date_key(text: str) -> date:
    return parse_date(text) or LOWEST_DATE


def text_key(text: str) -> str:
    folded = str(text).casefold()
    try:
        return locale.strxfrm(folded)
    except ValueError:
        # strxfrm refuses embedded NUL characters
        return folded


def _key_frame(rows: Sequence[Row], column_key: str) -> Tuple[pl.DataFrame, List[str]]:
    values = [cell_text(row, column_key) for row in rows]
    frame = {'_pos': list(range(len(rows)))}

    if column_key in NUMERIC_COLUMNS:
        frame['_key'] = pl.Series('_key', [numeric_key(v) for v in values], dtype=pl.Int64)
        return pl.DataFrame(frame), ['_key']
    if column_key in DATE_COLUMNS:
        frame['_key'] = pl.Series('_key', [date_key(v) for v in values], dtype=pl.Date)
        return pl.DataFrame(frame), ['_key']
    if column_key == 'id':
        frame['_key'] = pl.Series('_key', [row.id for row in rows], dtype=pl.Int64)
        return pl.DataFrame(frame), ['_key']

    # Collation first, raw text as a tiebreak between case variants
    frame['_key'] = pl.Series('_key', [text_key(v) for v in values], dtype=pl.Utf8)
    frame['_raw'] = pl.Series('_raw', values, dtype=pl.Utf8)
    return pl.DataFrame(frame), ['_key', '_raw']


def sort_rows(rows: Sequence[Row], directive: SortDirective) -> List[Row]:
    """Return rows in the directive's order; equal keys keep their prior order"""
    rows = list(rows)
    if len(rows) < 2:
        return rows

    df, by = _key_frame(rows, directive.column_key)
    df_sorted = df.sort(by, descending=not directive.ascending, maintain_order=True)
    return [rows[pos] for pos in df_sorted['_pos'].to_list()]
