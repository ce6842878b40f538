"""
Column schema and row record for the work-item grid

Rows are immutable; every column is reached through a closed accessor table
keyed by the column key, never through attribute lookup by string.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

STATUS_OPTIONS: Tuple[str, ...] = ('In-process', 'Need to start', 'Complete', 'Blocked')
PRIORITY_OPTIONS: Tuple[str, ...] = ('High', 'Medium', 'Low')

DATE_FORMAT = '%d-%m-%Y'


@dataclass(frozen=True)
class Row:
    id: int
    job_request: str = ''
    submitted: str = ''
    status: str = 'Need to start'
    submitter: str = ''
    url: str = ''
    assigned: str = ''
    priority: str = 'Medium'
    due_date: str = ''
    est_value: str = ''


@dataclass(frozen=True)
class ColumnDescriptor:
    key: str
    label: str
    editable: bool = True
    visible: bool = True
    options: Tuple[str, ...] = ()

    @property
    def is_enumerated(self) -> bool:
        return bool(self.options)


COLUMNS: Tuple[ColumnDescriptor, ...] = (
    ColumnDescriptor('id', '#', editable=False),
    ColumnDescriptor('jobRequest', 'Job Request'),
    ColumnDescriptor('submitted', 'Submitted'),
    ColumnDescriptor('status', 'Status', options=STATUS_OPTIONS),
    ColumnDescriptor('submitter', 'Submitter'),
    ColumnDescriptor('url', 'URL'),
    ColumnDescriptor('assigned', 'Assigned'),
    ColumnDescriptor('priority', 'Priority', options=PRIORITY_OPTIONS),
    ColumnDescriptor('dueDate', 'Due Date'),
    ColumnDescriptor('estValue', 'Est. Value'),
)

# Schema order of the nine data fields (delimited import/export order)
FIELD_KEYS: Tuple[str, ...] = tuple(c.key for c in COLUMNS if c.key != 'id')
ALL_KEYS: Tuple[str, ...] = tuple(c.key for c in COLUMNS)


# key -> (reader, writer)
_ACCESSORS: Dict[str, Tuple[Callable[[Row], object], Callable[[Row, str], Row]]] = {
    'id': (lambda r: r.id, lambda r, v: replace(r, id=int(v))),
    'jobRequest': (lambda r: r.job_request, lambda r, v: replace(r, job_request=v)),
    'submitted': (lambda r: r.submitted, lambda r, v: replace(r, submitted=v)),
    'status': (lambda r: r.status, lambda r, v: replace(r, status=v)),
    'submitter': (lambda r: r.submitter, lambda r, v: replace(r, submitter=v)),
    'url': (lambda r: r.url, lambda r, v: replace(r, url=v)),
    'assigned': (lambda r: r.assigned, lambda r, v: replace(r, assigned=v)),
    'priority': (lambda r: r.priority, lambda r, v: replace(r, priority=v)),
    'dueDate': (lambda r: r.due_date, lambda r, v: replace(r, due_date=v)),
    'estValue': (lambda r: r.est_value, lambda r, v: replace(r, est_value=v)),
}


def read_cell(row: Row, key: str):
    """Read one field by column key"""
    return _ACCESSORS[key][0](row)


def write_cell(row: Row, key: str, value: str) -> Row:
    """Return a copy of the row with one field replaced"""
    return _ACCESSORS[key][1](row, value)


def cell_text(row: Row, key: str) -> str:
    return str(read_cell(row, key))


def column_for(key: str, columns: Tuple[ColumnDescriptor, ...] = COLUMNS) -> ColumnDescriptor:
    for column in columns:
        if column.key == key:
            return column
    raise KeyError(key)


def row_to_record(row: Row) -> Dict[str, object]:
    """External record form, keys in schema order"""
    return {key: read_cell(row, key) for key in ALL_KEYS}


def record_to_row(record: Dict[str, object]) -> Row:
    row = Row(id=int(record['id']))
    for key in FIELD_KEYS:
        row = write_cell(row, key, record[key])
    return row


def default_row(row_id: int) -> Row:
    """Blank row used when a virtual slot is materialized"""
    return Row(id=row_id)


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(text: str) -> Optional[date]:
    """Parse DD-MM-YYYY, None if it is not a real date"""
    parts = str(text).strip().split('-')
    if len(parts) != 3:
        return None
    # Reverse segment order to YYYY-MM-DD
    try:
        return datetime.strptime('-'.join(reversed(parts)), '%Y-%m-%d').date()
    except ValueError:
        return None


def new_row(row_id: int, today: Optional[date] = None) -> Row:
    """Template row for the toolbar 'new row' action"""
    stamp = format_date(today or date.today())
    return Row(
        id=row_id,
        job_request='New Job Request',
        submitted=stamp,
        status='Need to start',
        submitter='New User',
        url='www.example.com',
        assigned='Unassigned',
        priority='Medium',
        due_date=stamp,
        est_value='0',
    )


SAMPLE_ROWS: List[Row] = [
    Row(1, 'Launch social media campaign for pro...', '15-11-2024', 'In-process', 'Aisha Patel',
        'www.aishapatel...', 'Sophie Choudhury', 'Medium', '20-11-2024', '6,200,000'),
    Row(2, 'Update press kit for company redesign', '28-10-2024', 'Need to start', 'Irfan Khan',
        'www.irfankhap...', 'Tejas Pandey', 'High', '30-10-2024', '3,500,000'),
    Row(3, 'Finalize user testing feedback for app...', '05-12-2024', 'In-process', 'Mark Johnson',
        'www.markjohns...', 'Rachel Lee', 'Medium', '10-12-2024', '4,750,000'),
    Row(4, 'Design new features for the website', '10-01-2025', 'Complete', 'Emily Green',
        'www.emilygreen...', 'Tom Wright', 'Low', '15-01-2025', '5,900,000'),
    Row(5, 'Prepare financial report for Q4', '25-01-2025', 'Blocked', 'Jessica Brown',
        'www.jessicabro...', 'Kevin Smith', 'Low', '30-01-2025', '2,800,000'),
]
