import pytest

from grid_schema import SAMPLE_ROWS, Row
from grid_state import initial_state
from grid_store import RowStore


@pytest.fixture
def sample_rows():
    return list(SAMPLE_ROWS)


@pytest.fixture
def store(sample_rows):
    return RowStore(sample_rows)


@pytest.fixture
def state(sample_rows):
    return initial_state(sample_rows)


@pytest.fixture
def tied_rows():
    """Equal numeric values written with different separators"""
    return [
        Row(1, 'first', est_value='1,000'),
        Row(2, 'second', est_value='1000'),
        Row(3, 'third', est_value='500'),
        Row(4, 'fourth', est_value='1.000'),
    ]
