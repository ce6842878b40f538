"""
Import/export codec for the row store

Structured form: JSON array of row records (all ten fields, schema key names).
Delimited form: comma separated text, header line ignored, no quoting.
Also spreadsheet (.xlsx) and zstd-compressed structured snapshots (.json.zst).
"""

import json
import logging
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
import polars as pl
import zstandard as zstd

from grid_schema import ALL_KEYS, FIELD_KEYS, Row, cell_text, record_to_row, row_to_record
from grid_store import RowStore

logger = logging.getLogger(__name__)

DELIMITER = ','
JSON_INDENT = 2

FORMAT_JSON = 'json'
FORMAT_CSV = 'csv'
FORMAT_XLSX = 'xlsx'
FORMAT_SNAPSHOT = 'snapshot'

# Structured forms replace the store, row-per-line forms append to it
REPLACING_FORMATS = (FORMAT_JSON, FORMAT_SNAPSHOT)
BINARY_FORMATS = (FORMAT_XLSX, FORMAT_SNAPSHOT)


class ParseFailure(ValueError):
    """Import content is not the expected shape; nothing was applied"""


@dataclass(frozen=True)
class ImportOutcome:
    store: RowStore
    mode: str  # 'replace' or 'append'
    count: int


# ---------- structured form ----------

def export_json(rows: Sequence[Row]) -> str:
    """Serialize every row, all fields, readable indentation"""
    return json.dumps([row_to_record(row) for row in rows], indent=JSON_INDENT, ensure_ascii=False)


def _check_record(index: int, record: Any) -> Dict[str, Any]:
    if not isinstance(record, dict):
        raise ParseFailure(f"item {index} is not an object")

    keys = set(record)
    missing = [k for k in ALL_KEYS if k not in keys]
    unknown = sorted(keys - set(ALL_KEYS))
    if missing:
        raise ParseFailure(f"item {index} is missing {', '.join(missing)}")
    if unknown:
        raise ParseFailure(f"item {index} has unknown fields {', '.join(unknown)}")

    row_id = record['id']
    if isinstance(row_id, bool) or not isinstance(row_id, int) or row_id < 1:
        raise ParseFailure(f"item {index} has an invalid id {row_id!r}")
    for key in FIELD_KEYS:
        if not isinstance(record[key], str):
            raise ParseFailure(f"item {index} field {key} is not text")
    return record


def import_json(text: str) -> List[Row]:
    """Parse the structured form; any defect fails the whole import"""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ParseFailure("top level is not a list of rows")

    rows = [record_to_row(_check_record(i, record)) for i, record in enumerate(data)]

    ids = [row.id for row in rows]
    if len(set(ids)) != len(ids):
        raise ParseFailure("duplicate row ids")
    return rows


# ---------- delimited form ----------

def _pad(values: List[str], line_no: int) -> List[str]:
    if len(values) < len(FIELD_KEYS):
        # Recovered locally, the import as a whole still succeeds
        logger.debug("Line %d has %d of %d fields, padding", line_no, len(values), len(FIELD_KEYS))
        values = values + [''] * (len(FIELD_KEYS) - len(values))
    return values[:len(FIELD_KEYS)]


def _rows_from_values(value_rows: List[List[str]], next_id: int) -> List[Row]:
    rows = []
    for offset, values in enumerate(value_rows):
        record = dict(zip(FIELD_KEYS, values))
        record['id'] = next_id + offset
        rows.append(record_to_row(record))
    return rows


def import_delimited(text: str, next_id: int) -> List[Row]:
    """Rows from comma separated text; ids continue from next_id"""
    lines = text.split('\n')
    # A terminating newline does not start another line
    if lines and lines[-1] == '':
        lines.pop()

    value_rows = []
    for line_no, line in enumerate(lines[1:], start=2):
        value_rows.append(_pad(line.rstrip("\r").split(DELIMITER), line_no))
    return _rows_from_values(value_rows, next_id)


def export_delimited(rows: Sequence[Row]) -> str:
    """Header plus the nine data fields in schema order"""
    df = pl.DataFrame({
        key: pl.Series(key, [cell_text(row, key) for row in rows], dtype=pl.Utf8)
        for key in FIELD_KEYS
    })
    return df.write_csv()


# ---------- spreadsheet form ----------

def export_xlsx(rows: Sequence[Row], file_path: str) -> None:
    records = [row_to_record(row) for row in rows]
    df = pd.DataFrame(records, columns=list(ALL_KEYS))
    df.to_excel(file_path, index=False, engine='openpyxl')


def import_xlsx(data: bytes, next_id: int) -> List[Row]:
    """First sheet, first nine columns in schema order; appended like delimited text"""
    try:
        df = pd.read_excel(BytesIO(data), engine='openpyxl', dtype=str, header=0)
    except Exception as e:
        raise ParseFailure(f"unreadable spreadsheet: {e}") from e

    # A sheet written by export_xlsx carries the id column first
    if len(df.columns) and str(df.columns[0]) == 'id':
        df = df.iloc[:, 1:]

    df = df.fillna('')
    value_rows = [
        _pad([str(v) for v in values], line_no)
        for line_no, values in enumerate(df.itertuples(index=False, name=None), start=2)
    ]
    return _rows_from_values(value_rows, next_id)


# ---------- compressed snapshot ----------

class SnapshotCompressor:
    """zstd wrapper around the structured form"""

    def __init__(self, compression_level: int = 3):
        self.compressor = zstd.ZstdCompressor(level=compression_level)
        self.decompressor = zstd.ZstdDecompressor()

    def compress_rows(self, rows: Sequence[Row]) -> Tuple[bytes, Dict[str, Any]]:
        """Compress rows, returning the payload and size metrics"""
        start_time = time.time()
        raw = export_json(rows).encode('utf-8')
        compressed = self.compressor.compress(raw)
        metrics = {
            'original_size': len(raw),
            'compressed_size': len(compressed),
            'compression_ratio': len(raw) / len(compressed) if compressed else 0.0,
            'compression_time': time.time() - start_time,
        }
        return compressed, metrics

    def decompress_rows(self, data: bytes) -> List[Row]:
        try:
            raw = self.decompressor.decompress(data)
        except zstd.ZstdError as e:
            raise ParseFailure(f"corrupt snapshot: {e}") from e
        try:
            text = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseFailure(f"snapshot is not UTF-8: {e}") from e
        return import_json(text)


_snapshots = SnapshotCompressor()


def compress_snapshot(rows: Sequence[Row]) -> bytes:
    return _snapshots.compress_rows(rows)[0]


def decompress_snapshot(data: bytes) -> List[Row]:
    return _snapshots.decompress_rows(data)


# ---------- files ----------

def detect_format(file_path: str) -> Optional[str]:
    name = Path(file_path).name.lower()
    if name.endswith('.json.zst') or name.endswith('.zst'):
        return FORMAT_SNAPSHOT
    if name.endswith('.json'):
        return FORMAT_JSON
    if name.endswith('.csv'):
        return FORMAT_CSV
    if name.endswith('.xlsx'):
        return FORMAT_XLSX
    return None


def read_import_payload(file_path: str) -> Union[str, bytes]:
    """Raw file content for a later decode; the only blocking step of an import"""
    fmt = detect_format(file_path)
    if fmt is None:
        raise ParseFailure(f"unsupported file type: {file_path}")
    path = Path(file_path)
    if fmt in BINARY_FORMATS:
        return path.read_bytes()
    return path.read_text(encoding='utf-8')


def decode_import(store: RowStore, fmt: str, payload: Union[str, bytes]) -> ImportOutcome:
    """Build the post-import store in one step; ParseFailure leaves store untouched"""
    if fmt == FORMAT_JSON:
        rows = import_json(payload)
    elif fmt == FORMAT_SNAPSHOT:
        rows = decompress_snapshot(payload)
    elif fmt == FORMAT_CSV:
        rows = import_delimited(payload, store.next_id())
    elif fmt == FORMAT_XLSX:
        rows = import_xlsx(payload, store.next_id())
    else:
        raise ParseFailure(f"unsupported format: {fmt}")

    if fmt in REPLACING_FORMATS:
        return ImportOutcome(store.replace_all(rows), 'replace', len(rows))
    return ImportOutcome(store.extend(rows), 'append', len(rows))


def write_export(rows: Sequence[Row], file_path: str) -> Dict[str, Any]:
    """Write the full row set in the format implied by the file name"""
    fmt = detect_format(file_path) or FORMAT_JSON
    start_time = time.time()
    metrics: Dict[str, Any] = {'format': fmt, 'rows': len(rows)}

    if fmt == FORMAT_JSON:
        Path(file_path).write_text(export_json(rows), encoding='utf-8')
    elif fmt == FORMAT_CSV:
        Path(file_path).write_text(export_delimited(rows), encoding='utf-8')
    elif fmt == FORMAT_XLSX:
        export_xlsx(rows, file_path)
    else:
        data, snapshot_metrics = _snapshots.compress_rows(rows)
        Path(file_path).write_bytes(data)
        metrics.update(snapshot_metrics)

    metrics['save_time'] = time.time() - start_time
    logger.info("Exported %d rows to %s (%s)", len(rows), file_path, fmt)
    return metrics
