"""Spreadsheet upload adapter."""

import csv
import io
from pathlib import Path

from ledgerflow.adapters.base import RawRow, SourceBatch
from ledgerflow.domain.entities import SOURCE_CSV
from ledgerflow.domain.errors import SourceError


def decode_bytes(data: bytes) -> str:
    """Decode uploaded bytes, dropping a UTF-8 byte order mark."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def read_csv_text(text: str, source_name: str, source_type: str = SOURCE_CSV) -> SourceBatch:
    """Parse CSV text into a batch.

    The delimiter is sniffed from the first kilobyte. Blank lines are
    dropped; width is checked later by the schema mapper.

    Raises:
        SourceError: If the text holds no rows or cannot be parsed
    """
    sample = text[:1024]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel

    try:
        reader = csv.reader(io.StringIO(text), dialect)
        rows = [tuple(cell.strip() for cell in row) for row in reader]
    except csv.Error as e:
        raise SourceError(f"Could not parse {source_name}: {e}") from e

    rows = [row for row in rows if any(row)]
    if not rows:
        raise SourceError(f"{source_name} contains no rows")

    return SourceBatch(
        rows=tuple(RawRow(cells=row) for row in rows),
        source_type=source_type,
        source_name=source_name,
    )


def read_csv_bytes(data: bytes, source_name: str, source_type: str = SOURCE_CSV) -> SourceBatch:
    """Parse uploaded CSV bytes into a batch."""
    return read_csv_text(decode_bytes(data), source_name, source_type)


def read_csv_file(csv_file_path: str | Path) -> SourceBatch:
    """Read a CSV file into a batch.

    Raises:
        SourceError: If the file does not exist or cannot be read
    """
    csv_path = Path(csv_file_path)
    if not csv_path.exists():
        raise SourceError(f"CSV file not found: {csv_file_path}")
    try:
        data = csv_path.read_bytes()
    except OSError as e:
        raise SourceError(f"Could not read {csv_file_path}: {e}") from e
    return read_csv_bytes(data, csv_path.name)
