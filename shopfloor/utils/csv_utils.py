# shopfloor/utils/csv_utils.py
import csv
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from shopfloor.utils.validation import primary_header

logger = logging.getLogger(__name__)

# Characters that could be used for formula injection
FORMULA_INJECTION_CHARS = ("=", "+", "-", "@", "\t", "\r")

ERROR_REPORT_HEADERS = [
    "Row Number",
    primary_header("part_mark"),
    primary_header("assembly_mark"),
    primary_header("material"),
    primary_header("thickness"),
    "Errors",
]

EXPORT_COLUMNS = [
    ("part_mark", "PartMark"),
    ("assembly_mark", "AssemblyMark"),
    ("material", "Material"),
    ("thickness", "Thickness"),
    ("quantity", "Quantity"),
    ("length", "Length"),
    ("width", "Width"),
    ("height", "Height"),
    ("weight", "Weight"),
    ("notes", "Notes"),
]

ERROR_SEPARATOR = "; "


def iter_csv_rows(file_path) -> Iterator[Tuple[int, Dict[str, Optional[str]]]]:
    """
    Lazily yield (row_number, header-keyed row) pairs from a CSV file.

    Row numbers are 1-based over data rows. A BOM written by Excel is stripped
    from the first header.
    """
    with open(file_path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        for row_number, row in enumerate(reader, start=1):
            # Extra cells beyond the header land under the None key
            row.pop(None, None)
            yield row_number, row


def sanitize_for_csv_injection(value: Any) -> Any:
    """Prefix values that a spreadsheet would treat as a formula with a single quote"""
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed and trimmed[0] in FORMULA_INJECTION_CHARS:
            return f"'{value}"
    return value


def sanitize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: sanitize_for_csv_injection(value) for key, value in row.items()}


def format_cell(value: Any) -> Any:
    """Render a value for a CSV cell: None becomes empty, integral floats lose the .0"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def write_csv_rows(buffer, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([sanitize_for_csv_injection(format_cell(value)) for value in row])


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    write_csv_rows(buffer, headers, rows)
    return buffer.getvalue()


def write_error_report(rejected_rows: Sequence[Any], report_path) -> Path:
    """
    Write the rejected-rows report, replacing any previous one.

    The report is written to a temporary file in the same directory and moved
    into place, so readers never see a half-written report.
    """
    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)

    header_keys = ERROR_REPORT_HEADERS[1:-1]
    rows = [
        [rejected.row_number]
        + [rejected.values.get(header) for header in header_keys]
        + [ERROR_SEPARATOR.join(rejected.errors)]
        for rejected in rejected_rows
    ]

    fd, tmp_path = tempfile.mkstemp(dir=report_path.parent, prefix=".error-", suffix=".csv")
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
            write_csv_rows(f, ERROR_REPORT_HEADERS, rows)
        os.replace(tmp_path, report_path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.info(f"Wrote error report with {len(rows)} rows to {report_path}")
    return report_path


def iter_export_csv(records: Iterable[Mapping[str, Any]], chunk_size: int = 500) -> Iterator[str]:
    """Yield the full-table export in chunks for a streaming response"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([title for _, title in EXPORT_COLUMNS])

    for index, record in enumerate(records, start=1):
        writer.writerow([
            sanitize_for_csv_injection(format_cell(record.get(key)))
            for key, _ in EXPORT_COLUMNS
        ])
        if index % chunk_size == 0:
            yield buffer.getvalue()
            buffer.truncate(0)
            buffer.seek(0)

    remaining = buffer.getvalue()
    if remaining:
        yield remaining


def cleanup_file(file_path) -> bool:
    """Remove a temporary file. Returns False when it could not be removed."""
    try:
        if file_path and os.path.exists(file_path):
            os.unlink(file_path)
        return True
    except OSError as e:
        logger.error(f"Error cleaning up file {file_path}: {e}")
        return False
