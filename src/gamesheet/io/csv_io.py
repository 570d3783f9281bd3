"""CSV import and export.

Import sniffs each value: empty strings become None, numeric strings become
numbers and ``true``/``false`` become booleans; everything else stays text.
A column takes the type shared by all of its non-empty values, or ``text``
when they disagree.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import IO, Union

from gamesheet.addressing import index_to_col_letter
from gamesheet.io.results import ExportResult, ImportResult
from gamesheet.logging import EventLevel, EventType, emit, make_sheet_event
from gamesheet.logging.events import EXPORT_WRITE_FAILED, IMPORT_EMPTY_FILE, IMPORT_PARSE_FAILED
from gamesheet.model import Cell, CellType, CellValue, Column, Row, Sheet, new_id

logger = logging.getLogger(__name__)

CsvSource = Union[str, Path, IO[str]]

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")

DEFAULT_ROW_HEIGHT = 32


# ---------------------------------------------------------------------------
# Value conversion
# ---------------------------------------------------------------------------


def sniff_value(text: str) -> CellValue:
    """Convert one CSV field to a typed value."""
    if text == "":
        return None
    stripped = text.strip()
    if _INT_RE.match(stripped):
        return int(stripped)
    if _NUMBER_RE.match(stripped):
        return float(stripped)
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return text


def _value_type(value: CellValue) -> CellType:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "text"


def format_csv_value(value: CellValue) -> str:
    """Render a stored value as a CSV field."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _read_source(source: CsvSource) -> tuple[str, str | None]:
    """Return (text, default sheet name) for a path, raw text or open file."""
    if isinstance(source, Path):
        return source.read_text(encoding="utf-8-sig"), source.stem
    if isinstance(source, str):
        return source, None
    name = getattr(source, "name", None)
    stem = Path(name).stem if isinstance(name, str) else None
    return source.read(), stem


def import_csv(
    source: CsvSource,
    has_header: bool = True,
    delimiter: str = ",",
    name: str | None = None,
    *,
    row_height: int | None = DEFAULT_ROW_HEIGHT,
) -> ImportResult:
    """Parse CSV into a single sheet.

    Args:
        source: A :class:`~pathlib.Path`, CSV text, or an open text file.
        has_header: Use the first record as column names.  Without a header,
            columns are named ``A``, ``B``, ...
        delimiter: Field separator.
        name: Sheet name.  Defaults to the file stem, else ``Sheet1``.
        row_height: Height given to every imported row.

    Returns:
        An :class:`ImportResult` holding one sheet, or the failure reason.
    """
    label = str(source) if isinstance(source, Path) else None
    try:
        text, stem = _read_source(source)
        records = [
            rec for rec in csv.reader(io.StringIO(text), delimiter=delimiter)
            if any(field.strip() for field in rec)
        ]
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        emit(make_sheet_event(
            EventType.import_failed, EventLevel.error,
            f"CSV import failed: {exc}",
            path=label, error_code=IMPORT_PARSE_FAILED,
        ))
        return ImportResult.failed(str(exc))

    if not records:
        emit(make_sheet_event(
            EventType.import_failed, EventLevel.warning,
            "CSV file is empty",
            path=label, error_code=IMPORT_EMPTY_FILE,
        ))
        return ImportResult.failed("CSV file is empty")

    width = max(len(rec) for rec in records)
    header: list[str] = []
    if has_header:
        header = records[0]
        records = records[1:]

    values = [
        [sniff_value(rec[i]) if i < len(rec) else None for i in range(width)]
        for rec in records
    ]

    columns: list[Column] = []
    for i in range(width):
        col_name = header[i].strip() if i < len(header) else ""
        if not col_name:
            col_name = index_to_col_letter(i) if not has_header else f"Column {i + 1}"
        kinds = {_value_type(row[i]) for row in values if row[i] is not None}
        col_type: CellType = kinds.pop() if len(kinds) == 1 else "text"
        columns.append(Column(id=f"col-{i}", name=col_name, type=col_type, index=i))

    rows: list[Row] = []
    for r, row_values in enumerate(values):
        row_id = f"row-{r}"
        cells = {
            col.id: Cell(
                row_id=row_id,
                column_id=col.id,
                value=row_values[c],
                type=col.type if row_values[c] is None else _value_type(row_values[c]),
            )
            for c, col in enumerate(columns)
        }
        rows.append(Row(id=row_id, index=r, cells=cells, height=row_height))

    sheet = Sheet(id=new_id("sheet"), name=name or stem or "Sheet1", columns=columns, rows=rows)
    logger.debug("import_csv: %d rows x %d columns", len(rows), len(columns))
    emit(make_sheet_event(
        EventType.sheet_imported, EventLevel.info,
        f"Imported {sheet.name!r} from CSV ({len(rows)} rows)",
        sheet_id=sheet.id, sheet_name=sheet.name, path=label,
        extra={"format": "csv", "rows": len(rows), "columns": len(columns)},
    ))
    return ImportResult(success=True, sheets=[sheet])


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_csv(sheet: Sheet, include_header: bool = True, delimiter: str = ",") -> str:
    """Serialize every row of *sheet* (hidden rows included) to CSV text."""
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
    if include_header:
        writer.writerow([col.name for col in sheet.columns])
    for row in sheet.rows:
        writer.writerow([
            format_csv_value(row.cells[col.id].value if col.id in row.cells else None)
            for col in sheet.columns
        ])
    return buf.getvalue()


def write_csv(
    sheet: Sheet,
    path: Path,
    include_header: bool = True,
    delimiter: str = ",",
) -> ExportResult:
    """Write *sheet* to *path* as CSV."""
    path = Path(path)
    try:
        path.write_text(export_csv(sheet, include_header, delimiter), encoding="utf-8")
    except OSError as exc:
        emit(make_sheet_event(
            EventType.export_failed, EventLevel.error,
            f"CSV export failed: {exc}",
            sheet_id=sheet.id, sheet_name=sheet.name, path=str(path),
            error_code=EXPORT_WRITE_FAILED,
        ))
        return ExportResult.failed(str(exc), str(path))

    emit(make_sheet_event(
        EventType.sheet_exported, EventLevel.info,
        f"Exported {sheet.name!r} to CSV",
        sheet_id=sheet.id, sheet_name=sheet.name, path=str(path),
        extra={"format": "csv", "rows": len(sheet.rows)},
    ))
    return ExportResult(success=True, path=str(path), sheets=1)
