"""JSON export: one object per row, keyed by column name."""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any

from gamesheet.io.results import ExportResult
from gamesheet.logging import EventLevel, EventType, emit, make_sheet_event
from gamesheet.logging.events import EXPORT_WRITE_FAILED
from gamesheet.model import Sheet


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def sheet_records(sheet: Sheet) -> list[dict[str, Any]]:
    """Return the rows of *sheet* as ``{column name: value}`` dicts."""
    records = []
    for row in sheet.rows:
        records.append({
            col.name: row.cells[col.id].value if col.id in row.cells else None
            for col in sheet.columns
        })
    return records


def export_json(sheet: Sheet, pretty: bool = True, indent: int = 2) -> str:
    """Serialize *sheet* to a JSON array of row objects."""
    return json.dumps(
        sheet_records(sheet),
        indent=indent if pretty else None,
        ensure_ascii=False,
        default=_json_default,
    )


def write_json(sheet: Sheet, path: Path, pretty: bool = True, indent: int = 2) -> ExportResult:
    path = Path(path)
    try:
        path.write_text(export_json(sheet, pretty, indent), encoding="utf-8")
    except OSError as exc:
        emit(make_sheet_event(
            EventType.export_failed, EventLevel.error,
            f"JSON export failed: {exc}",
            sheet_id=sheet.id, sheet_name=sheet.name, path=str(path),
            error_code=EXPORT_WRITE_FAILED,
        ))
        return ExportResult.failed(str(exc), str(path))

    emit(make_sheet_event(
        EventType.sheet_exported, EventLevel.info,
        f"Exported {sheet.name!r} to JSON",
        sheet_id=sheet.id, sheet_name=sheet.name, path=str(path),
        extra={"format": "json", "rows": len(sheet.rows)},
    ))
    return ExportResult(success=True, path=str(path), sheets=1)
