"""Service layer for the HTTP API.

Wraps one :class:`DocumentEngine` per process and turns engine results into
JSON-ready dicts.  Unknown ids raise :class:`NotFoundError`; invalid
requests raise ``ValueError``.  The server maps them to 404 and 400.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

from gamesheet.engine import DocumentEngine
from gamesheet.io import ImportResult, export_file, import_file
from gamesheet.io.formats import EXPORT_FORMATS, IMPORT_FORMATS, detect_format
from gamesheet.logging import set_project_dir
from gamesheet.logging.sink import EventSink
from gamesheet.model import FilterConfig, Sheet
from gamesheet.project import DOCUMENT_FILENAME, load_project_config
from gamesheet.search import SearchOptions
from gamesheet.storage import load_document, save_document

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class NotFoundError(LookupError):
    """Raised when a request names a sheet, row or column that does not exist."""


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def sheet_summary(sheet: Sheet) -> dict[str, Any]:
    return {
        "id": sheet.id,
        "name": sheet.name,
        "rows": len(sheet.rows),
        "columns": len(sheet.columns),
        "hiddenRows": sum(1 for r in sheet.rows if r.hidden),
        "filtered": bool(sheet.filters),
        "updatedAt": sheet.updated_at.isoformat(),
    }


class DocumentService:
    """Document operations shared by the API routes and the CLI.

    Parameters
    ----------
    project_dir : Path | None
        Project root.  ``document.yaml`` is loaded from it when present and
        events are logged under it.  ``None`` runs an in-memory document.
    """

    def __init__(self, project_dir: Path | None = None) -> None:
        self.project_dir = Path(project_dir).resolve() if project_dir else None
        self.config = load_project_config(self.project_dir)
        if self.project_dir is not None:
            set_project_dir(self.project_dir, self.config)
        doc_path = self.document_path
        if doc_path is not None and doc_path.exists():
            self.engine = load_document(doc_path, self.config)
        else:
            self.engine = DocumentEngine(config=self.config)

    @property
    def document_path(self) -> Path | None:
        if self.project_dir is None:
            return None
        return self.project_dir / DOCUMENT_FILENAME

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _sheet(self, sheet_id: str) -> Sheet:
        sheet = self.engine.get_sheet(sheet_id)
        if sheet is None:
            raise NotFoundError(f"Sheet {sheet_id!r} not found")
        return sheet

    def _row_exists(self, sheet: Sheet, row_id: str) -> None:
        if sheet.find_row(row_id) is None:
            raise NotFoundError(f"Row {row_id!r} not found in sheet {sheet.name!r}")

    def _column_exists(self, sheet: Sheet, column_id: str) -> None:
        if sheet.find_column(column_id) is None:
            raise NotFoundError(f"Column {column_id!r} not found in sheet {sheet.name!r}")

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.engine.name,
            "sheets": len(self.engine.sheets),
            "activeSheetId": self.engine.active_sheet_id,
            "canUndo": self.engine.can_undo(),
            "canRedo": self.engine.can_redo(),
            "unsaved": self.engine.has_unsaved_changes,
        }

    def save(self) -> dict[str, Any]:
        path = self.document_path
        if path is None:
            raise ValueError("No project directory; document cannot be saved")
        save_document(self.engine, path)
        return {"saved": str(path), **self.get_status()}

    def undo(self) -> dict[str, Any]:
        return {"applied": self.engine.undo(), **self.get_status()}

    def redo(self) -> dict[str, Any]:
        return {"applied": self.engine.redo(), **self.get_status()}

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    def list_sheets(self) -> list[dict[str, Any]]:
        return [sheet_summary(s) for s in self.engine.sheets]

    def get_sheet(self, sheet_id: str) -> dict[str, Any]:
        return _dump(self._sheet(sheet_id))

    def add_sheet(self, name: str | None = None, template: str | None = None) -> dict[str, Any]:
        try:
            sheet = self.engine.add_sheet(name, template=template)
        except FileNotFoundError as exc:
            raise ValueError(str(exc)) from exc
        return sheet_summary(sheet)

    def rename_sheet(self, sheet_id: str, name: str) -> dict[str, Any]:
        self._sheet(sheet_id)
        if not name.strip():
            raise ValueError("Sheet name must not be empty")
        return sheet_summary(self.engine.rename_sheet(sheet_id, name))

    def duplicate_sheet(self, sheet_id: str) -> dict[str, Any]:
        self._sheet(sheet_id)
        return sheet_summary(self.engine.duplicate_sheet(sheet_id))

    def delete_sheet(self, sheet_id: str) -> dict[str, Any]:
        self._sheet(sheet_id)
        if not self.engine.delete_sheet(sheet_id):
            raise ValueError("Cannot delete the last sheet")
        return {"deleted": sheet_id, **self.get_status()}

    def activate_sheet(self, sheet_id: str) -> dict[str, Any]:
        self._sheet(sheet_id)
        self.engine.set_active_sheet(sheet_id)
        return self.get_status()

    def sort_sheet(self, sheet_id: str, column_id: str, direction: str = "asc") -> dict[str, Any]:
        self._column_exists(self._sheet(sheet_id), column_id)
        return _dump(self.engine.sort_sheet(sheet_id, column_id, direction))

    # ------------------------------------------------------------------
    # Cells, rows, columns
    # ------------------------------------------------------------------

    def update_cell(self, sheet_id: str, row_id: str, column_id: str, value: Any) -> dict[str, Any]:
        sheet = self._sheet(sheet_id)
        self._row_exists(sheet, row_id)
        self._column_exists(sheet, column_id)
        return _dump(self.engine.update_cell(sheet_id, row_id, column_id, value))

    def update_cell_style(
        self,
        sheet_id: str,
        row_id: str,
        column_id: str,
        style: dict[str, Any] | None,
    ) -> dict[str, Any]:
        sheet = self._sheet(sheet_id)
        self._row_exists(sheet, row_id)
        self._column_exists(sheet, column_id)
        cell = self.engine.update_cell_style(sheet_id, row_id, column_id, style)
        if cell is None:
            raise NotFoundError(f"Cell {row_id}:{column_id} not found")
        return _dump(cell)

    def add_row(self, sheet_id: str, after_row_id: str | None = None) -> dict[str, Any]:
        sheet = self._sheet(sheet_id)
        if after_row_id is not None:
            self._row_exists(sheet, after_row_id)
        return _dump(self.engine.add_row(sheet_id, after_row_id))

    def duplicate_row(self, sheet_id: str, row_id: str) -> dict[str, Any]:
        self._row_exists(self._sheet(sheet_id), row_id)
        return _dump(self.engine.duplicate_row(sheet_id, row_id))

    def delete_row(self, sheet_id: str, row_id: str) -> dict[str, Any]:
        self._row_exists(self._sheet(sheet_id), row_id)
        return _dump(self.engine.delete_row(sheet_id, row_id))

    def add_column(self, sheet_id: str, after_column_id: str | None = None) -> dict[str, Any]:
        sheet = self._sheet(sheet_id)
        if after_column_id is not None:
            self._column_exists(sheet, after_column_id)
        return _dump(self.engine.add_column(sheet_id, after_column_id))

    def update_column(self, sheet_id: str, column_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        self._column_exists(self._sheet(sheet_id), column_id)
        return _dump(self.engine.update_column(sheet_id, column_id, patch))

    def delete_column(self, sheet_id: str, column_id: str) -> dict[str, Any]:
        self._column_exists(self._sheet(sheet_id), column_id)
        return _dump(self.engine.delete_column(sheet_id, column_id))

    # ------------------------------------------------------------------
    # Filter / search / validation
    # ------------------------------------------------------------------

    def apply_filters(self, sheet_id: str, filters: list[FilterConfig]) -> dict[str, Any]:
        self._sheet(sheet_id)
        sheet = self.engine.filter_sheet(sheet_id, filters)
        hidden = sum(1 for r in sheet.rows if r.hidden)
        return {"visible": len(sheet.rows) - hidden, "hidden": hidden}

    def clear_filters(self, sheet_id: str) -> dict[str, Any]:
        self._sheet(sheet_id)
        sheet = self.engine.clear_filters(sheet_id)
        return {"visible": len(sheet.rows), "hidden": 0}

    def search(
        self,
        text: str,
        options: SearchOptions | None = None,
        sheet_id: str | None = None,
    ) -> list[dict[str, Any]]:
        if sheet_id is not None:
            self._sheet(sheet_id)
            results = self.engine.search(sheet_id, text, options)
        else:
            results = self.engine.search_all(text, options)
        return [_dump(r) for r in results]

    def replace_all(
        self,
        sheet_id: str,
        search: str,
        replace: str,
        options: SearchOptions | None = None,
    ) -> dict[str, Any]:
        self._sheet(sheet_id)
        return {"replaced": self.engine.replace_all(sheet_id, search, replace, options)}

    def validate(self, sheet_id: str) -> dict[str, Any]:
        self._sheet(sheet_id)
        return _dump(self.engine.validate_sheet(sheet_id))

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    @staticmethod
    def read_upload(data: bytes, filename: str, options: dict[str, Any] | None = None) -> ImportResult:
        """Run an importer over uploaded bytes.  Safe to call off the event loop."""
        fmt = detect_format(filename)
        if fmt not in IMPORT_FORMATS:
            raise ValueError(f"Unsupported import format: {fmt}")
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / Path(filename).name
            path.write_bytes(data)
            return import_file(path, fmt, **(options or {}))

    def accept_import(self, result: ImportResult) -> dict[str, Any]:
        """Hand imported sheets to the document (all at once)."""
        if not result.success:
            raise ValueError(result.error or "Import failed")
        added = self.engine.add_sheets(result.sheets)
        return {"imported": [sheet_summary(s) for s in added], **self.get_status()}

    def export_bytes(self, fmt: str, sheet_id: str | None = None) -> tuple[bytes, str, str]:
        """Export the document (or one sheet) and return (data, filename, media type)."""
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")
        if sheet_id is not None:
            sheets = [self._sheet(sheet_id)]
        elif fmt == "xlsx":
            sheets = list(self.engine.sheets)
        else:
            active = self.engine.active_sheet
            if active is None:
                raise ValueError("No sheet to export")
            sheets = [active]

        stem = sheets[0].name if len(sheets) == 1 else self.engine.name
        filename = f"{stem}.{fmt}"
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / f"export.{fmt}"
            options: dict[str, Any] = {}
            if fmt == "csv":
                options["delimiter"] = self.config["csv_delimiter"]
            elif fmt == "json":
                options["indent"] = int(self.config["json_indent"])
            result = export_file(sheets, path, fmt, **options)
            if not result.success:
                raise ValueError(result.error or "Export failed")
            return path.read_bytes(), filename, EXPORT_MEDIA_TYPES[fmt]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def read_events(
        self,
        level: str | None = None,
        event_type: str | None = None,
        sheet_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        if self.project_dir is None:
            return []
        sink = EventSink(self.project_dir)
        return sink.query(level=level, event_type=event_type, sheet_id=sheet_id, limit=limit)
