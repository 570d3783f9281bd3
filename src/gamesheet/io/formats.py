"""Format dispatch for import/export by file suffix."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

from gamesheet.io.csv_io import import_csv, write_csv
from gamesheet.io.json_io import write_json
from gamesheet.io.results import ExportResult, ImportResult, UnsupportedFormatError
from gamesheet.io.xlsx import export_xlsx, import_xlsx
from gamesheet.model import Sheet

IMPORT_FORMATS = ("csv", "xlsx")
EXPORT_FORMATS = ("csv", "json", "xlsx")


def detect_format(path: Path | str, fmt: str | None = None) -> str:
    """Return the lower-case format name from *fmt* or the file suffix."""
    name = (fmt or Path(path).suffix.lstrip(".")).lower()
    if not name:
        raise UnsupportedFormatError(f"Cannot determine file format of {path}")
    return name


def import_file(path: Path, fmt: str | None = None, **options: Any) -> ImportResult:
    """Import *path* with the adapter for its format.

    Extra keyword arguments are passed to the adapter.

    Raises:
        UnsupportedFormatError: If there is no importer for the format.
    """
    name = detect_format(path, fmt)
    if name == "csv":
        return import_csv(Path(path), **options)
    if name == "xlsx":
        return import_xlsx(Path(path), **options)
    raise UnsupportedFormatError(
        f"Unsupported import format: {name} (expected one of {', '.join(IMPORT_FORMATS)})"
    )


def export_file(
    sheets: Iterable[Sheet],
    path: Path,
    fmt: str | None = None,
    **options: Any,
) -> ExportResult:
    """Export to *path* with the adapter for its format.

    CSV and JSON hold a single sheet; only the first of *sheets* is written.
    XLSX writes every sheet.

    Raises:
        UnsupportedFormatError: If there is no exporter for the format.
    """
    name = detect_format(path, fmt)
    if name not in EXPORT_FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported export format: {name} (expected one of {', '.join(EXPORT_FORMATS)})"
        )
    sheets = list(sheets)
    if name == "xlsx":
        return export_xlsx(sheets, Path(path), **options)
    if not sheets:
        return ExportResult.failed("No sheet to export", str(path))
    if name == "csv":
        return write_csv(sheets[0], Path(path), **options)
    return write_json(sheets[0], Path(path), **options)
