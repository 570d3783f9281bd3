"""Document persistence: one YAML file holding the document name and sheets.

Storage is touched only at session boundaries.  The engine is loaded once
when a session starts and saved on request; history is not persisted.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from gamesheet.logging import EventLevel, EventType, emit, make_sheet_event
from gamesheet.logging.events import DOCUMENT_LOAD_FAILED
from gamesheet.model import Sheet

DOCUMENT_FORMAT_VERSION = 1


class DocumentLoadError(Exception):
    """Raised when a document file is missing, unreadable or malformed."""


def _atomic_yaml_write(path: Path, data: Any) -> None:
    """Write YAML to a file atomically via write-to-tmp then os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(
        yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    os.replace(str(tmp_path), str(path))


def document_to_dict(engine: Any) -> dict[str, Any]:
    """Return the persisted form of a :class:`DocumentEngine`."""
    return {
        "version": DOCUMENT_FORMAT_VERSION,
        "name": engine.name,
        "activeSheetId": engine.active_sheet_id,
        "sheets": [
            sheet.model_dump(by_alias=True, exclude_none=True)
            for sheet in engine.sheets
        ],
    }


def save_document(engine: Any, path: Path) -> Path:
    """Write every sheet of *engine* to *path* and clear its unsaved flag."""
    path = Path(path)
    _atomic_yaml_write(path, document_to_dict(engine))
    engine.mark_saved()
    emit(make_sheet_event(
        EventType.document_saved, EventLevel.info,
        f"Saved document {engine.name!r} ({len(engine.sheets)} sheet(s))",
        path=str(path),
        extra={"sheets": len(engine.sheets)},
    ))
    return path


def load_document(path: Path, config: dict[str, Any] | None = None) -> Any:
    """Load a document file into a new :class:`DocumentEngine`.

    Raises:
        DocumentLoadError: If the file is missing, not YAML, or its sheets
            do not validate.
    """
    from gamesheet.engine import DocumentEngine

    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise DocumentLoadError(f"{path}: expected a mapping at top level")
        version = raw.get("version", DOCUMENT_FORMAT_VERSION)
        if version != DOCUMENT_FORMAT_VERSION:
            raise DocumentLoadError(f"{path}: unsupported document version {version!r}")
        sheets = [Sheet.model_validate(s) for s in raw.get("sheets") or []]
    except (OSError, yaml.YAMLError, ValidationError, DocumentLoadError) as exc:
        emit(make_sheet_event(
            EventType.document_loaded, EventLevel.error,
            f"Failed to load document: {exc}",
            path=str(path), error_code=DOCUMENT_LOAD_FAILED,
        ))
        if isinstance(exc, DocumentLoadError):
            raise
        raise DocumentLoadError(f"{path}: {exc}") from exc

    engine = DocumentEngine(name=str(raw.get("name") or path.stem), config=config, sheets=sheets or None)
    active = raw.get("activeSheetId")
    if active and engine.get_sheet(active) is not None:
        engine.active_sheet_id = active
    emit(make_sheet_event(
        EventType.document_loaded, EventLevel.info,
        f"Loaded document {engine.name!r} ({len(sheets)} sheet(s))",
        path=str(path),
        extra={"sheets": len(sheets)},
    ))
    return engine
