"""Event schema and the process-wide emit functions.

Engine commands, adapters and storage report notable outcomes (a formula
that evaluated to an error marker, an import that failed, a save) as
:class:`GamesheetEvent` values.  Once :func:`set_project_dir` has been
called they are appended to the project's NDJSON log; before that they are
dropped.  Emitting never raises into the caller.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Document lifecycle
    document_loaded = "document_loaded"
    document_saved = "document_saved"

    # Adapters
    sheet_imported = "sheet_imported"
    import_failed = "import_failed"
    sheet_exported = "sheet_exported"
    export_failed = "export_failed"

    # Engine diagnostics
    formula_error = "formula_error"
    history_evicted = "history_evicted"
    validation_run = "validation_run"


# Error codes carried in ``GamesheetEvent.error_code``
IMPORT_PARSE_FAILED = "import_parse_failed"
IMPORT_EMPTY_FILE = "import_empty_file"
EXPORT_WRITE_FAILED = "export_write_failed"
FORMULA_EVAL_ERROR = "formula_eval_error"
DOCUMENT_LOAD_FAILED = "document_load_failed"


# ---------------------------------------------------------------------------
# Context cleanup
# ---------------------------------------------------------------------------

MAX_TEXT_LEN = 256
MAX_LIST_ITEMS = 50
TRUNCATION_MARK = "...[truncated]"


def clean_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a log-ready copy of *context*.

    Context often carries cell contents, which have no size limit:

    - strings longer than ``MAX_TEXT_LEN`` are cut and marked;
    - lists keep their first ``MAX_LIST_ITEMS`` items;
    - dates and datetimes become ISO strings;
    - nested mappings are cleaned the same way.
    """
    return {str(k): _clean(v) for k, v in context.items()}


def _clean(value: Any) -> Any:
    if isinstance(value, Mapping):
        return clean_context(value)
    if isinstance(value, (list, tuple)):
        items = [_clean(v) for v in value[:MAX_LIST_ITEMS]]
        if len(value) > MAX_LIST_ITEMS:
            items.append(f"...[{len(value) - MAX_LIST_ITEMS} more]")
        return items
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str) and len(value) > MAX_TEXT_LEN:
        return value[:MAX_TEXT_LEN] + TRUNCATION_MARK
    return value


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """UTC timestamp, ISO-8601 with a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GamesheetEvent(BaseModel):
    """One structured log record."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


def make_sheet_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    sheet_id: str | None = None,
    sheet_name: str | None = None,
    path: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> GamesheetEvent:
    """Build an event whose context names the sheet and file involved.

    Only the attribution fields that are given appear in the context.
    """
    attribution = {"sheet_id": sheet_id, "sheet_name": sheet_name, "path": path}
    ctx = {k: v for k, v in attribution.items() if v is not None}
    ctx.update(extra or {})
    return GamesheetEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=ctx,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Process-wide sink
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Path | str, config: Mapping[str, Any] | None = None) -> None:
    """Send subsequent events to ``<project_dir>/logs/events.ndjson``.

    Called once when a CLI command or the API server opens a project.

    Args:
        project_dir: Project root.
        config: Project configuration supplying ``logging_fsync`` and
            ``logging_tail_bytes``.  Loaded from ``gamesheet.yaml`` when
            omitted; an unreadable file leaves the logging defaults.
    """
    global _sink
    from gamesheet.logging.sink import EventSink
    from gamesheet.project import ProjectConfigError, load_project_config

    project_dir = Path(project_dir)
    if config is None:
        try:
            config = load_project_config(project_dir)
        except ProjectConfigError as exc:
            _warn(f"using default logging options: {exc}")
            config = {}

    tail_bytes = config.get("logging_tail_bytes")
    try:
        tail_bytes = int(tail_bytes) if tail_bytes is not None else None
    except (TypeError, ValueError):
        _warn(f"ignoring logging_tail_bytes={tail_bytes!r}")
        tail_bytes = None

    _sink = EventSink(project_dir, fsync=bool(config.get("logging_fsync", False)), tail_bytes=tail_bytes)


def reset_sink() -> None:
    """Stop writing events; later emits are dropped."""
    global _sink
    _sink = None


# Logging problems are reported at most once per interval so that a broken
# log file cannot flood the terminal.
_WARN_INTERVAL_SECS = 60.0
_last_warning = float("-inf")


def _warn(msg: str) -> None:
    global _last_warning
    now = time.monotonic()
    if now - _last_warning < _WARN_INTERVAL_SECS:
        return
    _last_warning = now
    logger.warning("gamesheet event log: %s", msg)


def emit(event: GamesheetEvent) -> None:
    """Append *event* to the project log, cleaning its context first.

    **Never raises.**  Failures are reported through a rate-limited warning.
    """
    sink = _sink
    if sink is None:
        return
    try:
        sink.write(event.model_copy(update={"context": clean_context(event.context)}))
    except Exception as exc:
        _warn(f"could not write event {event.event_type.value}: {exc!r}")


def _emit_at(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
) -> None:
    emit(GamesheetEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=context or {},
        error_code=error_code,
    ))


def emit_info(event_type: EventType, message: str, context: dict[str, Any] | None = None) -> None:
    _emit_at(EventLevel.info, event_type, message, context, None)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.warning, event_type, message, context, error_code)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.error, event_type, message, context, error_code)
