"""Structured event logging for gamesheet.

Events share one schema and go to an NDJSON file under the project's
``logs/`` directory.  The emit helpers never raise.
"""

from gamesheet.logging.events import (
    EventLevel,
    EventType,
    GamesheetEvent,
    clean_context,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    make_sheet_event,
    reset_sink,
    set_project_dir,
)
from gamesheet.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "GamesheetEvent",
    "clean_context",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "make_sheet_event",
    "reset_sink",
    "set_project_dir",
]
