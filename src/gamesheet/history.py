"""Bounded linear undo/redo history.

The stack holds entries in chronological order and a cursor pointing at the
last applied entry (``-1`` when nothing can be undone).  The stack only stores
entries; applying their inverse is the engine's job.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from gamesheet.model import new_id, utc_now

logger = logging.getLogger(__name__)

EntryKind = Literal["cell", "row", "column", "sheet"]
EntryAction = Literal["add", "update", "delete"]

DEFAULT_HISTORY_LIMIT = 100


class HistoryEntry(BaseModel):
    """One reversible change.

    ``before``/``after`` hold entity snapshots.  Their shape depends on
    ``kind``: a Cell for cell entries, a Row for rows, a ``ColumnChange`` for
    columns and a whole Sheet for sheet entries.  Sheet adds hold a
    ``SheetSlot``, or a tuple of them when several sheets arrived together
    (``other_sheet_ids`` then names the rest).  ``None`` stands for "did not
    exist".
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: new_id("hist"))
    kind: EntryKind
    action: EntryAction
    sheet_id: str
    other_sheet_ids: tuple[str, ...] = ()
    before: Any = None
    after: Any = None
    timestamp: datetime = Field(default_factory=utc_now)

    def references(self, sheet_id: str) -> bool:
        return sheet_id == self.sheet_id or sheet_id in self.other_sheet_ids


class HistoryStack:
    """Linear history with a cursor and bounded capacity."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError(f"history limit must be >= 1, got {limit}")
        self.limit = limit
        self._entries: list[HistoryEntry] = []
        self._cursor = -1
        self.evicted = 0

    # -- inspection ----------------------------------------------------

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def can_undo(self) -> bool:
        return self._cursor >= 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    # -- mutation ------------------------------------------------------

    def push(self, entry: HistoryEntry) -> HistoryEntry | None:
        """Append *entry*, discarding any redo tail.

        Returns the evicted entry when capacity overflowed, else None.
        """
        del self._entries[self._cursor + 1 :]
        self._entries.append(entry)
        self._cursor = len(self._entries) - 1

        if len(self._entries) > self.limit:
            oldest = self._entries.pop(0)
            self._cursor -= 1
            self.evicted += 1
            logger.debug("history full (limit=%d): evicted %s", self.limit, oldest.id)
            return oldest
        return None

    def peek(self) -> HistoryEntry | None:
        """The entry the next undo would revert, without moving the cursor."""
        return self._entries[self._cursor] if self._cursor >= 0 else None

    def step_back(self) -> HistoryEntry | None:
        """Return the entry at the cursor and move the cursor back."""
        if not self.can_undo():
            return None
        entry = self._entries[self._cursor]
        self._cursor -= 1
        return entry

    def step_forward(self) -> HistoryEntry | None:
        """Move the cursor forward and return the entry it lands on."""
        if not self.can_redo():
            return None
        self._cursor += 1
        return self._entries[self._cursor]

    def truncate(self) -> None:
        """Drop entries after the cursor."""
        del self._entries[self._cursor + 1 :]

    def prune_sheet(self, sheet_id: str) -> int:
        """Remove every entry that references *sheet_id*.

        The cursor stays on the same surviving entry (or moves to the
        nearest earlier survivor).  Returns the number of removed entries.
        """
        kept: list[HistoryEntry] = []
        new_cursor = -1
        for i, entry in enumerate(self._entries):
            if entry.references(sheet_id):
                continue
            kept.append(entry)
            if i <= self._cursor:
                new_cursor = len(kept) - 1
        removed = len(self._entries) - len(kept)
        self._entries = kept
        self._cursor = new_cursor
        return removed

    def clear(self) -> None:
        self._entries = []
        self._cursor = -1
