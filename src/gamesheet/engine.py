"""Document mutation and history engine.

``DocumentEngine`` owns the document state: an immutable tuple of sheets,
the undo/redo history and the unsaved-changes flag.  Every command builds
the next tuple of sheets, records a :class:`HistoryEntry` describing the
change and swaps the new state in with one assignment before notifying
subscribers.

Commands addressing an unknown sheet, row or column are no-ops: they
return None (or False/0), push no history and log at debug level.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gamesheet.clipboard import CellRange, tsv_to_values, values_to_tsv
from gamesheet.filters import clear_filters, filter_sheet
from gamesheet.formulas import is_error_value, resolve_formula
from gamesheet.history import DEFAULT_HISTORY_LIMIT, HistoryEntry, HistoryStack
from gamesheet.logging import EventType, emit_info, emit_warning
from gamesheet.logging.events import FORMULA_EVAL_ERROR
from gamesheet.model import (
    Cell,
    CellStyle,
    CellValue,
    Column,
    FilterConfig,
    Row,
    Sheet,
    blank_cell,
    blank_row,
    create_blank_sheet,
    new_id,
    reindex_columns,
    reindex_rows,
    utc_now,
)
from gamesheet.project import DEFAULT_CONFIG
from gamesheet.search import (
    SearchOptions,
    SearchResult,
    cell_matches,
    replace_in_cell,
    search_in_sheet,
    search_in_sheets,
)
from gamesheet.validation import ValidationResult, validate_sheet

logger = logging.getLogger(__name__)

Listener = Callable[["DocumentEngine"], None]

_UNPATCHABLE_COLUMN_FIELDS = frozenset({"id", "index"})


# ---------------------------------------------------------------------------
# History payloads
# ---------------------------------------------------------------------------


class ColumnChange(BaseModel):
    """A column plus the cells it owned, keyed by row id."""

    model_config = ConfigDict(frozen=True)

    column: Column
    cells: dict[str, Cell] = {}


class SheetSlot(BaseModel):
    """A whole sheet and its position in the document."""

    model_config = ConfigDict(frozen=True)

    position: int
    sheet: Sheet


def _slots(payload: SheetSlot | tuple[SheetSlot, ...]) -> tuple[SheetSlot, ...]:
    return payload if isinstance(payload, tuple) else (payload,)


def _same_value(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def _sort_key(value: CellValue) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (1, str(value).lower())
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value).lower())


class DocumentEngine:
    """Explicit container for one open document.

    Parameters
    ----------
    name : str
        Document name (used by storage).
    config : dict | None
        Project configuration; missing keys fall back to ``DEFAULT_CONFIG``.
    sheets : Iterable[Sheet] | None
        Initial sheets.  ``None`` creates one default blank sheet; an empty
        iterable starts with no sheets.
    """

    def __init__(
        self,
        name: str = "Untitled",
        *,
        config: dict[str, Any] | None = None,
        sheets: Iterable[Sheet] | None = None,
    ) -> None:
        self.name = name
        self.config: dict[str, Any] = {**DEFAULT_CONFIG, **(config or {})}
        limit = int(self.config.get("history_limit") or DEFAULT_HISTORY_LIMIT)
        self.history = HistoryStack(limit)

        if sheets is None:
            sheets = [self._blank_sheet("Sheet1")]
        self._sheets: tuple[Sheet, ...] = tuple(sheets)
        self.active_sheet_id: str | None = self._sheets[0].id if self._sheets else None
        self._dirty = False
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def sheets(self) -> tuple[Sheet, ...]:
        return self._sheets

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    def snapshot(self) -> tuple[Sheet, ...]:
        """Return the current sheets.  Values are immutable and safe to keep."""
        return self._sheets

    def get_sheet(self, sheet_id: str) -> Sheet | None:
        for sheet in self._sheets:
            if sheet.id == sheet_id:
                return sheet
        return None

    @property
    def active_sheet(self) -> Sheet | None:
        if self.active_sheet_id is None:
            return None
        return self.get_sheet(self.active_sheet_id)

    def set_active_sheet(self, sheet_id: str) -> bool:
        if self.get_sheet(sheet_id) is None:
            logger.debug("set_active_sheet: unknown sheet %s", sheet_id)
            return False
        self.active_sheet_id = sheet_id
        self._publish()
        return True

    def mark_saved(self) -> None:
        self._dirty = False

    def can_undo(self) -> bool:
        entry = self.history.peek()
        return entry is not None and not self._empties_document(entry)

    def can_redo(self) -> bool:
        return self.history.can_redo()

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with this engine after every published change.

        Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ------------------------------------------------------------------
    # Internal state swaps
    # ------------------------------------------------------------------

    def _blank_sheet(self, name: str) -> Sheet:
        return create_blank_sheet(
            name,
            n_rows=int(self.config["default_rows"]),
            n_cols=int(self.config["default_columns"]),
            column_width=int(self.config["column_width"]),
            row_height=self.config.get("row_height"),
        )

    @staticmethod
    def _with_view(sheet: Sheet) -> Sheet:
        """Recompute ``hidden`` when filters are active."""
        if sheet.filters:
            return filter_sheet(sheet, sheet.filters)
        return sheet

    def _swap_sheet(self, sheets: tuple[Sheet, ...], sheet: Sheet) -> tuple[Sheet, ...]:
        sheet = self._with_view(sheet)
        return tuple(sheet if s.id == sheet.id else s for s in sheets)

    def _push(self, entry: HistoryEntry) -> None:
        evicted = self.history.push(entry)
        if evicted is not None:
            emit_info(
                EventType.history_evicted,
                f"History limit {self.history.limit} reached; oldest entry evicted",
                {"entry_id": evicted.id, "kind": evicted.kind, "sheet_id": evicted.sheet_id},
            )

    def _commit(self, sheets: tuple[Sheet, ...], entry: HistoryEntry | None) -> None:
        self._sheets = sheets
        if entry is not None:
            self._push(entry)
        self._dirty = True
        self._publish()

    def _unique_sheet_name(self, name: str) -> str:
        taken = {s.name for s in self._sheets}
        if name not in taken:
            return name
        n = 2
        while f"{name} ({n})" in taken:
            n += 1
        return f"{name} ({n})"

    # ------------------------------------------------------------------
    # Cells
    # ------------------------------------------------------------------

    def update_cell(
        self,
        sheet_id: str,
        row_id: str,
        column_id: str,
        raw_input: CellValue,
        *,
        evaluate: bool = True,
    ) -> Cell | None:
        """Write *raw_input* into a cell.

        Text starting with ``=`` is kept as the cell's formula and the value
        becomes its evaluation (or an error marker).  Any other input clears
        the formula and is stored with its literal type.  With
        ``evaluate=False`` such text is stored literally too.

        Returns:
            The new cell, or None if the address is unknown.
        """
        sheet = self.get_sheet(sheet_id)
        row = sheet.find_row(row_id) if sheet else None
        column = sheet.find_column(column_id) if sheet else None
        if sheet is None or row is None or column is None:
            logger.debug("update_cell: unknown target %s/%s/%s", sheet_id, row_id, column_id)
            return None

        old = row.cells.get(column_id) or blank_cell(row_id, column)
        if evaluate and isinstance(raw_input, str) and raw_input.startswith("="):
            value = resolve_formula(raw_input, sheet)
            formula: str | None = raw_input
            if is_error_value(value):
                emit_warning(
                    EventType.formula_error,
                    f"Formula in {old.id} evaluated to {value}",
                    {"sheet_id": sheet_id, "cell_id": old.id, "formula": raw_input, "value": value},
                    error_code=FORMULA_EVAL_ERROR,
                )
        else:
            value = raw_input
            formula = None

        new = old.model_copy(update={"value": value, "formula": formula})
        self._commit(
            self._swap_sheet(self._sheets, self._put_cell(sheet, new).touch()),
            HistoryEntry(kind="cell", action="update", sheet_id=sheet_id, before=old, after=new),
        )
        return new

    def clear_cell(self, sheet_id: str, row_id: str, column_id: str) -> Cell | None:
        return self.update_cell(sheet_id, row_id, column_id, None)

    def update_cell_style(
        self,
        sheet_id: str,
        row_id: str,
        column_id: str,
        style: CellStyle | dict[str, Any] | None,
    ) -> Cell | None:
        """Merge *style* into a cell's style.  ``None`` removes the style."""
        sheet = self.get_sheet(sheet_id)
        cell = sheet.get_cell(row_id, column_id) if sheet else None
        if sheet is None or cell is None:
            logger.debug("update_cell_style: unknown target %s/%s/%s", sheet_id, row_id, column_id)
            return None

        if style is None:
            merged = None
        else:
            patch = style.model_dump(exclude_none=True) if isinstance(style, CellStyle) else style
            base = cell.style.model_dump(exclude_none=True) if cell.style else {}
            merged = CellStyle.model_validate({**base, **patch})
            if merged.is_empty():
                merged = None

        new = cell.model_copy(update={"style": merged})
        self._commit(
            self._swap_sheet(self._sheets, self._put_cell(sheet, new).touch()),
            HistoryEntry(kind="cell", action="update", sheet_id=sheet_id, before=cell, after=new),
        )
        return new

    @staticmethod
    def _put_cell(sheet: Sheet, cell: Cell) -> Sheet:
        rows = []
        for row in sheet.rows:
            if row.id == cell.row_id:
                row = row.model_copy(update={"cells": {**row.cells, cell.column_id: cell}})
            rows.append(row)
        return sheet.model_copy(update={"rows": rows})

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    @staticmethod
    def _range_cells(sheet: Sheet, cell_range: CellRange) -> list[list[tuple[Row, Column]]]:
        """Row/column pairs of *cell_range*, clipped to the sheet."""
        columns = [sheet.columns[c] for c in cell_range.columns if 0 <= c < len(sheet.columns)]
        return [
            [(sheet.rows[r], column) for column in columns]
            for r in cell_range.rows
            if 0 <= r < len(sheet.rows)
        ]

    def copy_range(self, sheet_id: str, cell_range: CellRange) -> str | None:
        """Stored values of *cell_range* as clipboard TSV.

        Formula cells contribute their value, not their source.
        """
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("copy_range: unknown sheet %s", sheet_id)
            return None
        values: list[list[CellValue]] = []
        for line in self._range_cells(sheet, cell_range):
            cells = [row.cells.get(column.id) for row, column in line]
            values.append([cell.value if cell is not None else None for cell in cells])
        return values_to_tsv(values)

    def cut_range(self, sheet_id: str, cell_range: CellRange) -> str | None:
        """Copy *cell_range*, then clear each non-empty cell in it.

        Every cleared cell is its own undoable entry.
        """
        text = self.copy_range(sheet_id, cell_range)
        sheet = self.get_sheet(sheet_id)
        if text is None or sheet is None:
            return text
        for line in self._range_cells(sheet, cell_range):
            for row, column in line:
                cell = row.cells.get(column.id)
                if cell is not None and (cell.value is not None or cell.formula is not None):
                    self.update_cell(sheet_id, row.id, column.id, None)
        return text

    def paste_tsv(self, sheet_id: str, start_row: int, start_column: int, text: str) -> int:
        """Write clipboard TSV into the sheet with its top-left at a visual position.

        Values falling outside the sheet are dropped.  Pasted text is stored
        literally, never evaluated as a formula.  Each changed cell goes
        through ``update_cell`` and is its own undoable entry.

        Returns:
            The number of cells written.
        """
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("paste_tsv: unknown sheet %s", sheet_id)
            return 0

        count = 0
        for i, values in enumerate(tsv_to_values(text)):
            r = start_row + i
            if not 0 <= r < len(sheet.rows):
                break
            row = sheet.rows[r]
            for j, value in enumerate(values):
                c = start_column + j
                if not 0 <= c < len(sheet.columns):
                    break
                column = sheet.columns[c]
                cell = row.cells.get(column.id)
                if cell is not None and cell.formula is None and _same_value(cell.value, value):
                    continue
                self.update_cell(sheet_id, row.id, column.id, value, evaluate=False)
                count += 1
        logger.debug("paste_tsv: wrote %d cell(s) into %s", count, sheet_id)
        return count

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def add_row(self, sheet_id: str, after_row_id: str | None = None) -> Row | None:
        """Insert a blank row at the end, or directly after *after_row_id*."""
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("add_row: unknown sheet %s", sheet_id)
            return None
        if after_row_id is None:
            pos = len(sheet.rows)
        else:
            anchor = sheet.row_position(after_row_id)
            if anchor < 0:
                logger.debug("add_row: unknown anchor row %s", after_row_id)
                return None
            pos = anchor + 1

        row = blank_row(new_id("row"), sheet.columns, index=pos, height=self.config.get("row_height"))
        return self._insert_row(sheet, row, pos)

    def duplicate_row(self, sheet_id: str, row_id: str) -> Row | None:
        """Copy a row's cells into a new row directly below it."""
        sheet = self.get_sheet(sheet_id)
        pos = sheet.row_position(row_id) if sheet else -1
        if sheet is None or pos < 0:
            logger.debug("duplicate_row: unknown target %s/%s", sheet_id, row_id)
            return None

        source = sheet.rows[pos]
        copy_id = new_id("row")
        cells = {
            cid: cell.model_copy(update={"row_id": copy_id})
            for cid, cell in source.cells.items()
        }
        row = source.model_copy(update={"id": copy_id, "index": pos + 1, "cells": cells})
        return self._insert_row(sheet, row, pos + 1)

    def _insert_row(self, sheet: Sheet, row: Row, pos: int) -> Row:
        rows = reindex_rows(sheet.rows[:pos] + [row] + sheet.rows[pos:])
        new_sheet = self._with_view(sheet.touch(rows=rows))
        inserted = new_sheet.rows[pos]
        self._commit(
            self._swap_sheet(self._sheets, new_sheet),
            HistoryEntry(kind="row", action="add", sheet_id=sheet.id, after=inserted),
        )
        return inserted

    def delete_row(self, sheet_id: str, row_id: str) -> Row | None:
        """Remove a row.  Returns the removed row."""
        sheet = self.get_sheet(sheet_id)
        pos = sheet.row_position(row_id) if sheet else -1
        if sheet is None or pos < 0:
            logger.debug("delete_row: unknown target %s/%s", sheet_id, row_id)
            return None

        removed = sheet.rows[pos]
        rows = reindex_rows(sheet.rows[:pos] + sheet.rows[pos + 1:])
        self._commit(
            self._swap_sheet(self._sheets, sheet.touch(rows=rows)),
            HistoryEntry(kind="row", action="delete", sheet_id=sheet_id, before=removed),
        )
        return removed

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def add_column(self, sheet_id: str, after_column_id: str | None = None) -> Column | None:
        """Insert a text column named ``Column {n}`` with blank cells."""
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("add_column: unknown sheet %s", sheet_id)
            return None
        if after_column_id is None:
            pos = len(sheet.columns)
        else:
            anchor = sheet.column_position(after_column_id)
            if anchor < 0:
                logger.debug("add_column: unknown anchor column %s", after_column_id)
                return None
            pos = anchor + 1

        column = Column(
            id=new_id("col"),
            name=f"Column {len(sheet.columns) + 1}",
            width=int(self.config["column_width"]),
            index=pos,
        )
        new_sheet = self._insert_column(sheet, ColumnChange(column=column), pos)
        self._commit(
            self._swap_sheet(self._sheets, new_sheet.touch()),
            HistoryEntry(
                kind="column",
                action="add",
                sheet_id=sheet_id,
                after=ColumnChange(column=new_sheet.columns[pos]),
            ),
        )
        return new_sheet.columns[pos]

    def delete_column(self, sheet_id: str, column_id: str) -> Column | None:
        """Remove a column and its cell in every row."""
        sheet = self.get_sheet(sheet_id)
        pos = sheet.column_position(column_id) if sheet else -1
        if sheet is None or pos < 0:
            logger.debug("delete_column: unknown target %s/%s", sheet_id, column_id)
            return None

        column = sheet.columns[pos]
        captured = ColumnChange(
            column=column,
            cells={row.id: row.cells[column_id] for row in sheet.rows if column_id in row.cells},
        )
        self._commit(
            self._swap_sheet(self._sheets, self._remove_column(sheet, column_id).touch()),
            HistoryEntry(kind="column", action="delete", sheet_id=sheet_id, before=captured),
        )
        return column

    def update_column(
        self,
        sheet_id: str,
        column_id: str,
        patch: dict[str, Any],
    ) -> Column | None:
        """Merge *patch* into a column's definition.

        ``id`` and ``index`` are ignored.  Changing ``type`` retypes every
        cell of the column and drops formulas when leaving ``formula``.

        Raises:
            ValueError: If *patch* names a field columns do not have.
        """
        sheet = self.get_sheet(sheet_id)
        column = sheet.find_column(column_id) if sheet else None
        if sheet is None or column is None:
            logger.debug("update_column: unknown target %s/%s", sheet_id, column_id)
            return None

        fields = self._column_patch_fields(patch)
        dropped = _UNPATCHABLE_COLUMN_FIELDS & fields.keys()
        if dropped:
            logger.debug("update_column: ignoring %s", sorted(dropped))
        for key in dropped:
            del fields[key]

        updated = Column.model_validate({**column.model_dump(), **fields})
        if updated == column:
            return column

        before_cells: dict[str, Cell] = {}
        after_cells: dict[str, Cell] = {}
        if updated.type != column.type:
            for row in sheet.rows:
                cell = row.cells.get(column_id)
                if cell is None:
                    continue
                changes: dict[str, Any] = {"type": updated.type}
                if column.type == "formula":
                    changes["formula"] = None
                before_cells[row.id] = cell
                after_cells[row.id] = cell.model_copy(update=changes)

        before = ColumnChange(column=column, cells=before_cells)
        after = ColumnChange(column=updated, cells=after_cells)
        self._commit(
            self._swap_sheet(self._sheets, self._replace_column(sheet, after).touch()),
            HistoryEntry(kind="column", action="update", sheet_id=sheet_id, before=before, after=after),
        )
        return updated

    @staticmethod
    def _column_patch_fields(patch: dict[str, Any]) -> dict[str, Any]:
        """Normalize camelCase keys to field names and reject unknown ones."""
        by_alias = {to_camel(name): name for name in Column.model_fields}
        fields: dict[str, Any] = {}
        unknown = []
        for key, value in patch.items():
            if key in Column.model_fields:
                fields[key] = value
            elif key in by_alias:
                fields[by_alias[key]] = value
            else:
                unknown.append(key)
        if unknown:
            raise ValueError(f"Unknown column field(s): {', '.join(sorted(unknown))}")
        return fields

    @staticmethod
    def _insert_column(sheet: Sheet, change: ColumnChange, pos: int) -> Sheet:
        column = change.column
        columns = reindex_columns(sheet.columns[:pos] + [column] + sheet.columns[pos:])
        rows = []
        for row in sheet.rows:
            cell = change.cells.get(row.id) or blank_cell(row.id, column)
            rows.append(row.model_copy(update={"cells": {**row.cells, column.id: cell}}))
        return sheet.model_copy(update={"columns": columns, "rows": rows})

    @staticmethod
    def _remove_column(sheet: Sheet, column_id: str) -> Sheet:
        columns = reindex_columns([c for c in sheet.columns if c.id != column_id])
        rows = [
            row.model_copy(update={"cells": {k: v for k, v in row.cells.items() if k != column_id}})
            for row in sheet.rows
        ]
        return sheet.model_copy(update={"columns": columns, "rows": rows})

    @staticmethod
    def _replace_column(sheet: Sheet, change: ColumnChange) -> Sheet:
        pos = sheet.column_position(change.column.id)
        columns = list(sheet.columns)
        columns[pos] = change.column.model_copy(update={"index": pos})
        rows = sheet.rows
        if change.cells:
            rows = [
                row.model_copy(update={"cells": {**row.cells, change.column.id: change.cells[row.id]}})
                if row.id in change.cells else row
                for row in sheet.rows
            ]
        return sheet.model_copy(update={"columns": columns, "rows": rows})

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    def add_sheet(self, name: str | None = None, template: str | None = None) -> Sheet:
        """Append a new sheet and make it active.

        With *template*, the sheet uses that game-data template's columns.

        Raises:
            FileNotFoundError: If *template* names no bundled template.
        """
        if template is not None:
            from gamesheet.template_engine import create_sheet_from_template, get_template

            sheet = create_sheet_from_template(
                get_template(template),
                name=name,
                blank_rows=int(self.config["template_blank_rows"]),
                row_height=self.config.get("row_height"),
            )
        else:
            sheet = self._blank_sheet(name or f"Sheet{len(self._sheets) + 1}")
        sheet = sheet.model_copy(update={"name": self._unique_sheet_name(sheet.name)})
        return self._append_sheet(sheet)

    def add_sheets(self, sheets: Iterable[Sheet]) -> list[Sheet]:
        """Hand complete sheets (e.g. from an importer) to the document.

        All sheets are published together as one undoable change; the first
        becomes active.  Ids that collide with existing sheets are replaced.
        """
        current = self._sheets
        added: list[Sheet] = []
        slots: list[SheetSlot] = []
        for sheet in sheets:
            ids = {s.id for s in current}
            names = {s.name for s in current}
            updates: dict[str, Any] = {}
            if sheet.id in ids:
                updates["id"] = new_id("sheet")
            if sheet.name in names:
                n = 2
                while f"{sheet.name} ({n})" in names:
                    n += 1
                updates["name"] = f"{sheet.name} ({n})"
            if updates:
                sheet = sheet.model_copy(update=updates)
            slots.append(SheetSlot(position=len(current), sheet=sheet))
            current = current + (sheet,)
            added.append(sheet)

        if not added:
            return []
        self.active_sheet_id = added[0].id
        self._commit(
            current,
            HistoryEntry(
                kind="sheet",
                action="add",
                sheet_id=added[0].id,
                other_sheet_ids=tuple(s.id for s in added[1:]),
                after=tuple(slots),
            ),
        )
        return added

    def _append_sheet(self, sheet: Sheet) -> Sheet:
        slot = SheetSlot(position=len(self._sheets), sheet=sheet)
        self.active_sheet_id = sheet.id
        self._commit(
            self._sheets + (sheet,),
            HistoryEntry(kind="sheet", action="add", sheet_id=sheet.id, after=slot),
        )
        return sheet

    def duplicate_sheet(self, sheet_id: str) -> Sheet | None:
        """Append a copy of a sheet named ``{name} (Copy)``."""
        source = self.get_sheet(sheet_id)
        if source is None:
            logger.debug("duplicate_sheet: unknown sheet %s", sheet_id)
            return None
        now = utc_now()
        copy = source.model_copy(
            update={
                "id": new_id("sheet"),
                "name": self._unique_sheet_name(f"{source.name} (Copy)"),
                "created_at": now,
                "updated_at": now,
            }
        )
        return self._append_sheet(copy)

    def rename_sheet(self, sheet_id: str, name: str) -> Sheet | None:
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("rename_sheet: unknown sheet %s", sheet_id)
            return None
        if sheet.name == name:
            return sheet
        return self._update_sheet(sheet, sheet.touch(name=name))

    def sort_sheet(self, sheet_id: str, column_id: str, direction: str = "asc") -> Sheet | None:
        """Stable sort of rows by one column.

        Numbers sort before text, empty cells always sort last.
        """
        sheet = self.get_sheet(sheet_id)
        if sheet is None or sheet.find_column(column_id) is None:
            logger.debug("sort_sheet: unknown target %s/%s", sheet_id, column_id)
            return None
        if direction not in ("asc", "desc"):
            raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")

        def value_of(row: Row) -> CellValue:
            cell = row.cells.get(column_id)
            return None if cell is None else cell.value

        filled = [r for r in sheet.rows if value_of(r) not in (None, "")]
        empty = [r for r in sheet.rows if value_of(r) in (None, "")]
        filled.sort(key=lambda r: _sort_key(value_of(r)), reverse=direction == "desc")
        return self._update_sheet(sheet, sheet.touch(rows=reindex_rows(filled + empty)))

    def _update_sheet(self, old: Sheet, new: Sheet) -> Sheet:
        new = self._with_view(new)
        self._commit(
            self._swap_sheet(self._sheets, new),
            HistoryEntry(kind="sheet", action="update", sheet_id=old.id, before=old, after=new),
        )
        return new

    def delete_sheet(self, sheet_id: str) -> bool:
        """Remove a sheet and every history entry that references it.

        The last remaining sheet is never deleted.  Deletion itself is not
        undoable.
        """
        if self.get_sheet(sheet_id) is None or len(self._sheets) <= 1:
            logger.debug("delete_sheet: refusing %s (%d sheets)", sheet_id, len(self._sheets))
            return False

        remaining = tuple(s for s in self._sheets if s.id != sheet_id)
        removed = self.history.prune_sheet(sheet_id)
        logger.debug("delete_sheet: pruned %d history entries for %s", removed, sheet_id)
        if self.active_sheet_id == sheet_id:
            self.active_sheet_id = remaining[0].id
        self._commit(remaining, None)
        return True

    # ------------------------------------------------------------------
    # Undo / redo
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        """Revert the entry at the history cursor.

        False at the boundary, and for a sheet add whose undo would leave the
        document without sheets (possible once older sheets were deleted).
        """
        entry = self.history.peek()
        if entry is None:
            return False
        if self._empties_document(entry):
            logger.debug("undo: %s would remove every sheet", entry.id)
            return False
        self.history.step_back()
        self._apply(entry, inverse=True)
        return True

    def _empties_document(self, entry: HistoryEntry) -> bool:
        if entry.kind != "sheet" or entry.action != "add":
            return False
        gone = {slot.sheet.id for slot in _slots(entry.after)}
        return all(s.id in gone for s in self._sheets)

    def redo(self) -> bool:
        """Re-apply the entry after the history cursor.  False at the tail."""
        entry = self.history.step_forward()
        if entry is None:
            return False
        self._apply(entry, inverse=False)
        return True

    def _apply(self, entry: HistoryEntry, *, inverse: bool) -> None:
        old, new = (entry.after, entry.before) if inverse else (entry.before, entry.after)

        if entry.kind == "sheet":
            self._sheets = self._apply_sheet(old, new)
        else:
            sheet = self.get_sheet(entry.sheet_id)
            if sheet is None:
                logger.debug("history entry %s targets missing sheet %s", entry.id, entry.sheet_id)
                return
            if entry.kind == "cell":
                sheet = self._put_cell(sheet, new)
            elif entry.kind == "row":
                sheet = self._apply_row(sheet, old, new)
            else:
                sheet = self._apply_column(sheet, old, new)
            self._sheets = self._swap_sheet(self._sheets, sheet.touch())

        self._dirty = True
        self._publish()

    @staticmethod
    def _apply_row(sheet: Sheet, old: Row | None, new: Row | None) -> Sheet:
        rows = list(sheet.rows)
        if new is None:
            rows = [r for r in rows if r.id != old.id]
        elif old is None:
            rows.insert(min(new.index, len(rows)), new)
        else:
            rows = [new if r.id == new.id else r for r in rows]
        return sheet.model_copy(update={"rows": reindex_rows(rows)})

    def _apply_column(
        self,
        sheet: Sheet,
        old: ColumnChange | None,
        new: ColumnChange | None,
    ) -> Sheet:
        if new is None:
            return self._remove_column(sheet, old.column.id)
        if old is None:
            return self._insert_column(sheet, new, min(new.column.index, len(sheet.columns)))
        return self._replace_column(sheet, new)

    def _apply_sheet(self, old: Any, new: Any) -> tuple[Sheet, ...]:
        sheets = list(self._sheets)
        if new is None:
            gone = {slot.sheet.id for slot in _slots(old)}
            sheets = [s for s in sheets if s.id not in gone]
            if self.active_sheet_id in gone:
                self.active_sheet_id = sheets[0].id if sheets else None
        elif old is None:
            slots = _slots(new)
            for slot in slots:
                sheets.insert(min(slot.position, len(sheets)), slot.sheet)
            self.active_sheet_id = slots[0].sheet.id
        else:
            # keep the filters currently applied; they are not history
            current = self.get_sheet(new.id)
            restored = filter_sheet(new, list(current.filters or [])) if current else new
            sheets = [restored if s.id == new.id else s for s in sheets]
        return tuple(sheets)

    # ------------------------------------------------------------------
    # Filter / search / validation pass-throughs
    # ------------------------------------------------------------------

    def filter_sheet(self, sheet_id: str, filters: list[FilterConfig]) -> Sheet | None:
        """Apply *filters* to a sheet.  View state only: no history, not dirty."""
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("filter_sheet: unknown sheet %s", sheet_id)
            return None
        filtered = filter_sheet(sheet, filters)
        self._sheets = tuple(filtered if s.id == sheet_id else s for s in self._sheets)
        self._publish()
        return filtered

    def clear_filters(self, sheet_id: str) -> Sheet | None:
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            logger.debug("clear_filters: unknown sheet %s", sheet_id)
            return None
        cleared = clear_filters(sheet)
        self._sheets = tuple(cleared if s.id == sheet_id else s for s in self._sheets)
        self._publish()
        return cleared

    def search(
        self,
        sheet_id: str,
        text: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            return []
        return search_in_sheet(sheet, text, options)

    def search_all(self, text: str, options: SearchOptions | None = None) -> list[SearchResult]:
        return search_in_sheets(self._sheets, text, options)

    def replace_all(
        self,
        sheet_id: str,
        search: str,
        replace: str,
        options: SearchOptions | None = None,
    ) -> int:
        """Replace matches in every cell of a sheet.

        Each changed cell is written through ``update_cell`` and so becomes
        its own undoable entry.  Returns the number of changed cells.
        """
        sheet = self.get_sheet(sheet_id)
        if sheet is None or not search:
            return 0
        targets = [(row, column) for row in sheet.rows for column in sheet.columns]
        return self._replace_cells(sheet_id, targets, search, replace, options)

    def replace_in_range(
        self,
        sheet_id: str,
        cell_range: CellRange,
        search: str,
        replace: str,
        options: SearchOptions | None = None,
    ) -> int:
        """Like :meth:`replace_all`, restricted to the cells of *cell_range*."""
        sheet = self.get_sheet(sheet_id)
        if sheet is None or not search:
            return 0
        targets = [pair for line in self._range_cells(sheet, cell_range) for pair in line]
        return self._replace_cells(sheet_id, targets, search, replace, options)

    def _replace_cells(
        self,
        sheet_id: str,
        targets: list[tuple[Row, Column]],
        search: str,
        replace: str,
        options: SearchOptions | None,
    ) -> int:
        count = 0
        for row, column in targets:
            cell = row.cells.get(column.id)
            if cell is None or not cell_matches(cell, search, options):
                continue
            candidate = replace_in_cell(cell, search, replace, options)
            if _same_value(candidate, cell.value):
                continue
            self.update_cell(sheet_id, row.id, column.id, candidate)
            count += 1
        return count

    def validate_sheet(self, sheet_id: str) -> ValidationResult | None:
        """Validate a sheet.  Pure: the document is not modified."""
        sheet = self.get_sheet(sheet_id)
        if sheet is None:
            return None
        result = validate_sheet(sheet)
        emit_info(
            EventType.validation_run,
            f"Validated {sheet.name!r}: {len(result.errors)} error(s), {len(result.warnings)} warning(s)",
            {"sheet_id": sheet.id, "errors": len(result.errors), "warnings": len(result.warnings)},
        )
        return result
