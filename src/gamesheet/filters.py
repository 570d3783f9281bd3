"""Row filtering by column predicates.

Filtering is view state: it sets ``Row.hidden`` and records the active
filters on the sheet, but it is never recorded in undo history.
"""

from __future__ import annotations

from typing import Any, Iterable

from gamesheet.model import CellValue, FilterConfig, Row, Sheet


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if "_" in value:
            return None
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _equals(cell_value: CellValue, target: CellValue) -> bool:
    if isinstance(cell_value, bool) or isinstance(target, bool):
        return isinstance(cell_value, bool) and isinstance(target, bool) and cell_value == target
    if isinstance(cell_value, (int, float)) and isinstance(target, (int, float)):
        return float(cell_value) == float(target)
    if type(cell_value) is not type(target):
        return False
    return cell_value == target


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def matches_filter(cell_value: CellValue, flt: FilterConfig) -> bool:
    """Return True if *cell_value* satisfies one filter predicate."""
    op = flt.operator
    target = flt.value

    if cell_value is None:
        return op == "equals" and target is None

    if op == "equals":
        return _equals(cell_value, target)
    if op in ("contains", "startsWith", "endsWith") and target is None:
        # no text to look for
        return False
    if op == "contains":
        return _as_text(target).lower() in _as_text(cell_value).lower()
    if op == "startsWith":
        return _as_text(cell_value).lower().startswith(_as_text(target).lower())
    if op == "endsWith":
        return _as_text(cell_value).lower().endswith(_as_text(target).lower())
    if op in ("greaterThan", "lessThan"):
        left = _as_number(cell_value)
        right = _as_number(target)
        if left is None or right is None:
            return False
        return left > right if op == "greaterThan" else left < right
    return True


def row_matches(row: Row, filters: Iterable[FilterConfig]) -> bool:
    """AND of every predicate.  A missing cell never matches."""
    for flt in filters:
        cell = row.cells.get(flt.column_id)
        if cell is None or not matches_filter(cell.value, flt):
            return False
    return True


def filter_sheet(sheet: Sheet, filters: list[FilterConfig]) -> Sheet:
    """Return *sheet* with ``hidden`` recomputed for every row.

    An empty *filters* list shows every row and clears the stored filters.
    """
    filters = list(filters)
    rows = []
    for row in sheet.rows:
        hidden = bool(filters) and not row_matches(row, filters)
        rows.append(row if row.hidden == hidden else row.model_copy(update={"hidden": hidden}))
    return sheet.model_copy(update={"rows": rows, "filters": filters or None})


def clear_filters(sheet: Sheet) -> Sheet:
    """Drop stored filters and show every row."""
    return filter_sheet(sheet, [])


def visible_rows(sheet: Sheet) -> list[Row]:
    return [row for row in sheet.rows if not row.hidden]
