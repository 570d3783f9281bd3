"""Find and replace over sheet cells.

Patterns are built from user text.  Unless regex mode is requested the text
is always escaped, and a regex that fails to compile falls back to a literal
match instead of raising.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Iterable, Literal

from pydantic import BaseModel

from gamesheet.model import Cell, CellValue, Sheet

logger = logging.getLogger(__name__)


class SearchOptions(BaseModel):
    match_case: bool = False
    match_whole_cell: bool = False
    search_formulas: bool = False
    use_regex: bool = False


class SearchResult(BaseModel):
    sheet_id: str
    sheet_name: str
    row_id: str
    row_index: int
    column_id: str
    column_index: int
    cell_id: str
    value: Any = None
    formula: str | None = None
    matched_text: str
    source: Literal["value", "formula"] = "value"


def build_pattern(
    text: str,
    options: SearchOptions | None = None,
    *,
    anchored: bool | None = None,
) -> re.Pattern[str]:
    """Compile *text* into a pattern honoring *options*.

    ``anchored`` overrides ``options.match_whole_cell``.
    """
    opts = options or SearchOptions()
    flags = 0 if opts.match_case else re.IGNORECASE
    whole = opts.match_whole_cell if anchored is None else anchored

    source = re.escape(text)
    if opts.use_regex:
        try:
            re.compile(text)
            source = text
        except re.error as exc:
            logger.debug("invalid regex %r (%s); matching literally", text, exc)

    if whole:
        source = rf"\A(?:{source})\Z"
    return re.compile(source, flags)


def cell_text(value: CellValue) -> str:
    """Stringify a stored value the way it is searched and replaced."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def search_in_sheet(
    sheet: Sheet,
    text: str,
    options: SearchOptions | None = None,
) -> list[SearchResult]:
    """Return matches in row-major order, at most one per cell."""
    if not text:
        return []
    opts = options or SearchOptions()
    pattern = build_pattern(text, opts)

    results: list[SearchResult] = []
    for row_index, row in enumerate(sheet.rows):
        for column_index, column in enumerate(sheet.columns):
            cell = row.cells.get(column.id)
            if cell is None:
                continue

            hit: re.Match[str] | None = None
            source: Literal["value", "formula"] = "value"
            value_text = cell_text(cell.value)
            if value_text:
                hit = pattern.search(value_text)
            if hit is None and opts.search_formulas and cell.formula:
                hit = pattern.search(cell.formula)
                source = "formula"
            if hit is None:
                continue

            results.append(
                SearchResult(
                    sheet_id=sheet.id,
                    sheet_name=sheet.name,
                    row_id=row.id,
                    row_index=row_index,
                    column_id=column.id,
                    column_index=column_index,
                    cell_id=cell.id,
                    value=cell.value,
                    formula=cell.formula,
                    matched_text=hit.group(0),
                    source=source,
                )
            )
    return results


def search_in_sheets(
    sheets: Iterable[Sheet],
    text: str,
    options: SearchOptions | None = None,
) -> list[SearchResult]:
    results: list[SearchResult] = []
    for sheet in sheets:
        results.extend(search_in_sheet(sheet, text, options))
    return results


def _coerce_to_type(text: str, cell_type: str) -> CellValue:
    if cell_type == "number":
        stripped = text.strip()
        if "_" in stripped:
            return text
        # int() first, float() rounds integers beyond 2**53
        try:
            return int(stripped)
        except ValueError:
            pass
        try:
            num = float(stripped)
        except ValueError:
            return text
        return int(num) if num.is_integer() else num
    if cell_type == "boolean":
        lowered = text.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return text


def replace_in_cell(
    cell: Cell,
    search: str,
    replace: str,
    options: SearchOptions | None = None,
) -> CellValue:
    """Return the candidate value of *cell* after replacement.

    The result is coerced back to the cell's type where possible.  The cell
    itself is not modified.  In regex mode *replace* may use group
    references (``\\1``, ``\\g<name>``); otherwise it is inserted literally.
    """
    opts = options or SearchOptions()
    if not search:
        return cell.value
    pattern = build_pattern(search, opts)
    text = cell_text(cell.value)
    new_text = None
    if opts.use_regex:
        try:
            new_text = pattern.sub(replace, text)
        except re.error as exc:
            logger.debug("bad replacement template %r (%s); inserting literally", replace, exc)
    if new_text is None:
        new_text = pattern.sub(lambda _m: replace, text)
    return _coerce_to_type(new_text, cell.type)


def cell_matches(cell: Cell, search: str, options: SearchOptions | None = None) -> bool:
    """True when the stored value of *cell* contains a match."""
    if not search:
        return False
    text = cell_text(cell.value)
    return bool(text) and build_pattern(search, options).search(text) is not None


def count_matches(text: str, search: str, options: SearchOptions | None = None) -> int:
    """Count non-overlapping occurrences of *search* in *text*.

    Whole-cell matching does not apply here.
    """
    if not search:
        return 0
    pattern = build_pattern(search, options, anchored=False)
    return sum(1 for _ in pattern.finditer(text))
