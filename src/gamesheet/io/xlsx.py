"""XLSX import and export via openpyxl.

Import reads the first row of each worksheet as column headers and every
later row as data.  Cell values keep their Excel type (number, boolean,
date, text); formulas are kept with their cached value when the workbook
carries one.  Formula references are moved up one row on import and down
one row on export, since the header row occupies row 1 in the workbook.  With formatting enabled, font, fill, alignment, border and
number-format settings are mapped into :class:`~gamesheet.model.CellStyle`.

Export writes one worksheet per sheet: a bold, shaded header row of column
names followed by the data rows, with styles mapped in reverse.
"""

from __future__ import annotations

import logging
import re
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import IO, Any, Iterable, Union

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.exceptions import InvalidFileException

from gamesheet.addressing import index_to_col_letter
from gamesheet.formulas import FormulaParseError, offset_formula_rows
from gamesheet.io.results import ExportResult, ImportResult
from gamesheet.logging import EventLevel, EventType, emit, make_sheet_event
from gamesheet.logging.events import EXPORT_WRITE_FAILED, IMPORT_PARSE_FAILED
from gamesheet.model import (
    BorderStyle,
    Cell,
    CellBorder,
    CellStyle,
    CellType,
    CellValue,
    Column,
    Row,
    Sheet,
    new_id,
)

logger = logging.getLogger(__name__)

XlsxSource = Union[str, Path, IO[bytes]]

HEADER_FILL = "F3F4F6"
DEFAULT_ROW_HEIGHT_PX = 25
MAX_SHEET_NAME_LEN = 31

_SHEET_NAME_RE = re.compile(r"[:\\/?*\[\]]")
_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")

_EXCEL_BORDER_STYLES = {
    "dashDot", "dashDotDot", "dashed", "dotted", "double", "hair", "medium",
    "mediumDashDot", "mediumDashDotDot", "mediumDashed", "slantDashDot",
    "thick", "thin",
}
_SIDES = ("top", "right", "bottom", "left")


# ---------------------------------------------------------------------------
# Style mapping: openpyxl -> CellStyle
# ---------------------------------------------------------------------------


def _color_to_hex(color: Any) -> str | None:
    """Extract hex color from an openpyxl Color object.

    Returns a 7-char hex string like ``#ff0000`` or None.  Theme and indexed
    colors are not resolved.
    """
    if color is None:
        return None
    if color.type == "rgb" and isinstance(color.rgb, str):
        rgb = color.rgb
        # ARGB (8 chars) or RGB (6 chars)
        if len(rgb) == 8:
            return "#" + rgb[2:].lower()
        if len(rgb) == 6:
            return "#" + rgb.lower()
    return None


def _border_side(side: Side | None) -> BorderStyle | None:
    if side is None or side.style is None:
        return None
    return BorderStyle(style=side.style, color=_color_to_hex(side.color) or "#000000")


def extract_cell_style(cell: Any) -> CellStyle | None:
    """Map an openpyxl cell's formatting to a CellStyle (None if unstyled)."""
    style: dict[str, Any] = {}

    font = cell.font
    if font is not None:
        if font.b:
            style["font_weight"] = "bold"
        if font.i:
            style["font_style"] = "italic"
        if font.u:
            style["text_decoration"] = "underline"
        if font.strike:
            style["text_decoration"] = "line-through"
        font_color = _color_to_hex(font.color)
        # black is the default font color
        if font_color and font_color != "#000000":
            style["color"] = font_color

    fill = cell.fill
    if fill is not None and fill.fill_type == "solid":
        bg = _color_to_hex(fill.fgColor)
        if bg:
            style["background_color"] = bg

    align = cell.alignment
    if align is not None:
        if align.horizontal in ("left", "center", "right"):
            style["text_align"] = align.horizontal
        if align.vertical in ("top", "bottom"):
            style["vertical_align"] = align.vertical
        elif align.vertical == "center":
            style["vertical_align"] = "middle"

    border = cell.border
    if border is not None:
        sides = {name: _border_side(getattr(border, name)) for name in _SIDES}
        sides = {k: v for k, v in sides.items() if v is not None}
        if sides:
            style["border"] = CellBorder(**sides)

    if cell.number_format and cell.number_format != "General":
        style["number_format"] = cell.number_format

    return CellStyle(**style) if style else None


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _value_and_type(raw: Any) -> tuple[CellValue, CellType]:
    if raw is None:
        return None, "text"
    if isinstance(raw, bool):
        return raw, "boolean"
    if isinstance(raw, (int, float)):
        return raw, "number"
    if isinstance(raw, (datetime, date)):
        return raw, "date"
    return str(raw), "text"


def _convert_worksheet(ws: Any, cached_ws: Any, preserve_formatting: bool) -> Sheet:
    n_rows = ws.max_row or 1
    n_cols = ws.max_column or 1

    columns: list[Column] = []
    for c in range(1, n_cols + 1):
        header = ws.cell(row=1, column=c).value
        name = str(header) if header not in (None, "") else f"Column {c}"
        columns.append(
            Column(id=f"col-{index_to_col_letter(c - 1)}", name=name, index=c - 1)
        )

    grid: list[list[Cell]] = []
    for r in range(2, n_rows + 1):
        row_id = f"row-{r - 2}"
        cells: list[Cell] = []
        for c, col in enumerate(columns, start=1):
            xl = ws.cell(row=r, column=c)
            formula: str | None = None
            if xl.data_type == "f":
                formula = _shift_formula(str(xl.value), -1)
                cached = cached_ws.cell(row=r, column=c).value if cached_ws is not None else None
                value, _ = _value_and_type(cached)
                cell_type: CellType = "formula"
            elif xl.data_type == "e":
                value, cell_type = str(xl.value), "text"
            else:
                value, cell_type = _value_and_type(xl.value)
            style = extract_cell_style(xl) if preserve_formatting else None
            cells.append(Cell(
                row_id=row_id,
                column_id=col.id,
                value=value,
                type=cell_type,
                formula=formula,
                style=style,
            ))
        grid.append(cells)

    # A column takes the type its filled cells agree on.
    for i, col in enumerate(columns):
        kinds = {cells[i].type for cells in grid if cells[i].value is not None or cells[i].formula}
        if len(kinds) == 1:
            col_type = kinds.pop()
            columns[i] = col.model_copy(update={"type": col_type})
            for cells in grid:
                if cells[i].value is None and cells[i].formula is None:
                    cells[i] = cells[i].model_copy(update={"type": col_type})

    rows = [
        Row(id=f"row-{i}", index=i, cells={cell.column_id: cell for cell in cells})
        for i, cells in enumerate(grid)
    ]
    return Sheet(id=new_id("sheet"), name=ws.title, columns=columns, rows=rows)


def xlsx_sheet_names(source: XlsxSource) -> list[str]:
    """Return the worksheet names of a workbook, or [] if it cannot be read."""
    try:
        wb = openpyxl.load_workbook(source, read_only=True)
    except (OSError, KeyError, ValueError, zipfile.BadZipFile, InvalidFileException) as exc:
        logger.warning("Failed to read XLSX sheet names: %s", exc)
        return []
    try:
        return list(wb.sheetnames)
    finally:
        wb.close()


def import_xlsx(
    path: XlsxSource,
    preserve_formatting: bool = True,
    sheet_name: str | None = None,
    sheet_index: int | None = None,
) -> ImportResult:
    """Import worksheets from an .xlsx workbook.

    Args:
        path: Workbook path or binary file object.
        preserve_formatting: Map cell formatting into cell styles.
        sheet_name: Import only this worksheet.
        sheet_index: Import only the worksheet at this position.  Ignored
            when *sheet_name* is given.

    Returns:
        An :class:`ImportResult`.  Requested worksheets that do not exist
        are skipped with a warning.
    """
    label = str(path) if isinstance(path, (str, Path)) else None
    try:
        wb = openpyxl.load_workbook(path, data_only=False)
        if hasattr(path, "seek"):
            path.seek(0)
        cached = openpyxl.load_workbook(path, data_only=True)
    except (OSError, KeyError, ValueError, zipfile.BadZipFile, InvalidFileException) as exc:
        emit(make_sheet_event(
            EventType.import_failed, EventLevel.error,
            f"XLSX import failed: {exc}",
            path=label, error_code=IMPORT_PARSE_FAILED,
        ))
        return ImportResult.failed(str(exc) or "Import failed")

    if sheet_name is not None:
        names = [sheet_name]
    elif sheet_index is not None:
        names = wb.sheetnames[sheet_index:sheet_index + 1] if sheet_index >= 0 else []
    else:
        names = list(wb.sheetnames)

    sheets: list[Sheet] = []
    for name in names:
        if name not in wb.sheetnames:
            logger.warning("Sheet %r not found in workbook", name)
            continue
        sheet = _convert_worksheet(wb[name], cached[name], preserve_formatting)
        sheets.append(sheet)
        emit(make_sheet_event(
            EventType.sheet_imported, EventLevel.info,
            f"Imported {sheet.name!r} from XLSX ({len(sheet.rows)} rows)",
            sheet_id=sheet.id, sheet_name=sheet.name, path=label,
            extra={"format": "xlsx", "rows": len(sheet.rows), "columns": len(sheet.columns)},
        ))

    return ImportResult(success=True, sheets=sheets)


# ---------------------------------------------------------------------------
# Style mapping: CellStyle -> openpyxl
# ---------------------------------------------------------------------------


def _hex(color: str | None) -> str | None:
    """Normalize ``#rgb``/``#rrggbb`` to ``RRGGBB``; None if not a hex color."""
    if not color:
        return None
    m = _HEX_RE.match(color)
    if not m:
        return None
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return digits.upper()


def _excel_side(border: BorderStyle | None) -> Side:
    if border is None:
        return Side()
    style = border.style if border.style in _EXCEL_BORDER_STYLES else "thin"
    return Side(style=style, color=_hex(border.color) or "000000")


def apply_cell_style(target: Any, style: CellStyle) -> None:
    """Write *style* onto an openpyxl cell."""
    if style.font_weight or style.font_style or style.text_decoration or style.font_size or style.color:
        target.font = Font(
            bold=style.font_weight == "bold",
            italic=style.font_style == "italic",
            underline="single" if style.text_decoration == "underline" else None,
            strike=style.text_decoration == "line-through",
            size=style.font_size,
            name=style.font_family,
            color=_hex(style.color),
        )

    bg = _hex(style.background_color)
    if bg:
        target.fill = PatternFill(fill_type="solid", fgColor=bg)

    if style.text_align or style.vertical_align:
        vertical = "center" if style.vertical_align == "middle" else style.vertical_align
        target.alignment = Alignment(horizontal=style.text_align, vertical=vertical)

    if style.border is not None:
        b = style.border
        target.border = Border(
            top=_excel_side(b.top),
            right=_excel_side(b.right),
            bottom=_excel_side(b.bottom),
            left=_excel_side(b.left),
        )

    if style.number_format:
        target.number_format = style.number_format


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def sanitize_sheet_name(name: str) -> str:
    """Make *name* a legal worksheet title."""
    return _SHEET_NAME_RE.sub("_", name)[:MAX_SHEET_NAME_LEN].strip()


def _excel_value(value: CellValue) -> Any:
    if isinstance(value, datetime):
        # Excel has no time zones
        return value.replace(tzinfo=None)
    return value


def _shift_formula(formula: str, rows: int) -> str:
    """Re-address *formula* across the header row; unparseable text is kept as-is."""
    try:
        return offset_formula_rows(formula, rows)
    except FormulaParseError:
        logger.debug("formula %r not re-addressed", formula)
        return formula


def _write_worksheet(ws: Any, sheet: Sheet, include_formatting: bool, include_formulas: bool) -> None:
    for c, col in enumerate(sheet.columns, start=1):
        header = ws.cell(row=1, column=c, value=col.name)
        if include_formatting:
            header.font = Font(bold=True)
            header.fill = PatternFill(fill_type="solid", fgColor=HEADER_FILL)
            header.alignment = Alignment(horizontal="center", vertical="center")
        dim = ws.column_dimensions[index_to_col_letter(c - 1)]
        dim.width = col.width / 7 if col.width else 15
        if col.hidden:
            dim.hidden = True

    ws.row_dimensions[1].height = DEFAULT_ROW_HEIGHT_PX * 0.75
    for r, row in enumerate(sheet.rows, start=2):
        ws.row_dimensions[r].height = (row.height or DEFAULT_ROW_HEIGHT_PX) * 0.75
        for c, col in enumerate(sheet.columns, start=1):
            cell = row.cells.get(col.id)
            if cell is None:
                continue
            if include_formulas and cell.formula:
                target = ws.cell(row=r, column=c, value=_shift_formula(cell.formula, 1))
            else:
                target = ws.cell(row=r, column=c, value=_excel_value(cell.value))
                if isinstance(cell.value, str) and cell.value.startswith("="):
                    target.data_type = "s"
            if include_formatting and cell.style is not None:
                apply_cell_style(target, cell.style)


def export_xlsx(
    sheets: Iterable[Sheet],
    path: Path | IO[bytes],
    include_formatting: bool = True,
    include_formulas: bool = False,
) -> ExportResult:
    """Write *sheets* to an .xlsx workbook, one worksheet each.

    Cells hold their stored values.  With *include_formulas*, formula cells
    hold their formula text instead, with references moved one row down to
    make room for the header row.
    """
    sheets = list(sheets)
    label = str(path) if isinstance(path, (str, Path)) else None
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for i, sheet in enumerate(sheets, start=1):
        ws = wb.create_sheet(title=sanitize_sheet_name(sheet.name) or f"Sheet{i}")
        _write_worksheet(ws, sheet, include_formatting, include_formulas)
    if not sheets:
        wb.create_sheet(title="Sheet1")

    try:
        wb.save(path)
    except OSError as exc:
        emit(make_sheet_event(
            EventType.export_failed, EventLevel.error,
            f"XLSX export failed: {exc}",
            path=label, error_code=EXPORT_WRITE_FAILED,
        ))
        return ExportResult.failed(str(exc), label)

    for sheet in sheets:
        emit(make_sheet_event(
            EventType.sheet_exported, EventLevel.info,
            f"Exported {sheet.name!r} to XLSX",
            sheet_id=sheet.id, sheet_name=sheet.name, path=label,
            extra={"format": "xlsx", "rows": len(sheet.rows)},
        ))
    return ExportResult(success=True, path=label, sheets=len(sheets))
