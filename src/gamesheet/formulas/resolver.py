"""Resolve a cell's formula source against the current sheet.

Evaluation is single-pass: references read the stored ``value`` of the
referenced cell.  Nothing is recomputed transitively, so a downstream formula
keeps its last value until its own cell is written again.
"""

from __future__ import annotations

import logging
from typing import Any

from gamesheet.addressing import parse_addr
from gamesheet.formulas.errors import FormulaError, FormulaRefError
from gamesheet.formulas.evaluator import evaluate_formula
from gamesheet.formulas.parser import parse_formula
from gamesheet.model import CellValue, Sheet

logger = logging.getLogger(__name__)


class SheetResolver:
    """Map A1 addresses to the visual position of columns and rows."""

    def __init__(self, sheet: Sheet) -> None:
        self._sheet = sheet

    def resolve_cell(self, addr: str) -> Any:
        try:
            row_idx, col_idx = parse_addr(addr)
        except ValueError:
            raise FormulaRefError(addr) from None
        if row_idx >= len(self._sheet.rows) or col_idx >= len(self._sheet.columns):
            raise FormulaRefError(addr)
        column = self._sheet.columns[col_idx]
        cell = self._sheet.rows[row_idx].cells.get(column.id)
        if cell is None:
            raise FormulaRefError(addr)
        return cell.value

    def resolve_range(self, first: str, last: str) -> list[Any]:
        """Values of the rectangle between two corners, row by row.

        Cells missing from a row read as ``None``; a corner outside the sheet
        is a ``#REF!``.
        """
        label = f"{first}:{last}"
        try:
            r1, c1 = parse_addr(first)
            r2, c2 = parse_addr(last)
        except ValueError:
            raise FormulaRefError(label) from None
        top, bottom = min(r1, r2), max(r1, r2)
        left, right = min(c1, c2), max(c1, c2)
        if bottom >= len(self._sheet.rows) or right >= len(self._sheet.columns):
            raise FormulaRefError(label)
        column_ids = [col.id for col in self._sheet.columns[left:right + 1]]
        values: list[Any] = []
        for row in self._sheet.rows[top:bottom + 1]:
            for col_id in column_ids:
                cell = row.cells.get(col_id)
                values.append(cell.value if cell is not None else None)
        return values


def resolve_formula(formula: str, sheet: Sheet) -> CellValue:
    """Evaluate *formula* against *sheet*, returning a value or error marker.

    Never raises for bad user input: parse failures, bad references and
    arithmetic errors become inline markers (``#ERROR: ...``, ``#REF!``,
    ``#DIV/0!``, ``#VALUE!``).
    """
    try:
        tree = parse_formula(formula)
        return evaluate_formula(tree, SheetResolver(sheet))
    except FormulaError as exc:
        logger.debug("formula %r on sheet %s failed: %s", formula, sheet.id, exc)
        return exc.to_marker()
