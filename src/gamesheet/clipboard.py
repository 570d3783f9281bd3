"""Tab-separated clipboard text for copy, cut and paste.

Copied cells are rendered as TSV, the format spreadsheet applications put on
the system clipboard.  Fields that contain a comma or a quote, or start with
``=``, are wrapped in double quotes so that pasting them elsewhere does not
turn a value into a formula.  Pasted text is parsed back into typed values.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from gamesheet.model import CellValue

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


class CellRange(BaseModel):
    """An inclusive rectangle of visual (0-based) row and column positions.

    The corners may be given in any order.
    """

    model_config = ConfigDict(frozen=True)

    start_row: int
    start_column: int
    end_row: int
    end_column: int

    @classmethod
    def single(cls, row: int, column: int) -> CellRange:
        return cls(start_row=row, start_column=column, end_row=row, end_column=column)

    @property
    def rows(self) -> range:
        return range(min(self.start_row, self.end_row), max(self.start_row, self.end_row) + 1)

    @property
    def columns(self) -> range:
        return range(
            min(self.start_column, self.end_column),
            max(self.start_column, self.end_column) + 1,
        )


def _tsv_field(value: CellValue) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (date, datetime)):
        text = value.isoformat()
    else:
        text = str(value)
    text = text.replace("\t", "    ").replace("\n", " ")
    if "," in text or '"' in text or text.startswith("="):
        text = '"' + text.replace('"', '""') + '"'
    return text


def values_to_tsv(values: list[list[CellValue]]) -> str:
    """Render rows of values as TSV.  Tabs and newlines inside values are flattened."""
    return "\n".join("\t".join(_tsv_field(v) for v in row) for row in values)


def parse_tsv_value(text: str) -> CellValue:
    """Type a single pasted field: number, boolean, ISO date, else text."""
    if not text or not text.strip():
        return None
    stripped = text.strip()
    if "_" not in stripped:
        try:
            return int(stripped)
        except ValueError:
            pass
        try:
            number = float(stripped)
        except ValueError:
            pass
        else:
            if math.isfinite(number):
                return number
    lowered = stripped.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _ISO_DATE_RE.match(stripped):
        try:
            if len(stripped) == 10:
                return date.fromisoformat(stripped)
            return datetime.fromisoformat(stripped.replace("Z", "+00:00"))
        except ValueError:
            pass
    return text


def tsv_to_values(text: str) -> list[list[CellValue]]:
    """Parse clipboard TSV into rows of typed values.

    Blank lines are skipped.  A field wrapped in double quotes is unquoted
    and kept as text.
    """
    rows: list[list[CellValue]] = []
    for line in text.replace("\r\n", "\n").split("\n"):
        if line == "":
            continue
        values: list[CellValue] = []
        for field in line.split("\t"):
            if len(field) >= 2 and field.startswith('"') and field.endswith('"'):
                values.append(field[1:-1].replace('""', '"'))
            else:
                values.append(parse_tsv_value(field))
        rows.append(values)
    return rows
