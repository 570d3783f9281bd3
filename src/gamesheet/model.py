"""Document model: Sheet, Column, Row and Cell.

All entities are frozen pydantic models.  Commands never mutate an entity in
place; they build replacements with ``model_copy(update=...)`` and swap them
into a new parent.  Snapshots retained by the history stack therefore never
change under it.

Serialization uses camelCase aliases (``createdAt``, ``columnId``) so the
snapshot shape is the one exchanged with storage and import/export adapters.
Input accepts either spelling.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

CellType = Literal[
    "text",
    "number",
    "boolean",
    "date",
    "formula",
    "select",
    "multiselect",
]

CELL_TYPES: tuple[str, ...] = (
    "text",
    "number",
    "boolean",
    "date",
    "formula",
    "select",
    "multiselect",
)

# bool precedes int so that True/False keep their type.
CellValue = Union[None, bool, int, float, str, datetime, date]

FilterOperator = Literal[
    "equals",
    "contains",
    "startsWith",
    "endsWith",
    "greaterThan",
    "lessThan",
]


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_snapshot(self) -> dict[str, Any]:
        """Dump with camelCase keys, keeping native date values."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Styles and rules
# ---------------------------------------------------------------------------


class BorderStyle(_Model):
    width: int | None = None
    style: str | None = None
    color: str | None = None


class CellBorder(_Model):
    top: BorderStyle | None = None
    right: BorderStyle | None = None
    bottom: BorderStyle | None = None
    left: BorderStyle | None = None


class CellStyle(_Model):
    font_family: str | None = None
    font_size: float | None = None
    font_weight: Literal["normal", "bold"] | None = None
    font_style: Literal["normal", "italic"] | None = None
    text_decoration: Literal["none", "underline", "line-through"] | None = None
    color: str | None = None
    background_color: str | None = None
    text_align: Literal["left", "center", "right"] | None = None
    vertical_align: Literal["top", "middle", "bottom"] | None = None
    border: CellBorder | None = None
    number_format: str | None = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class RangeParams(_Model):
    min: float | None = None
    max: float | None = None


class ValidationRule(_Model):
    type: Literal["required", "range"]
    params: RangeParams | None = None
    message: str | None = None


class FilterConfig(_Model):
    column_id: str
    operator: FilterOperator
    value: CellValue = None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def make_cell_id(row_id: str, column_id: str) -> str:
    """Cell identity is always ``{rowId}:{columnId}``."""
    return f"{row_id}:{column_id}"


class Cell(_Model):
    row_id: str
    column_id: str
    value: CellValue = None
    type: CellType = "text"
    formula: str | None = None
    style: CellStyle | None = None
    validation: ValidationRule | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        return make_cell_id(self.row_id, self.column_id)


class Column(_Model):
    id: str
    name: str
    type: CellType = "text"
    width: int = 120
    index: int = 0
    frozen: bool = False
    hidden: bool = False
    validation: ValidationRule | None = None
    options: list[str] | None = None


class Row(_Model):
    id: str
    index: int = 0
    cells: dict[str, Cell] = Field(default_factory=dict)
    height: int | None = None
    hidden: bool = False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Sheet(_Model):
    id: str
    name: str
    columns: list[Column] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    filters: list[FilterConfig] | None = None

    # -- lookups -------------------------------------------------------

    def find_row(self, row_id: str) -> Row | None:
        for row in self.rows:
            if row.id == row_id:
                return row
        return None

    def find_column(self, column_id: str) -> Column | None:
        for col in self.columns:
            if col.id == column_id:
                return col
        return None

    def row_position(self, row_id: str) -> int:
        """Return the position of *row_id*, or -1."""
        for i, row in enumerate(self.rows):
            if row.id == row_id:
                return i
        return -1

    def column_position(self, column_id: str) -> int:
        """Return the position of *column_id*, or -1."""
        for i, col in enumerate(self.columns):
            if col.id == column_id:
                return i
        return -1

    def get_cell(self, row_id: str, column_id: str) -> Cell | None:
        row = self.find_row(row_id)
        if row is None:
            return None
        return row.cells.get(column_id)

    def touch(self, **updates: Any) -> Sheet:
        """Return a copy with *updates* applied and ``updated_at`` bumped."""
        updates.setdefault("updated_at", utc_now())
        return self.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------


def new_id(prefix: str) -> str:
    """Return a fresh entity id such as ``row-3f2a9c01b7d4``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def blank_cell(row_id: str, column: Column) -> Cell:
    return Cell(row_id=row_id, column_id=column.id, type=column.type)


def blank_row(
    row_id: str,
    columns: list[Column],
    index: int = 0,
    height: int | None = None,
) -> Row:
    cells = {col.id: blank_cell(row_id, col) for col in columns}
    return Row(id=row_id, index=index, cells=cells, height=height)


def reindex_rows(rows: list[Row]) -> list[Row]:
    """Return *rows* with ``index`` equal to position (copies only stale rows)."""
    return [
        row if row.index == i else row.model_copy(update={"index": i})
        for i, row in enumerate(rows)
    ]


def reindex_columns(columns: list[Column]) -> list[Column]:
    """Return *columns* with ``index`` equal to position."""
    return [
        col if col.index == i else col.model_copy(update={"index": i})
        for i, col in enumerate(columns)
    ]


def infer_cell_type(value: CellValue) -> CellType:
    """Guess a cell type from a literal value."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (date, datetime)):
        return "date"
    if isinstance(value, str) and value.startswith("="):
        return "formula"
    return "text"


def create_blank_sheet(
    name: str,
    *,
    n_rows: int = 100,
    n_cols: int = 10,
    column_width: int = 120,
    row_height: int | None = 32,
    sheet_id: str | None = None,
) -> Sheet:
    """Build a default grid: lettered text columns and blank rows."""
    from gamesheet.addressing import index_to_col_letter

    columns = []
    for i in range(n_cols):
        letter = index_to_col_letter(i)
        columns.append(
            Column(id=f"col-{letter}", name=letter, width=column_width, index=i)
        )
    rows = [
        blank_row(f"row-{i + 1}", columns, index=i, height=row_height)
        for i in range(n_rows)
    ]
    return Sheet(
        id=sheet_id or new_id("sheet"),
        name=name,
        columns=columns,
        rows=rows,
    )


def format_display_value(value: CellValue, cell_type: str | None = None) -> str:
    """Render a stored value for display according to the column type.

    Storage keeps the literal type supplied by the user; this is the only
    place values are coerced, and it never writes back.
    """
    if value is None:
        return ""
    if cell_type == "number" and isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and value.is_integer():
            return f"{int(value):,}"
        return f"{value:,}"
    if cell_type == "boolean" or isinstance(value, bool):
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
