"""Cell, row and sheet validation.

Every function here is pure: it reads entities and returns a
:class:`ValidationResult`.  Nothing is written back to the document, and a
failing result never blocks a mutation.  Callers that want to keep results
around store them themselves, from an explicit action.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Iterable, Literal

from pydantic import BaseModel, Field

from gamesheet.model import Cell, Column, Row, Sheet, ValidationRule

Severity = Literal["error", "warning", "info"]

_BOOLEAN_TOKENS = frozenset({"true", "false", "1", "0", "yes", "no", "y", "n"})

_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S")


# ────────────────────────────────────────────────────────────────
# Result models
# ────────────────────────────────────────────────────────────────


class ValidationIssue(BaseModel):
    cell_id: str | None = None
    row_id: str | None = None
    column_id: str | None = None
    message: str
    severity: Severity = "error"


class ValidationResult(BaseModel):
    valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def from_issues(
        cls,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue] | None = None,
    ) -> ValidationResult:
        return cls(valid=not errors, errors=errors, warnings=warnings or [])

    @classmethod
    def combine(cls, results: Iterable[ValidationResult]) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        for r in results:
            errors.extend(r.errors)
            warnings.extend(r.warnings)
        return cls.from_issues(errors, warnings)


class TypeCheck(BaseModel):
    valid: bool
    message: str | None = None


# ────────────────────────────────────────────────────────────────
# Type checks
# ────────────────────────────────────────────────────────────────


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _parses_as_number(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    if isinstance(value, str):
        if "_" in value:
            return False
        try:
            num = float(value.strip())
        except ValueError:
            return False
        return math.isfinite(num)
    return False


def parse_date(value: Any) -> date | None:
    """Parse *value* into a calendar date, or return None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _check_select(value: Any, options: list[str] | None) -> TypeCheck:
    if not options:
        return TypeCheck(valid=True)
    text = str(value).strip()
    if not text or text in options:
        return TypeCheck(valid=True)
    return TypeCheck(
        valid=False,
        message=f'"{text}" is not a valid option. Allowed: {", ".join(options)}',
    )


def _check_multiselect(value: Any, options: list[str] | None) -> TypeCheck:
    if not options:
        return TypeCheck(valid=True)
    segments = [s.strip() for s in str(value).split(",")]
    invalid = [s for s in segments if s and s not in options]
    if not invalid:
        return TypeCheck(valid=True)
    return TypeCheck(
        valid=False,
        message=(
            f"Invalid options: {', '.join(invalid)}. "
            f"Allowed: {', '.join(options)}"
        ),
    )


def validate_value_type(
    value: Any,
    expected_type: str,
    options: list[str] | None = None,
) -> TypeCheck:
    """Check that *value* fits a column of *expected_type*.

    Empty values (None or ``""``) are valid for every type.

    Args:
        value: The stored cell value.
        expected_type: Declared column type.
        options: Value universe for ``select``/``multiselect`` columns.
    """
    if _is_empty(value):
        return TypeCheck(valid=True)

    if expected_type == "number":
        if isinstance(value, (date, datetime)) or not _parses_as_number(value):
            return TypeCheck(valid=False, message=f'"{value}" is not a number')
        return TypeCheck(valid=True)

    if expected_type == "boolean":
        if isinstance(value, bool):
            return TypeCheck(valid=True)
        if str(value).strip().lower() not in _BOOLEAN_TOKENS:
            return TypeCheck(
                valid=False,
                message=f'"{value}" is not a boolean (true/false, 1/0, yes/no)',
            )
        return TypeCheck(valid=True)

    if expected_type == "date":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return TypeCheck(valid=True)
        if parse_date(value) is None:
            return TypeCheck(valid=False, message=f'"{value}" is not a valid date')
        return TypeCheck(valid=True)

    if expected_type == "select":
        return _check_select(value, options)

    if expected_type == "multiselect":
        return _check_multiselect(value, options)

    # text, formula and unknown types accept anything
    return TypeCheck(valid=True)


# ────────────────────────────────────────────────────────────────
# Rules
# ────────────────────────────────────────────────────────────────


def _check_rule(cell: Cell, rule: ValidationRule) -> list[str]:
    """Return error messages produced by *rule* for *cell*."""
    value = cell.value
    if rule.type == "required":
        if value is None or (isinstance(value, str) and not value.strip()):
            return [rule.message or "This field is required"]
        return []

    if rule.type == "range":
        params = rule.params
        if params is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            return []
        messages = []
        if params.min is not None and value < params.min:
            messages.append(rule.message or f"Value must be at least {_fmt_bound(params.min)}")
        if params.max is not None and value > params.max:
            messages.append(rule.message or f"Value must be at most {_fmt_bound(params.max)}")
        return messages

    return []


def _fmt_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


# ────────────────────────────────────────────────────────────────
# Cell / row / sheet
# ────────────────────────────────────────────────────────────────


def validate_cell(
    cell: Cell,
    column_type: str | None = None,
    options: list[str] | None = None,
    rule: ValidationRule | None = None,
) -> ValidationResult:
    """Validate one cell against its column type and validation rule.

    The cell's own ``validation`` rule takes precedence over *rule* (the
    column-level rule).  Formula columns skip the type check.
    """
    errors: list[ValidationIssue] = []

    if column_type and column_type != "formula":
        check = validate_value_type(cell.value, column_type, options)
        if not check.valid:
            errors.append(
                ValidationIssue(
                    cell_id=cell.id,
                    row_id=cell.row_id,
                    column_id=cell.column_id,
                    message=check.message or "Value does not match column type",
                )
            )

    effective = cell.validation or rule
    if effective is not None:
        for message in _check_rule(cell, effective):
            errors.append(
                ValidationIssue(
                    cell_id=cell.id,
                    row_id=cell.row_id,
                    column_id=cell.column_id,
                    message=message,
                )
            )

    return ValidationResult.from_issues(errors)


def validate_row(row: Row, columns: list[Column]) -> ValidationResult:
    """Validate every cell of *row* against the sheet's column definitions."""
    results: list[ValidationResult] = []
    for column in columns:
        cell = row.cells.get(column.id)
        if cell is None:
            results.append(
                ValidationResult(
                    warnings=[
                        ValidationIssue(
                            row_id=row.id,
                            column_id=column.id,
                            message=f"Row has no cell for column {column.name!r}",
                            severity="warning",
                        )
                    ]
                )
            )
            continue
        results.append(
            validate_cell(cell, column.type, column.options, column.validation)
        )
    return ValidationResult.combine(results)


def validate_sheet(sheet: Sheet) -> ValidationResult:
    """Validate all rows of *sheet*."""
    return ValidationResult.combine(
        validate_row(row, sheet.columns) for row in sheet.rows
    )
