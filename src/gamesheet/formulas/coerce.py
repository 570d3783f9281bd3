"""Operand coercion shared by operators and built-in functions."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from gamesheet.formulas.errors import FormulaValueError, is_error_value

_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def check_not_error(value: Any) -> Any:
    """Raise so that an error marker operand propagates unchanged."""
    if is_error_value(value):
        raise FormulaValueError(f"Operand is an error: {value}", marker=value)
    return value


def to_number(value: Any) -> int | float:
    """Coerce an operand for arithmetic.

    Booleans count as 1/0, numeric text is parsed by its leading number, and
    empty or non-numeric text counts as 0.  Error markers propagate.
    """
    check_not_error(value)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        m = _LEADING_NUMBER_RE.match(value)
        if not m:
            return 0
        num = float(m.group(0))
        return int(num) if num.is_integer() and "." not in m.group(0) else num
    if isinstance(value, (date, datetime)):
        raise FormulaValueError("Dates cannot be used in arithmetic")
    if isinstance(value, list):
        raise FormulaValueError("A range can only be used as a function argument")
    raise FormulaValueError(f"Unsupported operand: {value!r}")


def number_or_none(value: Any) -> int | float | None:
    """Numeric reading of a range item; None when the item is not a number.

    Text counts only when the whole string is a number.
    """
    check_not_error(value)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
    return None


def to_text(value: Any) -> str:
    """Coerce an operand for ``&`` concatenation and text functions."""
    check_not_error(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        raise FormulaValueError("A range can only be used as a function argument")
    return str(value)


def to_bool(value: Any) -> bool:
    """Truthiness for conditions: ``"false"`` and ``0`` are false."""
    check_not_error(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return bool(lowered)
    if isinstance(value, list):
        return any(to_bool(v) for v in value)
    return bool(value)
