"""Error types and inline error markers for formula evaluation.

Exceptions are internal to the formula package.  The resolver converts every
one of them into a string marker stored as the cell value, so a bad formula
never escapes as an exception into the mutation engine.
"""

from __future__ import annotations

REF_ERROR = "#REF!"
DIV0_ERROR = "#DIV/0!"
VALUE_ERROR = "#VALUE!"
NAME_ERROR = "#NAME?"
GENERIC_ERROR_PREFIX = "#ERROR: "

ENGINE_ERRORS = frozenset({REF_ERROR, DIV0_ERROR, VALUE_ERROR, NAME_ERROR})


def is_error_value(value: object) -> bool:
    """True if *value* is an inline formula error marker."""
    if not isinstance(value, str):
        return False
    return value in ENGINE_ERRORS or value.startswith(GENERIC_ERROR_PREFIX)


class FormulaError(Exception):
    """Base class for all formula-related errors."""

    marker: str = VALUE_ERROR

    def to_marker(self) -> str:
        return self.marker


class FormulaParseError(FormulaError):
    """Syntax error in a formula expression.

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        self.detail = message
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)

    def to_marker(self) -> str:
        return f"{GENERIC_ERROR_PREFIX}{self}"


class FormulaRefError(FormulaError):
    """Reference to a cell outside the sheet bounds."""

    marker = REF_ERROR

    def __init__(self, ref_name: str) -> None:
        self.ref_name = ref_name
        super().__init__(f"Invalid reference: {ref_name!r}")


class FormulaDivisionError(FormulaError):
    marker = DIV0_ERROR

    def __init__(self) -> None:
        super().__init__("Division by zero in formula")


class FormulaValueError(FormulaError):
    """Operand that cannot take part in the operation.

    When the operand is itself an error marker it propagates unchanged.
    """

    def __init__(self, message: str, marker: str = VALUE_ERROR) -> None:
        self.marker = marker
        super().__init__(message)


class FormulaFunctionError(FormulaError):
    """Unknown function name (``#NAME?``) or bad arguments (``#VALUE!``)."""

    def __init__(self, func_name: str, message: str | None = None) -> None:
        self.func_name = func_name
        self.marker = NAME_ERROR if message is None else VALUE_ERROR
        super().__init__(message or f"Unknown function: {func_name!r}")
