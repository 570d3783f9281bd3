"""Spreadsheet-style cell formulas.

Public API::

    from gamesheet.formulas import parse_formula, evaluate_formula, resolve_formula
"""

from gamesheet.formulas.errors import (
    DIV0_ERROR,
    ENGINE_ERRORS,
    GENERIC_ERROR_PREFIX,
    NAME_ERROR,
    REF_ERROR,
    VALUE_ERROR,
    FormulaDivisionError,
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
    FormulaValueError,
    is_error_value,
)
from gamesheet.formulas.evaluator import CellResolver, evaluate_formula
from gamesheet.formulas.functions import function_names, get_function, register_function
from gamesheet.formulas.parser import extract_refs, offset_formula_rows, parse_formula
from gamesheet.formulas.resolver import SheetResolver, resolve_formula

__all__ = [
    "CellResolver",
    "DIV0_ERROR",
    "ENGINE_ERRORS",
    "FormulaDivisionError",
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "FormulaValueError",
    "GENERIC_ERROR_PREFIX",
    "NAME_ERROR",
    "REF_ERROR",
    "SheetResolver",
    "VALUE_ERROR",
    "evaluate_formula",
    "extract_refs",
    "function_names",
    "get_function",
    "is_error_value",
    "offset_formula_rows",
    "parse_formula",
    "register_function",
    "resolve_formula",
]
