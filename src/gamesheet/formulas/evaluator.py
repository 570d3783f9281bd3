"""Tree-walking evaluator for parsed formula expressions.

Cell references are resolved through a :class:`CellResolver` callback that
returns the *stored* value of the referenced cell.  The evaluator never
follows a referenced cell's formula source.
"""

from __future__ import annotations

import operator
from typing import Any, Protocol

from lark import Token, Tree

from gamesheet.formulas.coerce import check_not_error, to_bool, to_number, to_text
from gamesheet.formulas.errors import (
    FormulaDivisionError,
    FormulaError,
    FormulaFunctionError,
    FormulaValueError,
)
from gamesheet.formulas.functions import get_function


class CellResolver(Protocol):
    """Protocol for resolving A1 references to stored values."""

    def resolve_cell(self, addr: str) -> Any:
        """Return the stored value at *addr*; raise FormulaRefError if absent."""
        ...

    def resolve_range(self, first: str, last: str) -> list[Any]:
        """Return the stored values between two corners, row by row."""
        ...


def evaluate_formula(tree: Tree, resolver: CellResolver | None = None) -> Any:
    """Evaluate a parsed formula tree.

    Args:
        tree: Parse tree from ``parse_formula()``.
        resolver: Resolver for A1 references.  Without one, any reference
            raises ``FormulaValueError``.

    Returns:
        The computed value (number, text or boolean).
    """
    result = _eval(tree, resolver)
    if isinstance(result, list):
        raise FormulaValueError("A range can only be used as a function argument")
    return result


_ARITHMETIC = {"add": operator.add, "sub": operator.sub, "mul": operator.mul}

_COMPARISONS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "gt": operator.gt,
    "le": operator.le,
    "ge": operator.ge,
}


def _eval(node: Tree | Token, resolver: CellResolver | None) -> Any:
    if isinstance(node, Token):
        return _eval_token(node)

    rule = node.data

    if rule == "start":
        return _eval(node.children[0], resolver)

    if rule in _ARITHMETIC or rule == "div":
        left = to_number(_eval(node.children[0], resolver))
        right = to_number(_eval(node.children[1], resolver))
        if rule != "div":
            return _ARITHMETIC[rule](left, right)
        if right == 0:
            raise FormulaDivisionError()
        return left / right
    if rule == "neg":
        return -to_number(_eval(node.children[0], resolver))
    if rule == "pos":
        return to_number(_eval(node.children[0], resolver))

    if rule == "concat":
        left = _eval(node.children[0], resolver)
        right = _eval(node.children[1], resolver)
        return to_text(left) + to_text(right)

    if rule in _COMPARISONS:
        left = _eval(node.children[0], resolver)
        right = _eval(node.children[1], resolver)
        return _compare(rule, left, right)

    if rule == "number":
        return _parse_number(node.children[0])
    if rule == "string":
        return _unquote(str(node.children[0]))
    if rule == "boolean":
        return str(node.children[0]).upper() == "TRUE"

    if rule == "cell_ref":
        addr = str(node.children[0]).upper()
        if resolver is None:
            raise FormulaValueError(f"No sheet available to resolve {addr}")
        return resolver.resolve_cell(addr)
    if rule == "range_ref":
        first, last = str(node.children[0]).upper().split(":")
        if resolver is None:
            raise FormulaValueError(f"No sheet available to resolve {first}:{last}")
        return resolver.resolve_range(first, last)

    if rule == "func_call":
        return _eval_func(node, resolver)

    raise FormulaError(f"Unknown node type: {rule}")


def _eval_func(node: Tree, resolver: CellResolver | None) -> Any:
    name = str(node.children[0]).upper()
    arglist = node.children[1]
    arg_nodes = list(arglist.children) if arglist is not None else []

    if name == "IF":
        # only the chosen branch is evaluated
        if not 2 <= len(arg_nodes) <= 3:
            raise FormulaFunctionError("IF", f"IF takes 2 to 3 argument(s), got {len(arg_nodes)}")
        condition = _eval(arg_nodes[0], resolver)
        if isinstance(condition, list):
            raise FormulaFunctionError("IF", "IF condition cannot be a range")
        if to_bool(condition):
            return _eval(arg_nodes[1], resolver)
        return _eval(arg_nodes[2], resolver) if len(arg_nodes) == 3 else False

    fn = get_function(name)
    return fn([_eval(arg, resolver) for arg in arg_nodes])


def _compare(rule: str, left: Any, right: Any) -> bool:
    """Numbers compare numerically, anything else as case-insensitive text."""
    for value in (left, right):
        check_not_error(value)
        if isinstance(value, list):
            raise FormulaValueError("A range can only be used as a function argument")
    numeric = (int, float, type(None))
    if isinstance(left, numeric) and isinstance(right, numeric):
        return _COMPARISONS[rule](to_number(left), to_number(right))
    return _COMPARISONS[rule](to_text(left).lower(), to_text(right).lower())


def _eval_token(token: Token) -> Any:
    """Evaluate a bare token (shouldn't normally happen at top level)."""
    if token.type == "NUMBER":
        return _parse_number(token)
    if token.type == "ESCAPED_STRING":
        return _unquote(str(token))
    return str(token)


def _parse_number(token: Token) -> int | float:
    s = str(token)
    if "." in s or "e" in s.lower():
        return float(s)
    return int(s)


def _unquote(raw: str) -> str:
    return raw[1:-1].replace('\\"', '"').replace("\\\\", "\\")
