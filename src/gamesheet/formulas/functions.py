"""Built-in formula functions and their registry.

Every function takes the list of its evaluated arguments.  A range argument
such as ``A1:B3`` arrives as a list of the stored values it covers, in row
order.  ``IF`` is not registered here: the evaluator handles it so that only
the chosen branch is evaluated.
"""

from __future__ import annotations

import math
from typing import Any, Callable

from gamesheet.formulas.coerce import (
    check_not_error,
    number_or_none,
    to_bool,
    to_number,
    to_text,
)
from gamesheet.formulas.errors import FormulaFunctionError

FormulaFunction = Callable[[list[Any]], Any]

_FUNCTIONS: dict[str, FormulaFunction] = {}


def register_function(name: str) -> Callable[[FormulaFunction], FormulaFunction]:
    """Decorator that registers a formula function under an upper-case name."""

    def decorator(fn: FormulaFunction) -> FormulaFunction:
        _FUNCTIONS[name.upper()] = fn
        return fn

    return decorator


def get_function(name: str) -> FormulaFunction:
    """Look up a function by name, case-insensitively.

    Raises:
        FormulaFunctionError: If no function is registered under *name*.
    """
    try:
        return _FUNCTIONS[name.upper()]
    except KeyError:
        raise FormulaFunctionError(name.upper()) from None


def function_names() -> list[str]:
    return sorted(_FUNCTIONS) + ["IF"]


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _flatten(args: list[Any]) -> list[Any]:
    flat: list[Any] = []
    for arg in args:
        if isinstance(arg, list):
            flat.extend(arg)
        else:
            flat.append(arg)
    return flat


def _numbers(args: list[Any]) -> list[int | float]:
    """Numeric items of all arguments; blanks and plain text are skipped."""
    return [n for n in map(number_or_none, _flatten(args)) if n is not None]


def _arity(name: str, args: list[Any], low: int, high: int | None = None) -> None:
    high = low if high is None else high
    if not low <= len(args) <= high:
        expected = str(low) if low == high else f"{low} to {high}"
        raise FormulaFunctionError(name, f"{name} takes {expected} argument(s), got {len(args)}")


def _scalar(name: str, value: Any) -> Any:
    if isinstance(value, list):
        if len(value) != 1:
            raise FormulaFunctionError(name, f"{name} does not accept a range")
        value = value[0]
    return check_not_error(value)


def _tidy(value: float) -> int | float:
    return int(value) if isinstance(value, float) and value.is_integer() else value


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------


@register_function("SUM")
def fn_sum(args: list[Any]) -> int | float:
    return sum(_numbers(args))


@register_function("AVERAGE")
def fn_average(args: list[Any]) -> int | float:
    numbers = _numbers(args)
    return _tidy(sum(numbers) / len(numbers)) if numbers else 0


@register_function("MIN")
def fn_min(args: list[Any]) -> int | float:
    return min(_numbers(args), default=0)


@register_function("MAX")
def fn_max(args: list[Any]) -> int | float:
    return max(_numbers(args), default=0)


@register_function("COUNT")
def fn_count(args: list[Any]) -> int:
    return len(_numbers(args))


@register_function("COUNTA")
def fn_counta(args: list[Any]) -> int:
    return sum(1 for v in _flatten(args) if v not in (None, ""))


@register_function("ROUND")
def fn_round(args: list[Any]) -> int | float:
    """ROUND(value, digits=0), halves rounded up."""
    _arity("ROUND", args, 1, 2)
    value = to_number(_scalar("ROUND", args[0]))
    digits = int(to_number(_scalar("ROUND", args[1]))) if len(args) == 2 else 0
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits <= 0 else rounded


@register_function("ABS")
def fn_abs(args: list[Any]) -> int | float:
    _arity("ABS", args, 1)
    return abs(to_number(_scalar("ABS", args[0])))


# ---------------------------------------------------------------------------
# Logical
# ---------------------------------------------------------------------------


@register_function("AND")
def fn_and(args: list[Any]) -> bool:
    _arity("AND", args, 1, 255)
    return all(to_bool(v) for v in _flatten(args))


@register_function("OR")
def fn_or(args: list[Any]) -> bool:
    _arity("OR", args, 1, 255)
    return any(to_bool(v) for v in _flatten(args))


@register_function("NOT")
def fn_not(args: list[Any]) -> bool:
    _arity("NOT", args, 1)
    return not to_bool(_scalar("NOT", args[0]))


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


@register_function("CONCATENATE")
def fn_concatenate(args: list[Any]) -> str:
    return "".join(to_text(v) for v in _flatten(args))


@register_function("LEN")
def fn_len(args: list[Any]) -> int:
    _arity("LEN", args, 1)
    return len(to_text(_scalar("LEN", args[0])))


@register_function("UPPER")
def fn_upper(args: list[Any]) -> str:
    _arity("UPPER", args, 1)
    return to_text(_scalar("UPPER", args[0])).upper()


@register_function("LOWER")
def fn_lower(args: list[Any]) -> str:
    _arity("LOWER", args, 1)
    return to_text(_scalar("LOWER", args[0])).lower()


@register_function("LEFT")
def fn_left(args: list[Any]) -> str:
    _arity("LEFT", args, 1, 2)
    n = int(to_number(_scalar("LEFT", args[1]))) if len(args) == 2 else 1
    return to_text(_scalar("LEFT", args[0]))[:max(n, 0)]


@register_function("RIGHT")
def fn_right(args: list[Any]) -> str:
    _arity("RIGHT", args, 1, 2)
    n = int(to_number(_scalar("RIGHT", args[1]))) if len(args) == 2 else 1
    text = to_text(_scalar("RIGHT", args[0]))
    return text[len(text) - n:] if n > 0 else ""


# ---------------------------------------------------------------------------
# Game data
# ---------------------------------------------------------------------------

RARITY_MULTIPLIERS = {
    "common": 1.0,
    "uncommon": 1.1,
    "rare": 1.25,
    "epic": 1.5,
    "legendary": 2.0,
    "mythic": 3.0,
}


@register_function("DAMAGE_CALC")
def fn_damage_calc(args: list[Any]) -> int:
    """DAMAGE_CALC(attack, defense) = floor(attack * 100 / (100 + defense))."""
    _arity("DAMAGE_CALC", args, 2)
    attack = to_number(_scalar("DAMAGE_CALC", args[0]))
    defense = to_number(_scalar("DAMAGE_CALC", args[1]))
    if defense <= -100:
        raise FormulaFunctionError("DAMAGE_CALC", "defense must be greater than -100")
    return math.floor(attack * (100 / (100 + defense)))


@register_function("STAT_TOTAL")
def fn_stat_total(args: list[Any]) -> int | float:
    return fn_sum(args)


@register_function("RARITY_BONUS")
def fn_rarity_bonus(args: list[Any]) -> float:
    """Multiplier for a rarity name; unknown rarities give 1.0."""
    _arity("RARITY_BONUS", args, 1)
    rarity = to_text(_scalar("RARITY_BONUS", args[0])).strip().lower()
    return RARITY_MULTIPLIERS.get(rarity, 1.0)
