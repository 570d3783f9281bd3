"""Lark-based parser for cell formulas.

Supports:
- Numbers, double-quoted strings and ``TRUE``/``FALSE``
- Cell references in A1 style (``A1``, ``AA10``; case-insensitive)
- Ranges (``A1:B3``) as function arguments
- Function calls (``SUM(A1:A5)``, ``IF(A1>0, "yes", "no")``)
- Arithmetic ``+ - * /``, unary ``+``/``-`` and parentheses
- Text concatenation ``&``
- Comparisons ``= <> < > <= >=`` (lowest precedence)
"""

from __future__ import annotations

from lark import Lark, Token, Tree, Visitor

from gamesheet.addressing import make_addr, parse_addr
from gamesheet.formulas.errors import REF_ERROR, FormulaParseError

# LALR(1) grammar.  Operator precedence (lowest to highest):
#   1. Comparison: = <> < > <= >=
#   2. Concatenation: &
#   3. Addition/subtraction: + -
#   4. Multiplication/division: * /
#   5. Unary plus/minus: + -
#   6. Atoms: number, string, boolean, function call, range, cell reference,
#      parenthesized expr
GRAMMAR = r"""
start: "=" expr

?expr: comparison

?comparison: concatenation
    | comparison "=" concatenation   -> eq
    | comparison "<>" concatenation  -> ne
    | comparison "<" concatenation   -> lt
    | comparison ">" concatenation   -> gt
    | comparison "<=" concatenation  -> le
    | comparison ">=" concatenation  -> ge

?concatenation: addition
    | concatenation "&" addition  -> concat

?addition: multiplication
    | addition "+" multiplication  -> add
    | addition "-" multiplication  -> sub

?multiplication: unary
    | multiplication "*" unary  -> mul
    | multiplication "/" unary  -> div

?unary: atom
    | "-" unary  -> neg
    | "+" unary  -> pos

?atom: NUMBER                        -> number
    | ESCAPED_STRING                 -> string
    | BOOL                           -> boolean
    | FUNC_NAME "(" [arglist] ")"    -> func_call
    | RANGE_REF                      -> range_ref
    | CELL_REF                       -> cell_ref
    | "(" expr ")"

arglist: expr ("," expr)*

BOOL.3: "TRUE"i | "FALSE"i
RANGE_REF.3: /[A-Za-z]{1,3}[0-9]+:[A-Za-z]{1,3}[0-9]+/
CELL_REF.2: /[A-Za-z]{1,3}[0-9]+/
FUNC_NAME: /[A-Za-z_][A-Za-z0-9_]*/

%import common.NUMBER
%import common.ESCAPED_STRING
%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start", maybe_placeholders=True)


def parse_formula(text: str) -> Tree:
    """Parse a formula string (must start with ``=``) into a Lark Tree.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = text.strip()
    if not text.startswith("="):
        raise FormulaParseError("Formula must start with '='", position=0)
    try:
        return _parser.parse(text)
    except Exception as exc:
        pos = getattr(exc, "column", None)
        raise FormulaParseError(_short_message(exc), position=pos) from exc


def _short_message(exc: Exception) -> str:
    """First line of a lark error, which is otherwise multi-line."""
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


class _RefCollector(Visitor):
    """Visitor that collects cell references from a parse tree."""

    def __init__(self) -> None:
        self.refs: list[str] = []

    def cell_ref(self, tree: Tree) -> None:
        token = tree.children[0]
        if isinstance(token, Token):
            addr = str(token).upper()
            if addr not in self.refs:
                self.refs.append(addr)

    range_ref = cell_ref


def extract_refs(tree: Tree) -> list[str]:
    """Return the distinct addresses and ranges referenced by *tree*, in source order."""
    collector = _RefCollector()
    collector.visit_topdown(tree)
    return collector.refs


def _shift_ref(ref: str, rows: int) -> str:
    """Move every corner of *ref* by *rows*; ``#REF!`` once one leaves the sheet."""
    shifted: list[str] = []
    for part in ref.split(":"):
        try:
            row, col = parse_addr(part)
        except ValueError:
            return ref
        if row + rows < 0:
            return REF_ERROR
        shifted.append(make_addr(row + rows, col))
    return ":".join(shifted)


def offset_formula_rows(formula: str, rows: int) -> str:
    """Return *formula* with every cell and range reference moved by *rows*.

    Only reference tokens are rewritten, so string literals keep their text.
    A reference moved above the first row becomes ``#REF!``.  Used when a
    sheet is written below, or read from under, a header row.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = formula.strip()
    tree = parse_formula(text)
    refs = sorted(
        tree.scan_values(lambda v: isinstance(v, Token) and v.type in ("CELL_REF", "RANGE_REF")),
        key=lambda tok: tok.start_pos,
    )
    parts: list[str] = []
    pos = 0
    for tok in refs:
        parts.append(text[pos:tok.start_pos])
        parts.append(_shift_ref(str(tok), rows))
        pos = tok.end_pos
    parts.append(text[pos:])
    return "".join(parts)
