"""Cell address helpers.

Formulas address cells by spreadsheet coordinates: a column letter sequence
(bijective base-26, ``A`` is column 0, ``Z`` is 25, ``AA`` is 26) followed
by a 1-based row number.  Positions refer to the visual order of
``sheet.columns`` and ``sheet.rows``, not to entity ids.
"""

from __future__ import annotations

import re
from string import ascii_uppercase

_ADDR_RE = re.compile(r"^([A-Z]{1,3})([1-9]\d*)$")


def col_letter_to_index(letters: str) -> int:
    """``"A"`` -> 0, ``"AA"`` -> 26."""
    number = 0
    for ch in letters.upper():
        number = number * 26 + ascii_uppercase.index(ch) + 1
    return number - 1


def index_to_col_letter(idx: int) -> str:
    """0 -> ``"A"``, 26 -> ``"AA"``.  Default column names use this too."""
    if idx < 0:
        raise ValueError(f"Column index must be >= 0, got {idx}")
    letters = []
    n = idx + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters.append(ascii_uppercase[rem])
    return "".join(reversed(letters))


def parse_addr(addr: str) -> tuple[int, int]:
    """Split an address such as ``"B3"`` into 0-based ``(row, col)``.

    Raises ValueError for anything that is not a plain A1-style address.
    """
    m = _ADDR_RE.match(addr.strip().upper())
    if m is None:
        raise ValueError(f"Invalid cell address: {addr!r}")
    letters, digits = m.groups()
    return int(digits) - 1, col_letter_to_index(letters)


def make_addr(row: int, col: int) -> str:
    return index_to_col_letter(col) + str(row + 1)
