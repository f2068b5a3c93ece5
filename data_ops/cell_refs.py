"""A1-notation helpers: column letters, cell references and ranges.

All indices are 0-based internally; row numbers in references are 1-based.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from agent.errors import CellReferenceError

_CELL_RE = re.compile(r"^\$?([A-Za-z]{1,3})\$?([0-9]+)$")
_COLUMN_RE = re.compile(r"^[A-Za-z]{1,3}$")


def column_letter(index: int) -> str:
    """0 → 'A', 25 → 'Z', 26 → 'AA'."""
    if index < 0:
        raise CellReferenceError(f"Negative column index: {index}")
    letters = ""
    while index >= 0:
        letters = chr(index % 26 + 65) + letters
        index = index // 26 - 1
    return letters


def column_index(letters: str) -> int:
    """'A' → 0, 'Z' → 25, 'AA' → 26."""
    if not _COLUMN_RE.match(letters or ""):
        raise CellReferenceError(f"Invalid column reference: {letters!r}")
    value = 0
    for ch in letters.upper():
        value = value * 26 + (ord(ch) - 64)
    return value - 1


@dataclass(frozen=True)
class CellRef:
    row: int  # 0-based
    col: int  # 0-based

    @property
    def a1(self) -> str:
        return f"{column_letter(self.col)}{self.row + 1}"

    def offset(self, rows: int = 0, cols: int = 0) -> "CellRef":
        return CellRef(self.row + rows, self.col + cols)


@dataclass(frozen=True)
class RangeRef:
    start: CellRef
    end: CellRef

    @property
    def a1(self) -> str:
        return f"{self.start.a1}:{self.end.a1}"


def parse_cell(ref: str) -> CellRef:
    m = _CELL_RE.match((ref or "").strip())
    if not m:
        raise CellReferenceError(f"Invalid cell reference: {ref!r}")
    row = int(m.group(2))
    if row < 1:
        raise CellReferenceError(f"Row numbers start at 1: {ref!r}")
    return CellRef(row=row - 1, col=column_index(m.group(1)))


def parse_range(ref: str) -> RangeRef:
    """Parse ``"A1:C10"`` (or a single cell, treated as a 1×1 range).

    The corners are normalised so ``start`` is top-left.
    """
    parts = (ref or "").strip().split(":")
    if len(parts) == 1:
        cell = parse_cell(parts[0])
        return RangeRef(cell, cell)
    if len(parts) != 2:
        raise CellReferenceError(f"Invalid range reference: {ref!r}")
    a, b = parse_cell(parts[0]), parse_cell(parts[1])
    return RangeRef(
        CellRef(min(a.row, b.row), min(a.col, b.col)),
        CellRef(max(a.row, b.row), max(a.col, b.col)),
    )


def range_a1(start: CellRef, n_rows: int, n_cols: int) -> str:
    """A1 range string covering an ``n_rows`` × ``n_cols`` block from ``start``."""
    if n_rows <= 0 or n_cols <= 0:
        return start.a1
    end = start.offset(n_rows - 1, n_cols - 1)
    if end == start:
        return start.a1
    return f"{start.a1}:{end.a1}"
