"""
Context compaction: render sheet data for a model prompt within a size budget.

Three renderings are produced here:

- full: every non-empty cell tagged with its A1 reference (``<B3>42</B3>``),
  empty rows and trailing empty cells elided;
- sampled: when the slice holds more non-empty cells than the budget allows,
  a summary block plus a representative sample of rows (header, first two,
  evenly spaced middle rows, last two), still tagged with the original
  references, and a count of omitted rows;
- structure-only: the phase-1 view built from a ``StructureSummary``.

All functions are pure: the same input always renders to the same string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from agent.models import ColumnInfo, StructureSummary, TableInfo
from agent.turn_limits import get_limit

from .cell_refs import CellRef, column_letter, range_a1

Grid = list[list[Any]]


def is_empty(cell: Any) -> bool:
    return cell is None or cell == "" or (isinstance(cell, float) and np.isnan(cell))


def as_grid(data: Any) -> Grid:
    """Coerce caller data into a list of row lists.

    A flat list of scalars (a single resolved column) becomes one value per row.
    """
    if not data:
        return []
    rows: Grid = []
    for row in data:
        if isinstance(row, (list, tuple)):
            rows.append(list(row))
        else:
            rows.append([row])
    return rows


@dataclass
class DataSlice:
    """A block of cells plus where it sits in the sheet.

    ``row_numbers[i]`` is the 0-based sheet row of ``rows[i]``; ``col_offset``
    is the 0-based sheet column of each row's first cell.
    """
    rows: Grid
    row_numbers: list[int] = field(default_factory=list)
    col_offset: int = 0

    def __post_init__(self) -> None:
        if not self.row_numbers:
            self.row_numbers = list(range(len(self.rows)))
        if len(self.row_numbers) != len(self.rows):
            raise ValueError("row_numbers must align with rows")

    @classmethod
    def at(cls, rows: Grid, origin: CellRef) -> "DataSlice":
        return cls(
            rows=rows,
            row_numbers=[origin.row + i for i in range(len(rows))],
            col_offset=origin.col,
        )


# ---------------------------------------------------------------------------
# Full rendering
# ---------------------------------------------------------------------------

def _render_row(row: Sequence[Any], sheet_row: int, col_offset: int) -> str:
    last = len(row) - 1
    while last >= 0 and is_empty(row[last]):
        last -= 1
    parts = []
    for i in range(last + 1):
        cell = row[i]
        if is_empty(cell):
            continue
        ref = f"{column_letter(col_offset + i)}{sheet_row + 1}"
        parts.append(f"<{ref}>{_cell_text(cell)}</{ref}>")
    return "".join(parts)


def _cell_text(cell: Any) -> str:
    if isinstance(cell, bool):
        return "TRUE" if cell else "FALSE"
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell)


def format_cells(data_slice: DataSlice, *, max_cols: Optional[int] = None) -> str:
    """Tag every non-empty cell with its reference, one line per non-empty row."""
    lines = []
    for row, sheet_row in zip(data_slice.rows, data_slice.row_numbers):
        if max_cols is not None:
            row = row[:max_cols]
        rendered = _render_row(row, sheet_row, data_slice.col_offset)
        if rendered:
            lines.append(rendered)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Statistics and sampling
# ---------------------------------------------------------------------------

def _type_name(cell: Any) -> str:
    if is_empty(cell):
        return "empty"
    if isinstance(cell, bool):
        return "boolean"
    if isinstance(cell, (int, float, np.number)):
        return "number"
    return "string"


def count_non_empty(rows: Grid) -> int:
    return sum(1 for row in rows for cell in row if not is_empty(cell))


def infer_headers(rows: Grid) -> bool:
    """Heuristic: does the first row look like a header row?

    True when more than 70 % of the first row's cells are non-empty strings,
    or more than 50 % differ in type from the cell below.
    """
    if len(rows) < 2:
        return False
    first, second = rows[0], rows[1]
    if not first:
        return False
    string_count = 0
    different_types = 0
    for i in range(min(len(first), len(second))):
        a, b = first[i], second[i]
        if isinstance(a, str) and a != "":
            string_count += 1
        if _type_name(a) != _type_name(b):
            different_types += 1
    return string_count > len(first) * 0.7 or different_types > len(first) * 0.5


@dataclass
class SheetStats:
    row_count: int
    col_count: int
    non_empty: int
    has_headers: bool
    column_names: Optional[list[str]]
    column_types: dict[int, list[str]]


def sheet_stats(rows: Grid) -> SheetStats:
    has_headers = infer_headers(rows)
    col_count = max((len(r) for r in rows), default=0)
    column_types: dict[int, list[str]] = {}
    for col in range(col_count):
        seen: list[str] = []
        for row in rows[1 if has_headers else 0:]:
            if col < len(row) and not is_empty(row[col]):
                t = _type_name(row[col])
                if t not in seen:
                    seen.append(t)
        column_types[col] = seen
    names = None
    if has_headers:
        names = ["" if is_empty(h) else _cell_text(h) for h in rows[0]]
    return SheetStats(
        row_count=len(rows),
        col_count=col_count,
        non_empty=count_non_empty(rows),
        has_headers=has_headers,
        column_names=names,
        column_types=column_types,
    )


def sample_row_indices(n_rows: int, has_headers: bool, max_rows: int) -> list[int]:
    """Positions of the rows kept in a representative sample.

    Header (if any), first two data rows, evenly spaced middle rows and the
    last two rows; at most ``max_rows`` data rows.
    """
    start = 1 if has_headers else 0
    data = list(range(start, n_rows))
    picked: list[int] = [0] if has_headers and n_rows else []
    if len(data) <= max_rows:
        return picked + data
    head, tail = data[:2], data[-2:]
    middle_pool = data[2:-2]
    n_middle = max(max_rows - 4, 0)
    middle: list[int] = []
    if n_middle and middle_pool:
        spots = np.linspace(0, len(middle_pool) - 1, num=n_middle + 2)[1:-1]
        middle = sorted({middle_pool[int(round(s))] for s in spots})
    return picked + head + middle + tail


# ---------------------------------------------------------------------------
# Compaction
# ---------------------------------------------------------------------------

def is_too_large(rows: Grid, limit: Optional[int] = None) -> bool:
    threshold = limit if limit is not None else get_limit("context.max_cells_full")
    return count_non_empty(rows) > threshold


def _column_section(stats: SheetStats, col_offset: int) -> str:
    if stats.has_headers and stats.column_names:
        names = ", ".join(
            f"{column_letter(col_offset + i)}:{name}" for i, name in enumerate(stats.column_names)
        )
        return f"Column headers: {names}\n"
    lines = ["Column data types:"]
    for col, types in stats.column_types.items():
        if types:
            lines.append(f"Column {column_letter(col_offset + col)}: {'/'.join(types)}")
    return "\n".join(lines) + "\n"


def compact(data_slice: DataSlice) -> str:
    """Render a slice in full, or as a summary plus sample when it is too large."""
    rows = data_slice.rows
    if not rows or count_non_empty(rows) == 0:
        return "The selected data is empty."
    if not is_too_large(rows):
        return format_cells(data_slice)

    stats = sheet_stats(rows)
    max_rows = get_limit("context.max_sample_rows")
    max_cols = get_limit("context.max_sample_cols")
    picked = sample_row_indices(len(rows), stats.has_headers, max_rows)
    sample = DataSlice(
        rows=[rows[i] for i in picked],
        row_numbers=[data_slice.row_numbers[i] for i in picked],
        col_offset=data_slice.col_offset,
    )
    omitted = len(rows) - len(picked)
    n_cols = min(stats.col_count, max_cols)

    summary = (
        "LARGE SPREADSHEET SUMMARY:\n"
        f"Total rows: {stats.row_count}\n"
        f"Total columns: {stats.col_count}\n"
        f"Non-empty cells: {stats.non_empty}\n"
        f"{'First row contains headers' if stats.has_headers else 'No headers detected'}\n"
        "\n"
        f"{_column_section(stats, data_slice.col_offset)}"
        "\n"
        f"REPRESENTATIVE SAMPLE ({len(picked)} rows x {n_cols} columns):\n"
    )
    body = format_cells(sample, max_cols=max_cols)
    return f"{summary}{body}\n[... {omitted} rows omitted ...]"


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def analyze_structure(rows: Grid) -> StructureSummary:
    """Row/column counts, header guess, contiguous tables and column labels."""
    if not rows:
        return StructureSummary(row_count=0, col_count=0, has_headers=False)
    col_count = max((len(r) for r in rows), default=0)
    has_headers = len(rows) > 1 and any(isinstance(c, str) and c != "" for c in rows[0])

    if has_headers:
        header = list(rows[0]) + [""] * (col_count - len(rows[0]))
        columns = [
            ColumnInfo(label=_cell_text(h) if not is_empty(h) else column_letter(i), index=i)
            for i, h in enumerate(header)
        ]
    else:
        columns = [ColumnInfo(label=column_letter(i), index=i) for i in range(col_count)]
    headers = [c.label for c in columns]

    tables: list[TableInfo] = []
    table_start: Optional[int] = None
    for r in range(1 if has_headers else 0, len(rows) + 1):
        blank = r == len(rows) or all(is_empty(c) for c in rows[r])
        if table_start is None and not blank:
            table_start = r
        elif table_start is not None and blank:
            tables.append(TableInfo(
                range=range_a1(CellRef(table_start, 0), r - table_start, max(col_count, 1)),
                headers=headers,
            ))
            table_start = None

    return StructureSummary(
        row_count=len(rows),
        col_count=col_count,
        has_headers=has_headers,
        tables=tables,
        columns=columns,
    )


def render_structure(summary: StructureSummary) -> str:
    tables = "\n".join(
        f"- Range: {t.range}, Headers: {', '.join(t.headers)}" for t in summary.tables
    )
    columns = "\n".join(f"- {c.label} (index: {c.index})" for c in summary.columns)
    return (
        "Spreadsheet Structure Information:\n"
        f"Row Count: {summary.row_count}\n"
        f"Column Count: {summary.col_count}\n"
        f"Has Headers: {'true' if summary.has_headers else 'false'}\n"
        "\n"
        "Detected Tables:\n"
        f"{tables or '- none'}\n"
        "\n"
        "Columns:\n"
        f"{columns or '- none'}"
    )


def render_preview(rows: Grid, n_rows: Optional[int] = None) -> str:
    """First few rows of the sheet, tagged, for the selection prompt."""
    limit = n_rows if n_rows is not None else get_limit("context.structure_sample_rows")
    return format_cells(DataSlice(rows=rows[:limit]), max_cols=get_limit("context.max_sample_cols"))


# ---------------------------------------------------------------------------
# CSV projection
# ---------------------------------------------------------------------------

def to_csv(rows: Grid) -> str:
    """CSV text of a grid (first row as written; the loader infers headers)."""
    if not rows:
        return ""
    width = max(len(r) for r in rows)
    padded = [list(r) + [None] * (width - len(r)) for r in rows]
    frame = pd.DataFrame(padded)
    return frame.to_csv(index=False, header=False)
