"""
Grid collaborator: the interface the pipeline uses to fetch sheet data, plus
an in-memory implementation over a list of rows.

Callers that keep the sheet client-side resolve selections themselves and send
the slice back in an analyze request; callers that hold the sheet server-side
hand an ``InMemoryGrid`` (or anything satisfying ``GridSource``) to
``DialogueController.converse``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, runtime_checkable

from agent.logging import tagged
from agent.models import DataSelectionDescriptor, StructureSummary

from .cell_refs import CellRef, column_index, parse_cell, parse_range
from .compactor import DataSlice, Grid, analyze_structure, as_grid, is_empty

logger = logging.getLogger("sheetpilot")


@runtime_checkable
class GridSource(Protocol):
    """What the dialogue pipeline needs from a sheet."""

    def resolve_range(self, ref: str) -> DataSlice: ...

    def resolve_column(self, ref: str) -> DataSlice: ...

    def resolve_row(self, number: int) -> DataSlice: ...

    def resolve_table(self, anchor: str, has_headers: bool = True) -> DataSlice: ...

    def search(self, term: str) -> list[CellRef]: ...

    def structure(self) -> StructureSummary: ...


class InMemoryGrid:
    """A single sheet held as a list of rows.

    Args:
        rows: Sheet values, row-major. Ragged rows are allowed.
        name: Sheet name, used in prompts.
    """

    def __init__(self, rows: Any, name: str = "Sheet 1"):
        self.rows: Grid = as_grid(rows)
        self.name = name

    def __repr__(self) -> str:
        return f"InMemoryGrid(name={self.name!r}, rows={len(self.rows)})"

    def _cell(self, row: int, col: int) -> Any:
        if row >= len(self.rows) or col >= len(self.rows[row]):
            return ""
        return self.rows[row][col]

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def resolve_range(self, ref: str) -> DataSlice:
        rng = parse_range(ref)
        last_row = min(rng.end.row, len(self.rows) - 1)
        block = [
            [self._cell(r, c) for c in range(rng.start.col, rng.end.col + 1)]
            for r in range(rng.start.row, last_row + 1)
        ]
        return DataSlice.at(block, rng.start)

    def resolve_column(self, ref: str) -> DataSlice:
        col = column_index(ref.strip())
        return DataSlice.at([[self._cell(r, col)] for r in range(len(self.rows))], CellRef(0, col))

    def resolve_row(self, number: int) -> DataSlice:
        idx = number - 1
        if idx < 0 or idx >= len(self.rows):
            return DataSlice(rows=[])
        return DataSlice(rows=[list(self.rows[idx])], row_numbers=[idx])

    def resolve_table(self, anchor: str, has_headers: bool = True) -> DataSlice:
        """Contiguous block from *anchor*, bounded by the first empty cell down and across.

        The header flag does not change the block; it only tells the reader
        whether the first row is labels.
        """
        start = parse_cell(anchor)
        end_row = start.row
        for r in range(start.row, len(self.rows)):
            if is_empty(self._cell(r, start.col)):
                break
            end_row = r
        end_col = start.col
        for c in range(start.col, self.width):
            if is_empty(self._cell(start.row, c)):
                break
            end_col = c
        block = [
            [self._cell(r, c) for c in range(start.col, end_col + 1)]
            for r in range(start.row, end_row + 1)
        ]
        return DataSlice.at(block, start)

    def search(self, term: str) -> list[CellRef]:
        needle = str(term).lower()
        if not needle:
            return []
        hits = []
        for r, row in enumerate(self.rows):
            for c, cell in enumerate(row):
                if not is_empty(cell) and needle in str(cell).lower():
                    hits.append(CellRef(r, c))
        return hits

    def structure(self) -> StructureSummary:
        return analyze_structure(self.rows)


def resolve_selection(grid: GridSource, selection: DataSelectionDescriptor) -> DataSlice:
    """Fetch the slice a selection descriptor names.

    A search selection resolves to every row holding a match, at full width,
    with the original row numbers kept. Unresolvable parameters resolve to an
    empty slice rather than raising.
    """
    kind = selection.selection_type
    if kind == "range" and selection.range:
        return grid.resolve_range(selection.range)
    if kind == "column" and selection.column:
        return grid.resolve_column(selection.column)
    if kind == "row" and selection.row:
        return grid.resolve_row(selection.row)
    if kind == "table" and selection.table_start_cell:
        return grid.resolve_table(selection.table_start_cell, selection.has_headers)
    if kind == "search" and selection.search_term:
        hit_rows = sorted({ref.row for ref in grid.search(selection.search_term)})
        rows: Grid = []
        for r in hit_rows:
            found = grid.resolve_row(r + 1)
            rows.append(found.rows[0] if found.rows else [])
        return DataSlice(rows=rows, row_numbers=hit_rows)
    logger.warning(
        f"[Grid] Selection {selection.describe()} is missing its parameters; nothing resolved",
        extra=tagged("grid"),
    )
    return DataSlice(rows=[])


def slice_from_request(
    data: Any,
    selection: Optional[DataSelectionDescriptor],
    column_reference: Optional[str] = None,
) -> DataSlice:
    """Place caller-resolved data back at its sheet position.

    Column selections keep their column letter; range selections keep the
    range's origin column and row. Anything else is rendered from A1.
    """
    rows = as_grid(data)
    if selection is None:
        return DataSlice(rows=rows)
    if selection.selection_type == "column":
        ref = column_reference or selection.column
        if ref:
            return DataSlice.at(rows, CellRef(0, column_index(ref.strip())))
    if selection.selection_type == "range" and selection.range:
        return DataSlice.at(rows, parse_range(selection.range).start)
    if selection.selection_type == "row" and selection.row:
        return DataSlice.at(rows, CellRef(selection.row - 1, 0))
    if selection.selection_type == "table" and selection.table_start_cell:
        return DataSlice.at(rows, parse_cell(selection.table_start_cell))
    return DataSlice(rows=rows)
