from __future__ import annotations

import pytest

from agent.errors import CellReferenceError
from agent.models import DataSelectionDescriptor
from data_ops.cell_refs import CellRef
from data_ops.compactor import format_cells
from data_ops.grid import GridSource, InMemoryGrid, resolve_selection, slice_from_request

SHEET = [
    ["Region", "Q1", "Q2", "", "Notes"],
    ["North", 10, 12, "", "steady"],
    ["South", 7, 9, "", "Growth in south"],
    ["", "", "", "", ""],
    ["East", 3, 4, "", ""],
]


@pytest.fixture
def grid() -> InMemoryGrid:
    return InMemoryGrid(SHEET, name="Sales")


def test_in_memory_grid_satisfies_protocol(grid: InMemoryGrid) -> None:
    assert isinstance(grid, GridSource)


def test_resolve_range_keeps_origin(grid: InMemoryGrid) -> None:
    found = grid.resolve_range("B2:C3")
    assert found.rows == [[10, 12], [7, 9]]
    assert format_cells(found) == "<B2>10</B2><C2>12</C2>\n<B3>7</B3><C3>9</C3>"


def test_resolve_range_past_the_last_row(grid: InMemoryGrid) -> None:
    found = grid.resolve_range("A5:B50")
    assert found.rows == [["East", 3]]
    assert found.row_numbers == [4]


def test_resolve_column(grid: InMemoryGrid) -> None:
    found = grid.resolve_column("e")
    assert [r[0] for r in found.rows] == ["Notes", "steady", "Growth in south", "", ""]
    assert format_cells(found).splitlines()[0] == "<E1>Notes</E1>"


def test_resolve_row_out_of_bounds(grid: InMemoryGrid) -> None:
    assert grid.resolve_row(2).rows == [["North", 10, 12, "", "steady"]]
    assert grid.resolve_row(99).rows == []


def test_resolve_table_stops_at_first_empty_cell(grid: InMemoryGrid) -> None:
    found = grid.resolve_table("A1")
    assert found.rows == [["Region", "Q1", "Q2"], ["North", 10, 12], ["South", 7, 9]]


def test_search_is_case_insensitive(grid: InMemoryGrid) -> None:
    assert grid.search("SOUTH") == [CellRef(2, 0), CellRef(2, 4)]
    assert grid.search("") == []


def test_search_selection_keeps_row_numbers(grid: InMemoryGrid) -> None:
    selection = DataSelectionDescriptor(selection_type="search", search_term="east")
    found = resolve_selection(grid, selection)
    assert found.row_numbers == [4]
    assert format_cells(found) == "<A5>East</A5><B5>3</B5><C5>4</C5>"


def test_selection_without_parameters_resolves_to_nothing(grid: InMemoryGrid) -> None:
    assert resolve_selection(grid, DataSelectionDescriptor(selection_type="range")).rows == []


def test_default_selection_resolves_against_small_sheet(grid: InMemoryGrid) -> None:
    found = resolve_selection(grid, DataSelectionDescriptor.default())
    assert len(found.rows) == 5
    assert len(found.rows[0]) == 26


def test_slice_from_request_places_caller_data() -> None:
    column = slice_from_request(["Qty", 4, 5], DataSelectionDescriptor(selection_type="column", column="F"))
    assert format_cells(column) == "<F1>Qty</F1>\n<F2>4</F2>\n<F3>5</F3>"

    by_reference = slice_from_request(
        [["Qty"], [4]], DataSelectionDescriptor(selection_type="column", column="A"), column_reference="AB"
    )
    assert format_cells(by_reference) == "<AB1>Qty</AB1>\n<AB2>4</AB2>"

    row = slice_from_request([[1, 2]], DataSelectionDescriptor(selection_type="row", row=7))
    assert format_cells(row) == "<A7>1</A7><B7>2</B7>"

    unplaced = slice_from_request([[1]], None)
    assert format_cells(unplaced) == "<A1>1</A1>"


def test_slice_from_request_rejects_bad_reference() -> None:
    with pytest.raises(CellReferenceError):
        slice_from_request([[1]], DataSelectionDescriptor(selection_type="range", range="nonsense"))
