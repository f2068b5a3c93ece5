from __future__ import annotations

import re

from agent.models import DataSelectionDescriptor, StructureSummary
from data_ops.cell_refs import CellRef
from data_ops.compactor import (
    DataSlice,
    analyze_structure,
    compact,
    format_cells,
    infer_headers,
    render_structure,
    sample_row_indices,
    to_csv,
)
from data_ops.grid import slice_from_request

TAG = re.compile(r"<([A-Z]+[0-9]+)>")


def _sheet(n_rows: int) -> list[list]:
    rows: list[list] = [["Name", "Value", "Score"]]
    rows += [[f"item{i}", i, i * 1.5] for i in range(1, n_rows)]
    return rows


def test_small_grid_is_rendered_in_full() -> None:
    rendered = compact(DataSlice(rows=_sheet(10)))

    refs = TAG.findall(rendered)
    assert len(refs) == 30
    assert refs[:3] == ["A1", "B1", "C1"]
    assert refs[-1] == "C10"
    assert "omitted" not in rendered
    assert "<A1>Name</A1><B1>Value</B1><C1>Score</C1>" in rendered


def test_large_grid_is_sampled_with_omitted_count() -> None:
    rows = _sheet(1000)
    rendered = compact(DataSlice(rows=rows))

    assert rendered.startswith("LARGE SPREADSHEET SUMMARY:")
    assert "Total rows: 1000" in rendered
    assert "First row contains headers" in rendered
    assert "Column headers: A:Name, B:Value, C:Score" in rendered

    sample = rendered.split("REPRESENTATIVE SAMPLE", 1)[1]
    sampled_rows = sorted({int(ref[1:]) for ref in TAG.findall(sample)})
    # Header, first two data rows, middle rows, last two rows
    assert sampled_rows[:3] == [1, 2, 3]
    assert sampled_rows[-2:] == [999, 1000]
    assert len(sampled_rows) == 11
    assert f"[... {1000 - len(sampled_rows)} rows omitted ...]" in rendered


def test_sample_indices_are_evenly_spaced() -> None:
    picked = sample_row_indices(1000, has_headers=True, max_rows=10)
    assert picked[0] == 0
    middle = picked[3:-2]
    gaps = [b - a for a, b in zip(middle, middle[1:])]
    assert len(middle) == 6
    assert max(gaps) - min(gaps) <= 1


def test_small_sample_keeps_every_row() -> None:
    assert sample_row_indices(5, has_headers=False, max_rows=10) == [0, 1, 2, 3, 4]


def test_compaction_is_deterministic() -> None:
    rows = _sheet(1000)
    selection = DataSelectionDescriptor(selection_type="range", range="B5:C1004")
    first = compact(slice_from_request(rows, selection))
    second = compact(slice_from_request(rows, selection))
    assert first == second
    assert compact(DataSlice(rows=_sheet(10))) == compact(DataSlice(rows=_sheet(10)))


def test_column_selection_keeps_its_letter() -> None:
    column = [["Revenue"], [100], [250], [75]]
    selection = DataSelectionDescriptor(selection_type="column", column="F")
    rendered = compact(slice_from_request(column, selection))

    assert TAG.findall(rendered) == ["F1", "F2", "F3", "F4"]
    assert "<A1>" not in rendered


def test_range_rendering_keeps_origin() -> None:
    block = [[1, 2], [3, 4]]
    rendered = format_cells(DataSlice.at(block, CellRef(row=4, col=2)))
    assert rendered == "<C5>1</C5><D5>2</D5>\n<C6>3</C6><D6>4</D6>"


def test_empty_cells_and_rows_are_elided() -> None:
    rows = [["a", "", "c", "", ""], ["", "", "", ""], [None, 2.0, True]]
    assert format_cells(DataSlice(rows=rows)) == "<A1>a</A1><C1>c</C1>\n<B3>2</B3><C3>TRUE</C3>"


def test_empty_selection() -> None:
    assert compact(DataSlice(rows=[])) == "The selected data is empty."
    assert compact(DataSlice(rows=[["", None]])) == "The selected data is empty."


def test_header_detection() -> None:
    assert infer_headers([["Date", "Amount"], ["2024-01-01", 5]])
    assert not infer_headers([[1, 2, 3], [4, 5, 6]])
    assert not infer_headers([["only one row"]])


def test_large_grid_without_headers_lists_column_types() -> None:
    rows = [[i, i * 2, f"x{i}"] for i in range(300)]
    rendered = compact(DataSlice(rows=rows))
    assert "No headers detected" in rendered
    assert "Column A: number" in rendered
    assert "Column C: string" in rendered


def test_structure_rendering() -> None:
    rows = [["Region", "Sales"], ["North", 10], ["South", 20], ["", ""], ["East", 5]]
    summary = analyze_structure(rows)

    assert summary.row_count == 5
    assert summary.has_headers
    assert [t.range for t in summary.tables] == ["A2:B3", "A5:B5"]
    text = render_structure(summary)
    assert text.startswith("Spreadsheet Structure Information:")
    assert "- Region (index: 0)" in text
    assert "Has Headers: true" in text


def test_structure_from_wire_renders_the_same() -> None:
    summary = analyze_structure([["a", "b"], [1, 2]])
    assert render_structure(StructureSummary.from_wire(summary.to_wire())) == render_structure(summary)


def test_csv_projection_pads_ragged_rows() -> None:
    assert to_csv([["a", "b", "c"], [1]]) == "a,b,c\n1,,\n"
    assert to_csv([]) == ""
