from __future__ import annotations

import pytest

from agent.errors import InvalidTransition
from agent.models import (
    CellEdit,
    ChartSpec,
    DataSelectionDescriptor,
    DialogueTurn,
    Frame,
    ToolResult,
    TurnState,
)


def test_full_turn_walks_the_state_machine() -> None:
    turn = DialogueTurn("total sales?")
    for state in (
        TurnState.SELECTING,
        TurnState.SELECTED,
        TurnState.RESOLVING,
        TurnState.ANALYZING,
        TurnState.DISPATCHING,
        TurnState.COMPLETED,
    ):
        turn.advance(state)
    assert turn.finished
    assert turn.history[0] is TurnState.IDLE


def test_illegal_transitions_raise() -> None:
    turn = DialogueTurn("x")
    with pytest.raises(InvalidTransition):
        turn.advance(TurnState.DISPATCHING)
    turn.advance(TurnState.ANALYZING)
    turn.advance(TurnState.COMPLETED)
    with pytest.raises(InvalidTransition):
        turn.advance(TurnState.ANALYZING)


def test_abort_from_any_open_state() -> None:
    turn = DialogueTurn("x")
    turn.advance(TurnState.SELECTING)
    turn.abort()
    assert turn.state is TurnState.ABORTED
    assert turn.status == "none"
    turn.abort()
    assert turn.state is TurnState.ABORTED


def test_descriptor_wire_shape() -> None:
    descriptor = DataSelectionDescriptor(
        selection_type="table", analysis_type="comparison", table_start_cell="B2", has_headers=False
    )
    wire = descriptor.to_wire()
    assert wire == {
        "analysisType": "comparison",
        "dataSelection": {"selectionType": "table", "tableStartCell": "B2", "hasHeaders": False},
        "explanation": "",
        "fallback": False,
        "version": 1,
    }
    assert DataSelectionDescriptor.from_wire(wire) == descriptor


def test_descriptor_rejects_unknown_kind() -> None:
    with pytest.raises(ValueError):
        DataSelectionDescriptor.from_wire({"dataSelection": {"selectionType": "diagonal"}})


def test_default_descriptor_is_marked_fallback() -> None:
    d = DataSelectionDescriptor.default()
    assert (d.selection_type, d.range, d.analysis_type, d.fallback) == ("range", "A1:Z10", "summary", True)


def test_edit_summary_is_appended_once() -> None:
    result = ToolResult(response="Done.", cell_edits=[CellEdit("B2", "1"), CellEdit("B3", "2")])
    result.ensure_edit_summary()
    assert result.response == "Done.\n\n2 cells updated (B2–B3)."
    result.ensure_edit_summary()
    assert result.response.count("updated") == 1

    mentioned = ToolResult(response="Wrote B2.", cell_edits=[CellEdit("B2", "1")]).ensure_edit_summary()
    assert mentioned.response == "Wrote B2."


def test_apply_sets_pending_only_for_proposals() -> None:
    turn = DialogueTurn("x")
    turn.apply(ToolResult(response="just text"))
    assert turn.status == "completed"
    turn.apply(ToolResult(response="chart", chart=ChartSpec("pie", "Share", [["k", "v"], ["a", 1]])))
    assert turn.status == "pending"


def test_frame_wire_uses_client_names() -> None:
    frame = Frame.from_result(
        ToolResult(
            response="ok",
            cell_edits=[CellEdit("A1", "=1+1", sheet="Data")],
            chart=ChartSpec("line", "Trend", [["x", "y"], [1, 2]]),
        )
    )
    assert frame.to_wire() == {
        "streaming": False,
        "response": "ok",
        "updates": [{"target": "A1", "formula": "=1+1", "sheetName": "Data"}],
        "chartData": {"type": "line", "options": {"title": "Trend", "data": [["x", "y"], [1, 2]]}},
    }
    assert Frame.text("par").to_wire() == {"streaming": True, "response": "par"}
    assert Frame.failure("boom").to_wire() == {"streaming": False, "error": "boom"}
