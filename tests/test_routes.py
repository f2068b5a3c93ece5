from __future__ import annotations

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from agent.cancellation import CancellationToken
from agent.core import DialogueController
from agent.errors import UpstreamServiceError
from agent.llm.base import LLMResponse
from agent.models import DataSelectionDescriptor, DialogueRequest, Frame
from api.app import create_app
from api.routes import get_controller, stream_turn

from .conftest import FakeAdapter, FakeSandbox, tool_call


def read_frames(body: str) -> list[dict]:
    """Decode the ``data:`` lines of an SSE body."""
    return [
        json.loads(line[len("data:"):].strip())
        for line in body.splitlines()
        if line.startswith("data:")
    ]


@pytest.fixture
def client_with():
    """TestClient whose controller talks to the given fake adapter."""

    def _make(adapter: FakeAdapter) -> TestClient:
        app = create_app()
        ctl = DialogueController(adapter, model="smart-model")
        app.dependency_overrides[get_controller] = lambda: ctl
        return TestClient(app)

    return _make


def test_health(client_with) -> None:
    resp = client_with(FakeAdapter()).get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert isinstance(body["api_key_configured"], bool)


def test_select_phase_ends_with_descriptor_frame(client_with) -> None:
    adapter = FakeAdapter([LLMResponse(tool_calls=[tool_call("select_data_for_analysis", {
        "analysisType": "comparison",
        "dataSelection": {"selectionType": "range", "range": "A1:B3"},
        "explanation": "Both columns.",
    })])])
    resp = client_with(adapter).post("/api/llm", json={
        "message": "compare regions",
        "spreadsheetData": [["Region", "Sales"], ["North", 10], ["South", 7]],
        "activeSheetName": "Data",
        "sheetsInfo": [{"id": "1", "name": "Data"}],
        "mode": "select",
    })
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    frames = read_frames(resp.text)
    assert [f["streaming"] for f in frames] == [False]
    selection = frames[0]["dataSelectionResult"]
    assert selection["analysisType"] == "comparison"
    assert selection["dataSelection"] == {"selectionType": "range", "range": "A1:B3"}


def test_analyze_phase_streams_before_terminal_frame(client_with) -> None:
    adapter = FakeAdapter([
        LLMResponse(text="North sold more."),
        LLMResponse(tool_calls=[tool_call("create_chart", {
            "type": "bar", "title": "Sales by region", "data": [["Region", "Sales"], ["North", 10]],
        })]),
    ])
    resp = client_with(adapter).post("/api/llm", json={
        "message": "chart it",
        "spreadsheetData": [["Region", "Sales"], ["North", 10]],
        "mode": "analyze",
        "dataSelectionResult": {
            "analysisType": "comparison",
            "dataSelection": {"selectionType": "range", "range": "A1:B2"},
            "explanation": "",
        },
    })
    frames = read_frames(resp.text)
    assert all(f["streaming"] for f in frames[:-1])
    assert len(frames) > 1
    assert frames[-1]["streaming"] is False
    assert frames[-1]["chartData"]["options"]["title"] == "Sales by region"
    assert "".join(f["response"] for f in frames[:-1]).strip() == "North sold more."


def test_upstream_failure_is_a_single_error_frame(client_with) -> None:
    adapter = FakeAdapter([UpstreamServiceError("rate limited", provider="fake")])
    resp = client_with(adapter).post("/api/llm", json={"message": "hi", "spreadsheetData": [["a"]]})
    frames = read_frames(resp.text)
    assert len(frames) == 1
    assert frames[0]["streaming"] is False
    assert frames[0]["error"].startswith("The language model service failed")


def test_unreadable_selection_is_rejected(client_with) -> None:
    adapter = FakeAdapter()
    resp = client_with(adapter).post("/api/llm", json={
        "message": "go",
        "mode": "analyze",
        "dataSelectionResult": {"dataSelection": {"selectionType": "diagonal"}},
    })
    assert resp.status_code == 422
    assert adapter.calls == []


def test_empty_message_is_rejected(client_with) -> None:
    resp = client_with(FakeAdapter()).post("/api/llm", json={"message": ""})
    assert resp.status_code == 422


# ---- Disconnects ----


class ClientRequest:
    """Stands in for the Starlette request; reports a disconnect once ``leave()`` is called."""

    def __init__(self) -> None:
        self.gone = False

    def leave(self) -> None:
        self.gone = True

    async def is_disconnected(self) -> bool:
        return self.gone


class BlockingSandbox(FakeSandbox):
    """Keeps running the analysis until the turn is cancelled."""

    def __init__(self, started: asyncio.Event) -> None:
        super().__init__()
        self.started = started

    async def execute(self, code: str, csv_data: str, timeout=None, token=None):
        self.executed.append((code, csv_data))
        self.started.set()
        await token.wait()
        token.raise_if_cancelled()


def code_turn(recorder, started: asyncio.Event) -> tuple[DialogueController, DialogueRequest]:
    adapter = FakeAdapter([
        LLMResponse(text="Crunching the numbers."),
        LLMResponse(tool_calls=[tool_call("execute_python_code", {
            "analysis_goal": "Total sales",
            "suggested_code": "print(df['Sales'].sum())",
            "start_cell": "D1",
        })]),
    ])
    ctl = DialogueController(
        adapter,
        model="smart-model",
        sandbox_factory=lambda: BlockingSandbox(started),
        sandbox_observer=recorder,
    )
    selection = DataSelectionDescriptor(
        selection_type="column", column="B", analysis_type="summary", explanation="Sales column."
    )
    dialogue = DialogueRequest("total sales?", mode="analyze", rows=[["Sales"], [10], [7]], selection=selection)
    return ctl, dialogue


@pytest.mark.asyncio
async def test_client_disconnect_cancels_turn_and_releases_sandbox(limits, recorder) -> None:
    limits("transport.disconnect_poll_seconds", 0.01)
    started = asyncio.Event()
    ctl, dialogue = code_turn(recorder, started)
    client = ClientRequest()
    token = CancellationToken()

    async def leave_once_running() -> None:
        await started.wait()
        client.leave()

    leaver = asyncio.create_task(leave_once_running())
    events = [e async for e in stream_turn(ctl, dialogue, client, token)]
    await leaver

    frames = [json.loads(e["data"]) for e in events]
    assert frames
    assert all(f["streaming"] for f in frames)
    assert token.cancelled
    assert token.reason == "client disconnected"
    assert recorder.count("created") == recorder.count("destroyed") == 1


@pytest.mark.asyncio
async def test_closing_the_stream_early_cancels_turn_and_releases_sandbox(limits, recorder) -> None:
    limits("transport.disconnect_poll_seconds", 0.01)
    started = asyncio.Event()
    ctl, dialogue = code_turn(recorder, started)
    token = CancellationToken()

    events = stream_turn(ctl, dialogue, ClientRequest(), token)
    first = json.loads((await events.__anext__())["data"])
    await asyncio.wait_for(started.wait(), timeout=5)
    await events.aclose()

    assert first["streaming"] is True
    assert token.reason == "stream closed"
    assert recorder.count("created") == recorder.count("destroyed") == 1


class SilentController:
    """Returns without emitting a terminal frame."""

    async def run(self, dialogue, token, emit) -> None:
        emit(Frame.text("Thinking"))


@pytest.mark.asyncio
async def test_turn_without_terminal_frame_gets_an_error_frame(limits) -> None:
    limits("transport.disconnect_poll_seconds", 0.01)
    token = CancellationToken()
    events = [e async for e in stream_turn(SilentController(), DialogueRequest("hi"), ClientRequest(), token)]

    frames = [json.loads(e["data"]) for e in events]
    assert [f["streaming"] for f in frames] == [True, False]
    assert frames[-1]["error"] == "The turn ended without a result."
    assert not token.cancelled
