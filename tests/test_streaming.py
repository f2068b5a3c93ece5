from __future__ import annotations

import json

import pytest

from agent.models import CellEdit, Frame
from api.streaming import FrameChannel, encode_frame


@pytest.mark.asyncio
async def test_frames_arrive_in_emission_order() -> None:
    channel = FrameChannel()
    channel.emit(Frame.text("Sales "))
    channel.emit(Frame.text("rose."))
    assert not channel.terminal_sent
    channel.emit(Frame(response="Sales rose.", updates=[CellEdit("C1", "=SUM(B:B)")]))
    assert channel.terminal_sent
    channel.close()

    frames = [f async for f in channel.frames()]
    assert [f.streaming for f in frames] == [True, True, False]
    assert frames[-1].updates[0].target == "C1"


@pytest.mark.asyncio
async def test_frames_after_close_are_dropped() -> None:
    channel = FrameChannel()
    channel.emit(Frame.text("partial"))
    channel.close()
    channel.close()
    channel.emit(Frame.failure("too late"))

    frames = [f async for f in channel.frames()]
    assert [f.response for f in frames] == ["partial"]
    assert channel.closed
    assert not channel.terminal_sent


def test_encode_frame_is_one_json_object() -> None:
    event = encode_frame(Frame(response="line one\nline two"))
    assert set(event) == {"data"}
    assert "\n" not in event["data"]
    assert json.loads(event["data"]) == {"streaming": False, "response": "line one\nline two"}
