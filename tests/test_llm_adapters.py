from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from agent.cancellation import CancellationToken
from agent.errors import TurnCancelled
from agent.llm.openai_adapter import OpenAIAdapter


def _chunk(content=None, tool_calls=None, usage=None):
    choices = [] if content is None and tool_calls is None else [
        SimpleNamespace(delta=SimpleNamespace(content=content, tool_calls=tool_calls))
    ]
    return SimpleNamespace(choices=choices, usage=usage)


def _call_delta(index, *, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeStream:
    """Async chat-completions stream; ``hang`` blocks after the scripted chunks."""

    def __init__(self, chunks, *, hang: bool = False) -> None:
        self.chunks = list(chunks)
        self.hang = hang
        self.closed = False
        self.delivered = asyncio.Event()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        self.delivered.set()
        if self.hang:
            await asyncio.Event().wait()


def adapter_with(stream: FakeStream) -> tuple[OpenAIAdapter, list[dict]]:
    requests: list[dict] = []

    async def create(**request):
        requests.append(request)
        return stream

    adapter = OpenAIAdapter(api_key="test-key")
    adapter._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return adapter, requests


@pytest.mark.asyncio
async def test_streamed_reply_reassembles_text_and_tool_calls() -> None:
    stream = FakeStream([
        _chunk("Total "),
        _chunk("is 17."),
        _chunk(tool_calls=[_call_delta(0, id="call_1", name="set_spreadsheet_cells", arguments='{"cellUp')]),
        _chunk(tool_calls=[_call_delta(0, arguments='dates": []}')]),
        _chunk(usage=SimpleNamespace(prompt_tokens=12, completion_tokens=5, prompt_tokens_details=None)),
    ])
    adapter, requests = adapter_with(stream)
    pieces: list[str] = []

    response = await adapter.complete(
        [{"role": "user", "content": "sum?"}], model="gpt-test", system_prompt="be brief", on_chunk=pieces.append
    )

    assert pieces == ["Total ", "is 17."]
    assert response.text == "Total is 17."
    [call] = response.tool_calls
    assert (call.id, call.name, call.arguments) == ("call_1", "set_spreadsheet_cells", '{"cellUpdates": []}')
    assert (response.usage.input_tokens, response.usage.output_tokens) == (12, 5)
    assert requests[0]["stream"] is True
    assert requests[0]["messages"][0] == {"role": "system", "content": "be brief"}
    assert stream.closed


@pytest.mark.asyncio
async def test_cancelled_stream_is_closed() -> None:
    stream = FakeStream([_chunk("Partial ")], hang=True)
    adapter, _ = adapter_with(stream)
    token = CancellationToken()
    pieces: list[str] = []

    async def disconnect() -> None:
        await stream.delivered.wait()
        token.cancel("client disconnected")

    canceller = asyncio.create_task(disconnect())
    with pytest.raises(TurnCancelled):
        await token.guard(
            adapter.complete([{"role": "user", "content": "sum?"}], model="gpt-test", on_chunk=pieces.append)
        )
    await canceller

    assert pieces == ["Partial "]
    assert stream.closed
