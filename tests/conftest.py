from __future__ import annotations

import json
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from agent import turn_limits
from agent.cancellation import CancellationToken
from agent.llm.base import LLMAdapter, LLMResponse, ToolCall
from agent.models import Frame
from agent.tool_handlers.context import ToolContext
from sandbox.runtime import ExecutionResult, SandboxState

Reply = LLMResponse | BaseException | Callable[[], Awaitable[LLMResponse]]


def tool_call(name: str, args: Any) -> ToolCall:
    """A model tool call; dict arguments are JSON-encoded, strings passed through."""
    raw = args if isinstance(args, str) else json.dumps(args)
    return ToolCall(name=name, arguments=raw, id=f"call_{uuid.uuid4().hex[:6]}")


class FakeAdapter(LLMAdapter):
    """Replays scripted replies in order; records every call."""

    provider = "fake"

    def __init__(self, replies: list[Reply] | None = None, *, supports_forced_tool: bool = True) -> None:
        self.replies: list[Reply] = list(replies or [])
        self.calls: list[dict[str, Any]] = []
        self.supports_forced_tool = supports_forced_tool

    async def complete(
        self,
        messages,
        *,
        model,
        system_prompt=None,
        tools=None,
        forced_tool=None,
        on_chunk=None,
        temperature=None,
        max_output_tokens=None,
    ) -> LLMResponse:
        self.calls.append({
            "messages": messages,
            "model": model,
            "system_prompt": system_prompt,
            "tools": [t.name for t in tools] if tools else [],
            "forced_tool": forced_tool,
            "streaming": on_chunk is not None,
        })
        reply: Any = self.replies.pop(0) if self.replies else LLMResponse(text="")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = await reply()
        if on_chunk is not None and reply.text:
            for piece in reply.text.split(" "):
                on_chunk(piece + " ")
        return reply

    def make_multimodal_message(self, text: str, image_bytes: bytes, mime_type: str = "image/png") -> dict:
        return {"role": "user", "content": text, "image": image_bytes, "mime_type": mime_type}


class FakeSandbox:
    """Stands in for ``PythonSandbox``; returns a canned ``ExecutionResult``."""

    def __init__(self, result: ExecutionResult | None = None) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.state = SandboxState.UNINITIALIZED
        self.result = result or ExecutionResult(stdout="", exit_code=0)
        self.executed: list[tuple[str, str]] = []

    async def initialize(self) -> None:
        self.state = SandboxState.READY

    async def execute(self, code: str, csv_data: str, timeout: float | None = None, token=None) -> ExecutionResult:
        self.executed.append((code, csv_data))
        return self.result

    async def destroy(self) -> None:
        self.state = SandboxState.DESTROYED


class LifecycleRecorder:
    """Sandbox observer that records ``(event, sandbox_id)`` pairs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def __call__(self, event: str, sandbox_id: str) -> None:
        self.events.append((event, sandbox_id))

    def count(self, event: str) -> int:
        return sum(1 for e, _ in self.events if e == event)


class SandboxFactory:
    """Builds ``FakeSandbox`` instances and remembers them."""

    def __init__(self, result: ExecutionResult | None = None) -> None:
        self.result = result
        self.created: list[FakeSandbox] = []

    def __call__(self) -> FakeSandbox:
        sandbox = FakeSandbox(self.result)
        self.created.append(sandbox)
        return sandbox


class FrameSink:
    def __init__(self) -> None:
        self.frames: list[Frame] = []

    def __call__(self, frame: Frame) -> None:
        self.frames.append(frame)

    @property
    def terminal(self) -> list[Frame]:
        return [f for f in self.frames if not f.streaming]

    @property
    def streamed_text(self) -> str:
        return "".join(f.response or "" for f in self.frames if f.streaming)


@pytest.fixture
def limits():
    """Set pipeline limits for one test; overrides are cleared afterwards."""
    touched: list[str] = []

    def _set(name: str, value: float) -> None:
        touched.append(name)
        turn_limits.set_override(name, value)

    yield _set
    for name in touched:
        turn_limits.set_override(name, None)


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def sink() -> FrameSink:
    return FrameSink()


@pytest.fixture
def recorder() -> LifecycleRecorder:
    return LifecycleRecorder()


@pytest.fixture
def make_context(token: CancellationToken, recorder: LifecycleRecorder):
    def _make(adapter: LLMAdapter | None = None, **overrides: Any) -> ToolContext:
        fields: dict[str, Any] = {
            "adapter": adapter or FakeAdapter(),
            "token": token,
            "structuring_model": "structuring-model",
            "vision_model": "vision-model",
            "active_sheet": "Sheet 1",
            "sheet_names": ["Sheet 1", "Sheet 2"],
            "sandbox_factory": SandboxFactory(),
            "sandbox_observer": recorder,
        }
        fields.update(overrides)
        return ToolContext(**fields)

    return _make
