"""OpenAI adapter, also used for OpenAI-compatible ``/chat/completions`` servers.

Only this module imports the ``openai`` package. Set ``base_url`` to point at
a compatible provider.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any

import openai

from agent.errors import UpstreamServiceError
from agent.logging import tagged

from .base import FunctionSchema, LLMAdapter, LLMResponse, ToolCall, UsageMetadata

logger = logging.getLogger("sheetpilot")


def _usage(raw) -> UsageMetadata:
    if raw is None:
        return UsageMetadata()
    details = getattr(raw, "prompt_tokens_details", None)
    return UsageMetadata(
        input_tokens=raw.prompt_tokens or 0,
        output_tokens=raw.completion_tokens or 0,
        cached_tokens=(getattr(details, "cached_tokens", 0) or 0) if details else 0,
    )


class _StreamedCalls:
    """Reassembles tool calls whose name and arguments arrive split across deltas."""

    def __init__(self) -> None:
        self._by_index: dict[int, ToolCall] = {}

    def feed(self, deltas) -> None:
        for d in deltas:
            call = self._by_index.setdefault(d.index, ToolCall(name=""))
            if d.id and not call.id:
                call.id = d.id
            if d.function is None:
                continue
            if d.function.name and not call.name:
                call.name = d.function.name
            if d.function.arguments:
                call.arguments += d.function.arguments

    def calls(self) -> list[ToolCall]:
        return [self._by_index[i] for i in sorted(self._by_index)]


class OpenAIAdapter(LLMAdapter):
    """Async chat-completions client."""

    provider = "openai"

    def __init__(self, api_key: str, *, base_url: str | None = None, timeout: float = 120.0):
        self.base_url = base_url
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout)

    async def complete(
        self,
        messages: list[dict],
        *,
        model: str,
        system_prompt: str | None = None,
        tools: list[FunctionSchema] | None = None,
        forced_tool: str | None = None,
        on_chunk: Callable[[str], None] | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> LLMResponse:
        prefix = [{"role": "system", "content": system_prompt}] if system_prompt else []
        request: dict[str, Any] = {"model": model, "messages": prefix + list(messages)}
        if temperature is not None:
            request["temperature"] = temperature
        if max_output_tokens is not None:
            request["max_tokens"] = max_output_tokens
        if tools:
            request["tools"] = [
                {
                    "type": "function",
                    "function": {"name": s.name, "description": s.description, "parameters": s.parameters},
                }
                for s in tools
            ]
            if forced_tool:
                request["tool_choice"] = {"type": "function", "function": {"name": forced_tool}}

        try:
            if on_chunk is None:
                response = await self._single(request)
            else:
                response = await self._streamed(request, on_chunk)
        except openai.OpenAIError as exc:
            logger.warning(f"[OpenAI] {type(exc).__name__}: {exc}", extra=tagged("llm_error"))
            raise UpstreamServiceError(str(exc), provider=self.provider, cause=exc) from exc

        logger.debug(
            f"[OpenAI] {model}: {response.usage.input_tokens} in / "
            f"{response.usage.output_tokens} out, {len(response.tool_calls)} tool call(s)",
            extra=tagged("llm"),
        )
        return response

    async def _single(self, request: dict[str, Any]) -> LLMResponse:
        raw = await self._client.chat.completions.create(**request)
        if not raw.choices:
            return LLMResponse(usage=_usage(raw.usage), raw=raw)
        message = raw.choices[0].message
        calls = [
            ToolCall(name=tc.function.name, arguments=tc.function.arguments or "", id=tc.id)
            for tc in message.tool_calls or []
        ]
        return LLMResponse(text=message.content or "", tool_calls=calls, usage=_usage(raw.usage), raw=raw)

    async def _streamed(self, request: dict[str, Any], on_chunk: Callable[[str], None]) -> LLMResponse:
        text: list[str] = []
        calls = _StreamedCalls()
        usage = UsageMetadata()
        stream = await self._client.chat.completions.create(
            **request, stream=True, stream_options={"include_usage": True}
        )
        # Closed on every exit path, cancellation included
        async with stream:
            async for chunk in stream:
                if chunk.usage is not None:
                    usage = _usage(chunk.usage)
                if not chunk.choices or chunk.choices[0].delta is None:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    text.append(delta.content)
                    on_chunk(delta.content)
                if delta.tool_calls:
                    calls.feed(delta.tool_calls)
        return LLMResponse(text="".join(text), tool_calls=calls.calls(), usage=usage)

    def make_multimodal_message(
        self, text: str, image_bytes: bytes, mime_type: str = "image/png"
    ) -> dict:
        url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        return {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": url}},
                {"type": "text", "text": text},
            ],
        }
