"""Anthropic adapter for Claude models.

Only this module imports the ``anthropic`` package. Streaming uses the SDK's
``messages.stream`` helper: text deltas go to ``on_chunk`` and tool calls are
read from the final assembled message.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from typing import Any

import anthropic

from agent.errors import UpstreamServiceError
from agent.logging import tagged

from .base import FunctionSchema, LLMAdapter, LLMResponse, ToolCall, UsageMetadata

logger = logging.getLogger("sheetpilot")

_DEFAULT_MAX_TOKENS = 8192


def _blocks(content: Any) -> list[dict]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return list(content or [])


def _alternating(messages: list[dict]) -> list[dict]:
    """Merge same-role neighbours and drop leading assistant turns.

    The Messages API rejects two consecutive turns from one role and a
    conversation that opens with the assistant.
    """
    out: list[dict] = []
    for msg in messages:
        role = msg["role"]
        if not out and role != "user":
            continue
        if out and out[-1]["role"] == role:
            out[-1] = {"role": role, "content": _blocks(out[-1]["content"]) + _blocks(msg.get("content"))}
        else:
            out.append({"role": role, "content": msg.get("content", "")})
    return out


def _to_response(message) -> LLMResponse:
    text = ""
    calls: list[ToolCall] = []
    for block in message.content:
        if block.type == "text":
            text += block.text
        elif block.type == "tool_use":
            payload = block.input if isinstance(block.input, dict) else {}
            calls.append(ToolCall(name=block.name, arguments=json.dumps(payload), id=block.id))
    usage = message.usage
    return LLMResponse(
        text=text,
        tool_calls=calls,
        usage=UsageMetadata(
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            cached_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
        ),
        raw=message,
    )


class AnthropicAdapter(LLMAdapter):
    """Async Messages API client."""

    provider = "anthropic"

    def __init__(self, api_key: str, *, base_url: str | None = None, timeout: float = 120.0):
        self._client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url or None, timeout=timeout)

    def _request(
        self,
        messages: list[dict],
        model: str,
        system_prompt: str | None,
        tools: list[FunctionSchema] | None,
        forced_tool: str | None,
        temperature: float | None,
        max_output_tokens: int | None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": model,
            "messages": _alternating(messages),
            "max_tokens": max_output_tokens or _DEFAULT_MAX_TOKENS,
        }
        if system_prompt:
            request["system"] = system_prompt
        if temperature is not None:
            request["temperature"] = temperature
        if tools:
            request["tools"] = [
                {"name": s.name, "description": s.description, "input_schema": s.parameters}
                for s in tools
            ]
            if forced_tool:
                request["tool_choice"] = {"type": "tool", "name": forced_tool}
        return request

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
        request = self._request(
            messages, model, system_prompt, tools, forced_tool, temperature, max_output_tokens
        )
        try:
            if on_chunk is None:
                message = await self._client.messages.create(**request)
            else:
                async with self._client.messages.stream(**request) as stream:
                    async for delta in stream.text_stream:
                        if delta:
                            on_chunk(delta)
                    message = await stream.get_final_message()
        except anthropic.AnthropicError as exc:
            logger.warning(f"[Anthropic] {type(exc).__name__}: {exc}", extra=tagged("llm_error"))
            raise UpstreamServiceError(str(exc), provider=self.provider, cause=exc) from exc

        response = _to_response(message)
        logger.debug(
            f"[Anthropic] {model}: {response.usage.input_tokens} in / "
            f"{response.usage.output_tokens} out, {len(response.tool_calls)} tool call(s)",
            extra=tagged("llm"),
        )
        return response

    def make_multimodal_message(
        self, text: str, image_bytes: bytes, mime_type: str = "image/png"
    ) -> dict:
        data = base64.b64encode(image_bytes).decode("ascii")
        return {
            "role": "user",
            "content": [
                {"type": "image", "source": {"type": "base64", "media_type": mime_type, "data": data}},
                {"type": "text", "text": text},
            ],
        }
