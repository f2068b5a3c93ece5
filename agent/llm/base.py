"""Provider-agnostic types and abstract base class for LLM adapters.

All agent code should depend on these types, never on provider-specific SDKs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A single function/tool invocation extracted from the LLM response.

    Attributes:
        name: Tool/function name.
        arguments: The argument payload exactly as the model produced it
            (a JSON string). Parsing happens once, at the dispatch boundary.
        id: Provider-assigned call ID (e.g. ``call_xxxxx`` for OpenAI,
            ``toolu_xxxxx`` for Anthropic).
    """
    name: str
    arguments: str = ""
    id: str | None = None


@dataclass
class UsageMetadata:
    """Normalized token counts."""
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0


@dataclass
class LLMResponse:
    """Provider-agnostic response from an LLM call.

    Attributes:
        text: Concatenated text output.
        tool_calls: Extracted function/tool calls, in the order proposed.
        usage: Token usage for this call.
        raw: The original provider-specific response object, if any.
    """
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: UsageMetadata = field(default_factory=UsageMetadata)
    raw: Any = None


@dataclass
class FunctionSchema:
    """Wraps a tool/function schema dict for type clarity.

    The ``parameters`` dict is already JSON-schema-shaped and provider-agnostic.
    """
    name: str
    description: str
    parameters: dict


# ---------------------------------------------------------------------------
# LLMAdapter ABC
# ---------------------------------------------------------------------------

class LLMAdapter(ABC):
    """Abstract interface that every LLM provider adapter must implement.

    ``messages`` passed to :meth:`complete` are a list of
    ``{"role": "user" | "assistant", "content": ...}`` dicts. ``content`` is a
    string, or a provider-specific block list built with
    :meth:`make_multimodal_message`.
    """

    provider: str = ""
    supports_forced_tool: bool = True

    @abstractmethod
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
        """Run one completion.

        Args:
            messages: Conversation so far, oldest first.
            model: Model identifier.
            system_prompt: System instruction for this call.
            tools: Tool schemas the model may call.
            forced_tool: If set (and supported), the model must call this tool.
            on_chunk: If set, the call streams and ``on_chunk(text_delta)`` is
                invoked as text arrives. The full response is still returned.
            temperature: Sampling temperature.
            max_output_tokens: Output cap.

        Raises:
            UpstreamServiceError: The provider SDK raised.
        """

    @abstractmethod
    def make_multimodal_message(
        self, text: str, image_bytes: bytes, mime_type: str = "image/png"
    ) -> dict:
        """Build a provider-specific user message combining text + image."""
