"""LLM abstraction layer — provider-agnostic interface for LLM interactions.

Re-exports the public API so consumers can write:
    from agent.llm import LLMAdapter, OpenAIAdapter, LLMResponse, ...
"""

from .base import LLMAdapter, LLMResponse, ToolCall, UsageMetadata, FunctionSchema
from .openai_adapter import OpenAIAdapter
from .anthropic_adapter import AnthropicAdapter


def create_adapter(provider: str | None = None) -> LLMAdapter:
    """Create the LLM adapter based on config (llm_provider, base_url)."""
    import config

    provider = (provider or config.LLM_PROVIDER).lower()
    api_key = config.get_api_key(provider) or ""
    if provider == "anthropic":
        return AnthropicAdapter(api_key=api_key, base_url=config.LLM_BASE_URL)
    if provider == "openai":
        return OpenAIAdapter(api_key=api_key, base_url=config.LLM_BASE_URL)
    raise ValueError(f"Unknown llm_provider: {provider!r} (expected 'openai' or 'anthropic')")
