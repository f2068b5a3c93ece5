"""Per-turn context handed to every tool handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from agent.models import ToolResult

if TYPE_CHECKING:
    from agent.cancellation import CancellationToken
    from agent.llm.base import LLMAdapter
    from agent.tool_args import ParsedArgs
    from sandbox.runtime import LifecycleObserver, PythonSandbox


@dataclass
class ToolContext:
    """Everything a handler may touch while executing one tool call.

    ``csv_data`` is the selected data projected to CSV for code execution;
    ``document`` is the attachment as a base64 data URL, if any;
    ``streamed_text`` is whatever the model said before choosing the tool.
    """
    adapter: "LLMAdapter"
    token: "CancellationToken"
    structuring_model: str
    vision_model: str
    active_sheet: str = "Sheet 1"
    sheet_names: list[str] = field(default_factory=list)
    csv_data: str = ""
    document: Optional[str] = None
    streamed_text: str = ""
    sandbox_factory: Optional[Callable[[], "PythonSandbox"]] = None
    sandbox_observer: Optional["LifecycleObserver"] = None


def unexpected_args(tool: str, parsed: "ParsedArgs") -> ToolResult:
    """Error result for a handler that received arguments of the wrong shape."""
    got = type(parsed.args).__name__ if parsed.args is not None else "no arguments"
    return ToolResult(
        response=f"I couldn't run {tool} because its arguments were unusable.",
        error=parsed.reason or f"{tool}: unexpected arguments ({got})",
    )
