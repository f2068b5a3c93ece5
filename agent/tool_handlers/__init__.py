"""Tool handler registry and the single dispatch entry point.

Every handler has the signature::

    async def handle_x(ctx: ToolContext, parsed: ParsedArgs) -> ToolResult

Arguments are parsed exactly once, here, before the handler runs.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional

from agent.errors import TurnCancelled
from agent.llm.base import ToolCall
from agent.logging import log_error, log_tool_call, log_tool_result, tagged
from agent.models import ToolResult
from agent.tool_args import ParsedArgs, parse_tool_args

from .cells import handle_set_cells
from .code import handle_execute_code
from .context import ToolContext
from .document import handle_document_analysis
from .selection import handle_analyze_structure, handle_select_data
from .sheets import (
    handle_add_sheet,
    handle_clear_sheet,
    handle_get_sheet_info,
    handle_remove_sheet,
    handle_rename_sheet,
)
from .visualization import handle_create_chart

logger = logging.getLogger("sheetpilot")

Handler = Callable[[ToolContext, ParsedArgs], Awaitable[ToolResult]]

TOOL_REGISTRY: dict[str, Handler] = {
    "select_data_for_analysis": handle_select_data,
    "analyze_spreadsheet_structure": handle_analyze_structure,
    "set_spreadsheet_cells": handle_set_cells,
    "create_chart": handle_create_chart,
    "execute_python_code": handle_execute_code,
    "document_analysis": handle_document_analysis,
    "get_sheet_info": handle_get_sheet_info,
    "add_sheet": handle_add_sheet,
    "remove_sheet": handle_remove_sheet,
    "rename_sheet": handle_rename_sheet,
    "clear_sheet": handle_clear_sheet,
}

__all__ = ["TOOL_REGISTRY", "ToolContext", "dispatch"]


async def dispatch(ctx: ToolContext, tool_calls: list[ToolCall]) -> Optional[ToolResult]:
    """Run the first tool call and return its result.

    Only one tool call is honored per turn; any others are logged and
    dropped. Handler failures become error results. ``TurnCancelled``
    propagates.
    """
    if not tool_calls:
        return None
    call = tool_calls[0]
    if len(tool_calls) > 1:
        dropped = ", ".join(tc.name for tc in tool_calls[1:])
        logger.warning(
            f"[Dispatch] {len(tool_calls)} tool calls proposed; running {call.name}, dropping {dropped}",
            extra=tagged("dispatch"),
        )

    log_tool_call(call.name, call.arguments)
    handler = TOOL_REGISTRY.get(call.name)
    if handler is None:
        result = ToolResult(
            response=f"I tried to use a tool that isn't available ({call.name}).",
            error=f"Unknown tool: {call.name}",
        )
        log_tool_result(call.name, result.error, 0)
        return result

    ctx.token.raise_if_cancelled()
    parsed = parse_tool_args(call.name, call.arguments)
    started = time.monotonic()
    try:
        result = await handler(ctx, parsed)
    except TurnCancelled:
        raise
    except Exception as exc:
        log_error(f"Tool {call.name} failed", exc, context={"arguments": call.arguments[:500]})
        result = ToolResult(
            response=f"Something went wrong while running {call.name}: {exc}",
            error=str(exc),
        )
    elapsed_ms = int((time.monotonic() - started) * 1000)
    result.ensure_edit_summary()
    log_tool_result(call.name, result.error, elapsed_ms)
    return result
