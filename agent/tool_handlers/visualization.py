"""Chart tool handler."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent.models import ChartSpec, ToolResult
from agent.tool_args import ChartArgs, ParsedArgs

if TYPE_CHECKING:
    from agent.tool_handlers.context import ToolContext


async def handle_create_chart(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, ChartArgs):
        return ToolResult(
            response=f"I couldn't create the chart because its definition was invalid ({parsed.reason}).",
            error=parsed.reason or "invalid chart arguments",
        )
    chart = ChartSpec(type=args.type, title=args.title, data=args.data, sheet=args.sheetName)
    return ToolResult(
        response=f'I\'ve created a {args.type} chart titled "{args.title}" based on your data.',
        chart=chart,
    )
