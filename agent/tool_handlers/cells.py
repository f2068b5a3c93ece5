"""Cell update tool handler."""

from __future__ import annotations

from agent.models import CellEdit, ToolResult
from agent.tool_args import ParsedArgs, SetCellsArgs
from agent.tool_handlers.context import ToolContext, unexpected_args


def _with_lead(ctx: "ToolContext", text: str) -> str:
    lead = ctx.streamed_text.strip()
    return f"{lead}\n\n{text}" if lead else text


async def handle_set_cells(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, SetCellsArgs):
        return unexpected_args("set_spreadsheet_cells", parsed)

    if parsed.fallback:
        return ToolResult(
            response=_with_lead(
                ctx,
                "I couldn't determine the cell updates from the model's output, "
                "so no cells were changed.",
            ),
            cell_edits=[],
            error=parsed.reason or None,
        )

    edits = [CellEdit(target=u.target, formula=u.formula, sheet=u.sheetName) for u in args.cellUpdates]
    if not edits:
        return ToolResult(response=_with_lead(ctx, "No cell updates were proposed."), cell_edits=[])

    noun = "cell update" if len(edits) == 1 else "cell updates"
    lines = "\n".join(f"{e.target}: {e.formula}" for e in edits)
    return ToolResult(
        response=_with_lead(ctx, f"Spreadsheet Updates ({len(edits)} {noun}):\n{lines}"),
        cell_edits=edits,
    )
