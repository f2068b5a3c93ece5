"""Sheet management tool handlers (add, remove, rename, clear, info)."""

from __future__ import annotations

from agent.models import SheetOperation, ToolResult
from agent.tool_args import ParsedArgs, RenameSheetArgs, SheetNameArgs
from agent.tool_handlers.context import ToolContext, unexpected_args


async def handle_add_sheet(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, SheetNameArgs):
        return unexpected_args("add_sheet", parsed)
    name = (args.sheetName or "").strip() or "New Sheet"
    return ToolResult(
        response=f'I\'ve added a new sheet named "{name}".',
        sheet_operation=SheetOperation(type="add", sheet_name=name),
    )


async def handle_remove_sheet(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, SheetNameArgs):
        return unexpected_args("remove_sheet", parsed)
    name = (args.sheetName or "").strip() or ctx.active_sheet
    if ctx.sheet_names and len(ctx.sheet_names) <= 1:
        return ToolResult(
            response=f'I can\'t remove "{name}" because it is the only sheet in the workbook.',
            error="cannot remove the last sheet",
        )
    return ToolResult(
        response=f'I\'ve removed the sheet "{name}".',
        sheet_operation=SheetOperation(type="remove", sheet_name=name),
    )


async def handle_rename_sheet(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, RenameSheetArgs):
        return ToolResult(
            response="I need both the current sheet name and the new name to rename a sheet.",
            error=parsed.reason or "missing sheet names",
        )
    return ToolResult(
        response=f'I\'ve renamed the sheet "{args.currentName}" to "{args.newName}".',
        sheet_operation=SheetOperation(
            type="rename", current_name=args.currentName, new_name=args.newName
        ),
    )


async def handle_clear_sheet(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, SheetNameArgs):
        return unexpected_args("clear_sheet", parsed)
    name = (args.sheetName or "").strip() or ctx.active_sheet
    return ToolResult(
        response=f'I\'ve cleared all content from the sheet "{name}".',
        sheet_operation=SheetOperation(type="clear", sheet_name=name),
    )


async def handle_get_sheet_info(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    sheets = list(ctx.sheet_names) or [ctx.active_sheet]
    listing = "\n".join(
        f"- {s}{' (active)' if s == ctx.active_sheet else ''}" for s in sheets
    )
    return ToolResult(
        response=f"The workbook has {len(sheets)} sheet(s):\n{listing}",
        sheet_operation=SheetOperation(type="info", sheets=sheets),
    )
