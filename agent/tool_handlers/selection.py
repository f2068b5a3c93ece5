"""Phase-1 tool handlers: data selection and structure scoping."""

from __future__ import annotations

import logging

from agent.errors import CellReferenceError
from agent.logging import tagged
from agent.models import DataSelectionDescriptor, StructureAnalysis, ToolResult
from agent.tool_args import ParsedArgs, SelectDataArgs, StructureArgs
from agent.tool_handlers.context import ToolContext, unexpected_args
from data_ops.cell_refs import column_index, parse_cell, parse_range

logger = logging.getLogger("sheetpilot")

UNDETERMINED_SELECTION = (
    "I couldn't determine what data to analyze. Please try rephrasing your request."
)


def _selection_problem(args: SelectDataArgs) -> str | None:
    """Return why the selection cannot be resolved, or None if it can."""
    sel = args.dataSelection
    if sel is None or sel.selectionType is None:
        return "missing selectionType"
    try:
        if sel.selectionType == "range":
            if not sel.range:
                return "range selection without a range"
            parse_range(sel.range)
        elif sel.selectionType == "column":
            if not sel.column:
                return "column selection without a column"
            column_index(sel.column.strip())
        elif sel.selectionType == "row" and not sel.row:
            return "row selection without a row number"
        elif sel.selectionType == "table":
            if not sel.tableStartCell:
                return "table selection without a start cell"
            parse_cell(sel.tableStartCell)
        elif sel.selectionType == "search" and not (sel.searchTerm or "").strip():
            return "search selection without a search term"
    except CellReferenceError as exc:
        return str(exc)
    return None


def default_selection_result(reason: str = "", *, response: str = "", error: str | None = None) -> ToolResult:
    """Result carrying the default descriptor (top-left block, summary analysis)."""
    descriptor = DataSelectionDescriptor.default(reason)
    text = f"I'm using a default selection ({descriptor.range}) for a summary analysis."
    return ToolResult(
        response=f"{response}\n\n{text}" if response else text,
        selection=descriptor,
        error=error,
    )


async def handle_select_data(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, SelectDataArgs):
        return unexpected_args("select_data_for_analysis", parsed)

    if parsed.fallback:
        return default_selection_result(
            "The data selection could not be read, so a default selection of the "
            "top-left block of the sheet is used.",
            error=parsed.reason or None,
        )

    problem = _selection_problem(args)
    if problem is not None:
        logger.warning(f"[Selection] Unusable selection: {problem}", extra=tagged("selection"))
        return ToolResult(
            response=UNDETERMINED_SELECTION,
            error="Invalid data selection parameters",
        )

    sel = args.dataSelection
    descriptor = DataSelectionDescriptor(
        selection_type=sel.selectionType,
        analysis_type=args.analysisType,
        explanation=args.explanation,
        range=parse_range(sel.range).a1 if sel.selectionType == "range" else None,
        column=sel.column.strip().upper() if sel.selectionType == "column" else None,
        row=sel.row if sel.selectionType == "row" else None,
        table_start_cell=parse_cell(sel.tableStartCell).a1 if sel.selectionType == "table" else None,
        has_headers=sel.hasHeaders,
        search_term=sel.searchTerm.strip() if sel.selectionType == "search" else None,
    )
    return ToolResult(
        response=f"I'll analyze your data using {args.analysisType} analysis. {args.explanation}".strip(),
        selection=descriptor,
    )


async def handle_analyze_structure(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, StructureArgs):
        return unexpected_args("analyze_spreadsheet_structure", parsed)
    structure = StructureAnalysis(scope_needed=args.scopeNeeded, explanation=args.explanation)
    return ToolResult(
        response=(
            "I'll analyze the spreadsheet structure to help answer your question. "
            f"{args.explanation}"
        ).strip(),
        structure=structure,
    )
