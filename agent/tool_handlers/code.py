"""Code execution tool handler.

Each call gets a fresh sandbox through ``open_sandbox``; the sandbox is
destroyed on every exit path. Successful output is restructured into a table
by the structuring model and laid out from ``start_cell``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agent.errors import SandboxError
from agent.logging import tagged
from agent.models import AnalysisTrace, ToolResult
from agent.tool_args import ExecuteCodeArgs, ParsedArgs
from data_ops.output_structuring import parse_table, structure_output, table_to_edits
from sandbox import open_sandbox

if TYPE_CHECKING:
    from agent.tool_handlers.context import ToolContext

logger = logging.getLogger("sheetpilot")


async def handle_execute_code(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, ExecuteCodeArgs):
        return ToolResult(
            response=f"I couldn't run the analysis because the code request was invalid ({parsed.reason}).",
            error=parsed.reason or "invalid code execution arguments",
        )

    try:
        async with open_sandbox(ctx.sandbox_factory, ctx.token, ctx.sandbox_observer) as sandbox:
            result = await sandbox.execute(args.suggested_code, ctx.csv_data, token=ctx.token)
    except SandboxError as exc:
        logger.warning(f"[Code] Sandbox unavailable: {exc}", extra=tagged("code"))
        return ToolResult(
            response=f"I couldn't start the Python environment to run the analysis: {exc}",
            error=str(exc),
            analysis=AnalysisTrace(goal=args.analysis_goal, code=args.suggested_code, error=str(exc)),
        )

    trace = AnalysisTrace(
        goal=args.analysis_goal,
        code=args.suggested_code,
        stdout=result.stdout,
        stderr=result.stderr,
        timed_out=result.timed_out,
    )

    if result.timed_out:
        trace.error = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else "timed out"
        partial = f"\n\nOutput before the timeout:\n{result.stdout.strip()}" if result.stdout.strip() else ""
        return ToolResult(
            response=f"Error: {trace.error}. The analysis code was stopped and no cells were changed.{partial}",
            error=trace.error,
            analysis=trace,
        )

    if not result.success:
        trace.error = result.stderr.strip() or f"exit code {result.exit_code}"
        return ToolResult(
            response=f"Error: the analysis code failed.\n{trace.error}",
            error=trace.error,
            analysis=trace,
        )

    structured = await structure_output(
        ctx.adapter, ctx.structuring_model, result.stdout, args.analysis_goal, ctx.token
    )
    trace.structured_output = structured
    edits = table_to_edits(parse_table(structured), args.start_cell, args.sheetName)
    if not edits:
        return ToolResult(
            response=(
                f"I've analyzed your data: {args.analysis_goal}\n\n"
                "The analysis produced no tabular output to place in the sheet."
            ),
            cell_edits=[],
            analysis=trace,
        )
    return ToolResult(
        response=f"I've analyzed your data: {args.analysis_goal}",
        cell_edits=edits,
        analysis=trace,
    )
