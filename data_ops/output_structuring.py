"""
Turn free-form analysis output back into spreadsheet cells.

Sandbox stdout is first handed to the structuring model, which rewrites it as
comma-separated rows with a header row. If that call fails or yields nothing,
the raw text is parsed deterministically (CSV, tab, or runs of whitespace).
The resulting table is then laid out as ``CellEdit``s from a start cell.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Any, Optional

from agent.errors import UpstreamServiceError
from agent.logging import tagged
from agent.models import CellEdit

from .cell_refs import parse_cell

logger = logging.getLogger("sheetpilot")

_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*\n?([\s\S]*?)```")
_WHITESPACE_RUN = re.compile(r"\s{2,}|\t")

STRUCTURING_PROMPT = """Convert the following analysis output into a clean tabular format.
Each row should be comma-separated values, with the first row being headers.
Ensure numbers are properly formatted and aligned.
The output should be ready to insert into a spreadsheet.

IMPORTANT: Do not use any markdown formatting or code blocks in your response.
Just return plain text with comma-separated values."""


def strip_code_fences(text: str) -> str:
    """Drop markdown fences, keeping what was inside them."""
    if not text:
        return ""
    text = _FENCED_BLOCK.sub(lambda m: m.group(1), text)
    return text.replace("```", "").strip()


def parse_table(text: str) -> list[list[str]]:
    """Split text into rows of cells.

    Lines containing a comma are read as CSV (quotes respected); otherwise tabs
    or runs of two or more spaces separate cells. Blank lines are skipped.
    """
    rows: list[list[str]] = []
    for line in strip_code_fences(text).splitlines():
        if not line.strip():
            continue
        if "," in line:
            cells = next(csv.reader(io.StringIO(line), skipinitialspace=True))
        else:
            cells = _WHITESPACE_RUN.split(line.strip())
        rows.append([c.strip() for c in cells])
    return rows


def table_to_edits(
    table: list[list[Any]],
    start_cell: str,
    sheet: Optional[str] = None,
) -> list[CellEdit]:
    """Lay *table* out row by row starting at *start_cell*; empty cells are skipped."""
    origin = parse_cell(start_cell)
    edits = []
    for r, row in enumerate(table):
        for c, value in enumerate(row):
            if value is None or value == "":
                continue
            edits.append(CellEdit(target=origin.offset(r, c).a1, formula=str(value), sheet=sheet))
    return edits


async def structure_output(
    adapter,
    model: str,
    raw_output: str,
    goal: str,
    token=None,
) -> str:
    """Ask the structuring model to rewrite *raw_output* as CSV rows.

    Falls back to the cleaned raw text when the model call fails or answers
    with nothing. ``TurnCancelled`` from the token propagates.
    """
    cleaned = strip_code_fences(raw_output)
    if not cleaned:
        return ""
    messages = [{
        "role": "user",
        "content": (
            f"Analysis Goal: {goal}\n\nRaw Output:\n{cleaned}\n\n"
            "Convert this into comma-separated rows with headers."
        ),
    }]
    call = adapter.complete(
        messages, model=model, system_prompt=STRUCTURING_PROMPT, temperature=0.1
    )
    try:
        response = await (token.guard(call) if token is not None else call)
    except UpstreamServiceError as exc:
        logger.warning(
            f"[Structuring] Model call failed ({exc}); parsing raw output instead",
            extra=tagged("structuring"),
        )
        return cleaned
    structured = strip_code_fences(response.text)
    if not structured:
        logger.warning(
            "[Structuring] Model returned no table; parsing raw output instead",
            extra=tagged("structuring"),
        )
        return cleaned
    return structured
