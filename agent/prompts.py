"""
System prompts and user-message formatting for the dialogue pipeline.

Phase 1 (selection) and phase 2 (analysis) get different system prompts; the
user message for both is built from the same parts: sheet list, rendered data
context, and the question itself.
"""

from datetime import datetime

from .tools import FULL_TOOL_REFERENCE

_ANALYSIS_PROMPT = """You are a spreadsheet assistant. Today is {today}.

You see the user's spreadsheet as tagged cells: <B3>42</B3> means cell B3 holds 42.
Empty rows and trailing empty cells are omitted. Large sheets are shown as a summary
plus a representative sample; rows not shown are still part of the sheet.

Answer the user's question directly and concisely. When the answer belongs in the sheet
(values, formulas, a chart, sheet changes, or a computed analysis), call exactly one tool.
Prefer spreadsheet formulas (=SUM, =AVERAGE, ...) for simple aggregates and
execute_python_code for anything that needs real computation. Reference cells by their
A1 addresses exactly as tagged.

## Tools

{tool_reference}"""

_SELECTION_PROMPT = """You are the data-selection step of a spreadsheet assistant. Today is {today}.

You are given the structure of the user's active sheet (counts, detected tables, column
labels) and sometimes a few sample rows, but not the full data. Decide which part of the
sheet is needed to answer the user's question and call select_data_for_analysis.

Pick the narrowest selection that still answers the question:
- a single column when the question is about one field ('F');
- a range when several adjacent columns or a block matter ('A1:D200');
- a row when the question is about one record;
- a table when a detected table is the subject;
- a search term when the user names a value to look for.

Classify the analysis (statistical, trend, summary, forecast, comparison, custom) and
explain the choice in one sentence."""

DOCUMENT_NOTE = "\n\nI've uploaded a document that needs to be analyzed."

VISION_PROMPT = """Extract the content of this document as a table for a spreadsheet.
Operation: {operation}

Respond with a JSON object only, with exactly this structure:
{{"headers": ["Column1", "Column2"], "rows": [["row1col1", "row1col2"]], "note": "optional remark"}}

Guidelines:
1. Receipts and invoices: one row per line item, with totals as final rows.
2. Plain text: one row per paragraph or field.
3. Keep at most 20 columns and use meaningful headers.
4. Do not wrap the JSON in markdown."""


def _today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


def get_system_prompt() -> str:
    """Return the phase-2 (analysis) system prompt with the current date."""
    return _ANALYSIS_PROMPT.format(today=_today(), tool_reference=FULL_TOOL_REFERENCE)


def get_selection_prompt() -> str:
    """Return the phase-1 (selection) system prompt with the current date."""
    return _SELECTION_PROMPT.format(today=_today())


def format_sheets_context(sheet_names: list[str], active_sheet: str) -> str:
    if not sheet_names:
        return ""
    return f"Available sheets: {', '.join(sheet_names)}\nActive sheet: {active_sheet}\n"


def format_user_message(
    sheets_context: str,
    spreadsheet_context: str,
    message: str,
    has_document: bool = False,
) -> str:
    content = f"{sheets_context}{spreadsheet_context}User question: {message}"
    if has_document:
        content += DOCUMENT_NOTE
    return content


def format_selected_context(
    rendered: str,
    analysis_type: str,
    explanation: str,
) -> str:
    """Wrap a rendered data slice with the selection it came from."""
    return (
        f"Selected data for analysis ({analysis_type} analysis):\n"
        f"{rendered}\n\n"
        f"Selection criteria: {explanation}\n"
    )
