"""Document (image) extraction tool handler."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field, ValidationError

from agent.errors import UpstreamServiceError
from agent.logging import tagged
from agent.models import ToolResult
from agent.prompts import VISION_PROMPT
from agent.tool_args import DocumentArgs, ParsedArgs
from agent.turn_limits import get_limit
from data_ops.output_structuring import strip_code_fences, table_to_edits

if TYPE_CHECKING:
    from agent.tool_handlers.context import ToolContext

logger = logging.getLogger("sheetpilot")


class ExtractedTable(BaseModel):
    headers: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)
    note: Optional[str] = None


def split_data_url(document: str) -> tuple[str, str]:
    """Return ``(mime_type, base64_payload)`` of a data URL or bare base64 string."""
    if document.startswith("data:") and "," in document:
        head, payload = document.split(",", 1)
        mime = head[5:].split(";", 1)[0] or "image/png"
        return mime, payload
    return "image/png", document


def _error(text: str) -> ToolResult:
    return ToolResult(response=f"Error: {text}", error=text)


async def handle_document_analysis(ctx: "ToolContext", parsed: ParsedArgs) -> ToolResult:
    args = parsed.args
    if not isinstance(args, DocumentArgs):
        return _error(f"Invalid document analysis request ({parsed.reason}).")

    if not ctx.document:
        return _error("No document image provided for analysis.")

    mime, payload = split_data_url(ctx.document)
    limit = get_limit("document.max_bytes")
    # base64 expands 3 bytes to 4 characters
    if len(payload) * 3 // 4 > limit:
        return _error(f"The document is larger than the {limit // (1024 * 1024)} MB limit.")
    try:
        image = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return _error("The attached document is not valid base64 data.")
    if len(image) > limit:
        return _error(f"The document is larger than the {limit // (1024 * 1024)} MB limit.")

    message = ctx.adapter.make_multimodal_message(
        VISION_PROMPT.format(operation=args.operation), image, mime
    )
    try:
        response = await ctx.token.guard(
            ctx.adapter.complete([message], model=ctx.vision_model, temperature=0.1)
        )
    except UpstreamServiceError as exc:
        logger.warning(f"[Document] Vision call failed: {exc}", extra=tagged("document"))
        return _error(f"Failed to analyze the document: {exc}")

    try:
        extracted = ExtractedTable.model_validate_json(strip_code_fences(response.text))
    except ValidationError as exc:
        logger.warning(
            f"[Document] Unreadable extraction ({exc.error_count()} errors)",
            extra=tagged("document"),
        )
        return _error("The document could not be converted into a table.")

    table: list[list[Any]] = []
    if extracted.headers:
        table.append(extracted.headers)
    table.extend(extracted.rows)
    edits = table_to_edits(table, args.start_cell, args.target_sheet)
    if not edits:
        return _error("No data could be extracted from the document.")

    note = f" Note: {extracted.note}" if extracted.note else ""
    return ToolResult(
        response=(
            f"Successfully extracted data using {args.operation}. The data has been placed "
            f"in your spreadsheet starting at cell {args.start_cell}.{note}"
        ),
        cell_edits=edits,
    )
