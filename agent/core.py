"""
Core dialogue logic - runs the two-phase turn between the spreadsheet client
and the language model.

Phase 1 (select) shows the model the sheet's structure and asks which slice
of data matters. The caller resolves that slice against live data. Phase 2
(analyze) shows the model the compacted slice, streams its answer, then lets
it pick one tool whose result becomes the terminal frame.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, Optional

import config
from .cancellation import CancellationToken
from .errors import CellReferenceError, TurnCancelled, UpstreamServiceError
from .llm import LLMAdapter, create_adapter
from .logging import set_turn_id, tagged
from .models import (
    DataSelectionDescriptor,
    DialogueRequest,
    DialogueTurn,
    Frame,
    ToolResult,
    TurnState,
)
from .prompts import (
    format_selected_context,
    format_sheets_context,
    format_user_message,
    get_selection_prompt,
    get_system_prompt,
)
from .tool_handlers import ToolContext, dispatch
from .tool_handlers.selection import default_selection_result
from .tools import SELECTION_TOOL, SELECTION_TOOL_NAMES, get_function_schemas
from .turn_limits import get_limit
from data_ops.compactor import (
    DataSlice,
    analyze_structure,
    as_grid,
    compact,
    render_preview,
    render_structure,
    to_csv,
)
from data_ops.grid import GridSource, resolve_selection, slice_from_request

logger = logging.getLogger("sheetpilot")

Emit = Callable[[Frame], None]

_ROLES = ("user", "assistant")

NOTHING_TO_ADD = "I don't have anything to add about this data."


def _history_window(chat_history: list[dict]) -> list[dict]:
    """Trailing user/assistant text turns, capped at ``history.max_messages``."""
    window = get_limit("history.max_messages")
    if window <= 0:
        return []
    turns = []
    for entry in chat_history:
        role = entry.get("role", "")
        content = entry.get("content")
        if role not in _ROLES or not isinstance(content, str) or not content.strip():
            continue
        turns.append({"role": role, "content": content})
    return turns[-window:]


def _structure_context(request: DialogueRequest) -> str:
    if request.structure is not None:
        return render_structure(request.structure) + "\n\n"
    rows = as_grid(request.rows)
    text = render_structure(analyze_structure(rows))
    if rows:
        text += f"\n\nFirst rows:\n{render_preview(rows)}"
    return text + "\n\n"


class DialogueController:
    """Runs dialogue turns against one LLM adapter.

    Holds no per-turn state; concurrent requests may share an instance.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        *,
        model: str,
        structuring_model: Optional[str] = None,
        vision_model: Optional[str] = None,
        sandbox_factory=None,
        sandbox_observer=None,
    ):
        self.adapter = adapter
        self.model = model
        self.structuring_model = structuring_model or model
        self.vision_model = vision_model or model
        self.sandbox_factory = sandbox_factory
        self.sandbox_observer = sandbox_observer

    def _context(
        self,
        request: DialogueRequest,
        token: CancellationToken,
        *,
        csv_data: str = "",
        streamed_text: str = "",
    ) -> ToolContext:
        return ToolContext(
            adapter=self.adapter,
            token=token,
            structuring_model=self.structuring_model,
            vision_model=self.vision_model,
            active_sheet=request.active_sheet,
            sheet_names=list(request.sheet_names),
            csv_data=csv_data,
            document=request.document,
            streamed_text=streamed_text,
            sandbox_factory=self.sandbox_factory,
            sandbox_observer=self.sandbox_observer,
        )

    def _messages(self, request: DialogueRequest, spreadsheet_context: str) -> list[dict]:
        content = format_user_message(
            format_sheets_context(request.sheet_names, request.active_sheet),
            spreadsheet_context,
            request.message,
            request.has_document,
        )
        return _history_window(request.chat_history) + [{"role": "user", "content": content}]

    # ---- Phase 1 ---------------------------------------------------------

    async def _select_call(self, request: DialogueRequest, token: CancellationToken) -> ToolResult:
        messages = self._messages(request, _structure_context(request))
        forced = SELECTION_TOOL if self.adapter.supports_forced_tool else None
        call = self.adapter.complete(
            messages,
            model=self.model,
            system_prompt=get_selection_prompt(),
            tools=get_function_schemas(SELECTION_TOOL_NAMES),
            forced_tool=forced,
            temperature=0.1,
        )
        response = await token.guard(
            asyncio.wait_for(call, timeout=get_limit("selection.timeout_seconds"))
        )
        if not response.tool_calls:
            logger.warning(
                "[Selection] Model proposed no selection tool call; using default",
                extra=tagged("selection"),
            )
            return default_selection_result(
                "The model did not choose a data selection.", response=response.text.strip()
            )
        result = await dispatch(self._context(request, token), response.tool_calls)
        if result.selection is None and result.structure is None:
            # An unusable selection still hands phase 2 a descriptor
            return default_selection_result(
                "The model's data selection could not be used.",
                response=result.response,
                error=result.error,
            )
        return result

    async def select(
        self,
        request: DialogueRequest,
        token: CancellationToken,
        emit: Emit,
        turn: Optional[DialogueTurn] = None,
    ) -> ToolResult:
        """Phase 1: choose the data slice for the request.

        Never fails on the model's behavior: a missing tool call, unreadable
        arguments or a timeout all produce the default descriptor. Only
        ``TurnCancelled`` and ``UpstreamServiceError`` propagate. Leaves
        *turn* in ``RESOLVING``.
        """
        turn = turn or DialogueTurn(request.message, has_document=request.has_document)
        turn.advance(TurnState.SELECTING)
        token.raise_if_cancelled()
        phase_timeout = get_limit("selection.phase_timeout_seconds")
        try:
            result = await asyncio.wait_for(self._select_call(request, token), timeout=phase_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "[Selection] Timed out choosing a data selection; using default",
                extra=tagged("selection"),
            )
            result = default_selection_result(
                "Choosing a data selection took too long.",
                error="selection timed out",
            )
        token.raise_if_cancelled()

        if result.selection is not None and result.selection.fallback:
            turn.advance(TurnState.SELECTION_FALLBACK)
        else:
            turn.advance(TurnState.SELECTED)
        turn.advance(TurnState.RESOLVING)
        logger.debug(
            f"[Selection] {result.selection.describe() if result.selection else 'structure request'}",
            extra=tagged("selection"),
        )
        return result

    # ---- Phase 2 ---------------------------------------------------------

    def _resolve_slice(self, request: DialogueRequest) -> DataSlice:
        try:
            return slice_from_request(request.rows, request.selection, request.column_reference)
        except CellReferenceError as exc:
            logger.warning(
                f"[Analyze] Bad selection reference ({exc}); rendering data from A1",
                extra=tagged("analyze"),
            )
            return DataSlice(rows=as_grid(request.rows))

    async def analyze(
        self,
        request: DialogueRequest,
        token: CancellationToken,
        emit: Emit,
        turn: Optional[DialogueTurn] = None,
        data_slice: Optional[DataSlice] = None,
    ) -> ToolResult:
        """Phase 2: answer over the selected data and run at most one tool.

        Text is streamed through *emit* as ``streaming=True`` frames; the
        returned result is what the terminal frame carries.
        """
        turn = turn or DialogueTurn(request.message, has_document=request.has_document)
        token.raise_if_cancelled()
        turn.advance(TurnState.ANALYZING)

        if data_slice is None:
            data_slice = self._resolve_slice(request)
        rendered = compact(data_slice)
        selection = request.selection
        if selection is not None:
            context = format_selected_context(rendered, selection.analysis_type, selection.explanation)
        else:
            context = f"Spreadsheet data:\n{rendered}\n"
        messages = self._messages(request, context + "\n")
        system_prompt = get_system_prompt()

        chunks: list[str] = []

        def _on_chunk(text_delta: str) -> None:
            if token.cancelled or not text_delta:
                return
            chunks.append(text_delta)
            emit(Frame.text(text_delta))

        streamed = await token.guard(
            self.adapter.complete(
                messages, model=self.model, system_prompt=system_prompt, on_chunk=_on_chunk
            )
        )
        streamed_text = streamed.text or "".join(chunks)

        token.raise_if_cancelled()
        # The tool decision sees the answer that was just streamed
        answer = streamed_text.strip()
        decision_messages = list(messages)
        if answer:
            decision_messages.append({"role": "assistant", "content": answer})
        decision = await token.guard(
            self.adapter.complete(
                decision_messages,
                model=self.model,
                system_prompt=system_prompt,
                tools=get_function_schemas(),
            )
        )
        if not decision.tool_calls:
            return ToolResult(response=answer or decision.text.strip() or NOTHING_TO_ADD)

        turn.advance(TurnState.DISPATCHING)
        ctx = self._context(
            request, token, csv_data=to_csv(data_slice.rows), streamed_text=streamed_text
        )
        result = await dispatch(ctx, decision.tool_calls)
        if result is None:
            return ToolResult(response=answer or NOTHING_TO_ADD)
        return result

    # ---- Entry points ----------------------------------------------------

    async def run(
        self,
        request: DialogueRequest,
        token: CancellationToken,
        emit: Emit,
    ) -> DialogueTurn:
        """Run one phase (``request.mode``) and emit its terminal frame.

        Raises:
            TurnCancelled: The token fired; nothing more is emitted.
            UpstreamServiceError: The model service failed; the caller emits
                the error frame.
        """
        turn = DialogueTurn(
            request.message, has_document=request.has_document, document=request.document
        )
        set_turn_id(turn.id)
        logger.debug(f"[Dialogue] Turn {turn.id} ({request.mode})", extra=tagged("dialogue"))
        try:
            if request.mode == "select":
                result = await self.select(request, token, emit, turn)
            else:
                result = await self.analyze(request, token, emit, turn)
            token.raise_if_cancelled()
        except (TurnCancelled, UpstreamServiceError):
            turn.abort()
            raise
        turn.apply(result)
        turn.advance(TurnState.COMPLETED)
        emit(Frame.from_result(result))
        return turn

    async def converse(
        self,
        request: DialogueRequest,
        grid: GridSource,
        token: CancellationToken,
        emit: Emit,
    ) -> DialogueTurn:
        """Run both phases in-process, resolving the selection against *grid*."""
        turn = DialogueTurn(
            request.message, has_document=request.has_document, document=request.document
        )
        set_turn_id(turn.id)
        try:
            phase1_request = request
            if request.structure is None and request.rows is None:
                phase1_request = dataclasses.replace(request, structure=grid.structure())
            chosen = await self.select(phase1_request, token, emit, turn)
            if chosen.response:
                emit(Frame.text(chosen.response + "\n\n"))

            descriptor = chosen.selection or DataSelectionDescriptor.default(
                "A structure review was requested, so the top-left block of the sheet is used."
            )
            token.raise_if_cancelled()
            data_slice = resolve_selection(grid, descriptor)
            result = await self.analyze(
                dataclasses.replace(request, mode="analyze", selection=descriptor),
                token,
                emit,
                turn,
                data_slice=data_slice,
            )
            token.raise_if_cancelled()
        except (TurnCancelled, UpstreamServiceError):
            turn.abort()
            raise
        turn.apply(result)
        turn.advance(TurnState.COMPLETED)
        emit(Frame.from_result(result))
        return turn


def create_controller(**kwargs) -> DialogueController:
    """Build a controller from config (provider, model tiers)."""
    adapter = kwargs.pop("adapter", None) or create_adapter()
    return DialogueController(
        adapter,
        model=kwargs.pop("model", None) or config.SMART_MODEL,
        structuring_model=kwargs.pop("structuring_model", None) or config.STRUCTURING_MODEL,
        vision_model=kwargs.pop("vision_model", None) or config.VISION_MODEL,
        **kwargs,
    )
