"""REST + SSE endpoints for the FastAPI backend."""

import asyncio
import logging
import time

import anyio
import config
from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from agent.cancellation import CancellationToken
from agent.core import DialogueController, create_controller
from agent.errors import CellReferenceError, TurnCancelled, UpstreamServiceError
from agent.logging import log_error, tagged
from agent.models import Frame
from agent.turn_limits import get_limit

from .models import HealthStatus, LLMRequest
from .streaming import FrameChannel, encode_frame

logger = logging.getLogger("sheetpilot")

router = APIRouter(prefix="/api")

# Injected by app.py lifespan; built lazily otherwise
controller: DialogueController = None  # type: ignore[assignment]
_start_time: float = time.time()


def get_controller() -> DialogueController:
    global controller
    if controller is None:
        controller = create_controller()
    return controller


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    """Cancel *token* once the client goes away."""
    poll = get_limit("transport.disconnect_poll_seconds")
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("client disconnected")
            return
        await asyncio.sleep(poll)


async def _produce(
    ctl: DialogueController,
    dialogue,
    token: CancellationToken,
    channel: FrameChannel,
) -> None:
    try:
        await ctl.run(dialogue, token, channel.emit)
    except TurnCancelled as exc:
        logger.info(f"[Stream] Turn cancelled: {exc}", extra=tagged("stream"))
    except UpstreamServiceError as exc:
        logger.warning(f"[Stream] Language model service failed: {exc}", extra=tagged("stream"))
        channel.emit(Frame.failure(f"The language model service failed: {exc}"))
    except Exception as exc:
        log_error("Dialogue turn failed", exc, context={"mode": dialogue.mode})
        channel.emit(Frame.failure(f"Internal error: {exc}"))
    else:
        if not channel.terminal_sent:
            logger.warning(
                f"[Stream] {dialogue.mode} turn finished without a terminal frame",
                extra=tagged("stream"),
            )
            channel.emit(Frame.failure("The turn ended without a result."))
    finally:
        channel.close()


async def stream_turn(
    ctl: DialogueController,
    dialogue,
    request: Request,
    token: CancellationToken,
):
    """Yield SSE events for one turn while watching for the client to leave.

    Closing the generator early cancels *token*; the producer is awaited
    either way, so any sandbox it holds is destroyed before this returns.
    """
    channel = FrameChannel()
    producer = asyncio.create_task(_produce(ctl, dialogue, token, channel))
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    try:
        async for frame in channel.frames():
            yield encode_frame(frame)
    finally:
        if not producer.done():
            token.cancel("stream closed")
        watcher.cancel()
        with anyio.CancelScope(shield=True):
            await asyncio.gather(producer, watcher, return_exceptions=True)


# ---- Dialogue ----


@router.post("/llm")
async def llm(req: LLMRequest, request: Request, ctl: DialogueController = Depends(get_controller)):
    """Run one phase of a dialogue turn and stream its frames as SSE.

    Text fragments arrive as ``streaming: true`` frames; exactly one
    ``streaming: false`` frame ends the turn unless the client disconnects.
    """
    try:
        dialogue = req.to_dialogue_request()
    except (ValueError, CellReferenceError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    return EventSourceResponse(stream_turn(ctl, dialogue, request, CancellationToken()))


# ---- Health ----


@router.get("/health", response_model=HealthStatus)
async def health():
    return HealthStatus(
        status="ok",
        provider=config.LLM_PROVIDER,
        api_key_configured=bool(config.get_api_key()),
        uptime_seconds=round(time.time() - _start_time, 1),
    )
