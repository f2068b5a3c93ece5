"""Frame channel: controller task → async SSE event stream."""

import asyncio
import json
import logging
from typing import AsyncIterator, Optional

from agent.logging import tagged
from agent.models import Frame

logger = logging.getLogger("sheetpilot")


class FrameChannel:
    """Ordered queue of ``Frame`` values between one producer and one consumer.

    Usage:
        channel = FrameChannel()
        controller.run(request, token, channel.emit)   # producer task
        async for frame in channel.frames():           # SSE generator
            yield encode_frame(frame)

    ``close()`` ends the stream; frames emitted after it are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[Frame]] = asyncio.Queue()
        self._closed = False
        self.terminal_sent = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, frame: Frame) -> None:
        if self._closed:
            logger.debug("[Stream] Frame after close dropped", extra=tagged("stream"))
            return
        if not frame.streaming:
            self.terminal_sent = True
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield frames in emission order until the channel is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                break
            yield frame


def encode_frame(frame: Frame) -> dict:
    """SSE event dict for sse-starlette; ``data`` is one self-contained JSON object."""
    return {"data": json.dumps(frame.to_wire(), default=str)}
