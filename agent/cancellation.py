"""Per-request cancellation token.

One token is created per request and threaded through every awaited step.
Cancellation is cooperative: steps call ``raise_if_cancelled()`` before each
side effect, and long awaits go through ``guard()`` so they are abandoned the
moment the token fires.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from .errors import TurnCancelled
from .logging import tagged

logger = logging.getLogger("sheetpilot")

T = TypeVar("T")


class CancellationToken:
    """Turn-scoped cancellation flag backed by an ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.debug(f"[Cancel] Token set: {reason}", extra=tagged("cancel"))
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the token fires first.

        If the token fires, the pending work is cancelled and awaited so its
        own cleanup (``finally`` blocks) runs before ``TurnCancelled`` is raised.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise
        if work.done():
            waiter.cancel()
            return work.result()
        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.debug(f"[Cancel] Abandoned work raised while unwinding: {exc}")
        raise TurnCancelled(self.reason or "cancelled")
