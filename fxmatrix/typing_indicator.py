"""Typing indicator kept alive while a message's links are processed."""

import asyncio
import logging
import time
from typing import Optional

from .publisher import RoomPublisher

logger = logging.getLogger("fxmatrix.typing")


class TypingIndicator:
    """Keeps asserting 'typing' in a room every ``interval`` seconds until stopped.

    Usage:
        async with TypingIndicator(publisher, room_id):
            await resolve_and_reply()

    On exit the loop keeps running for ``grace`` seconds so the indicator
    does not drop before the last reply shows up, then it is cancelled and
    the typing state is cleared.

    Safety: auto-stops after max_duration seconds even if the wrapped
    work hangs. Default = 5 minutes.
    """

    def __init__(
        self,
        publisher: RoomPublisher,
        room_id: str,
        interval: float = 1.0,
        grace: float = 1.0,
        max_duration: float = 300.0,
    ):
        self._publisher = publisher
        self._room_id = room_id
        self._interval = interval
        self._grace = grace
        self._max_duration = max_duration
        self._task: Optional[asyncio.Task] = None
        self.pulses = 0

    async def _pulse(self, typing: bool):
        try:
            await self._publisher.set_typing(self._room_id, typing)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # best-effort
            logger.debug(f"Typing notice for {self._room_id} failed: {e}")

    async def _loop(self):
        start = time.monotonic()
        try:
            while True:
                if time.monotonic() - start > self._max_duration:
                    logger.warning(
                        f"Typing indicator timeout ({self._max_duration}s) for room {self._room_id}"
                    )
                    break
                await self._pulse(True)
                self.pulses += 1
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self):
        """Wait out the grace window, then cancel the loop and clear typing."""
        if self._task is None:
            return
        try:
            if self._grace > 0 and not self._task.done():
                await asyncio.sleep(self._grace)
        finally:
            # runs even when the owner is cancelled mid-grace
            task, self._task = self._task, None
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await self._pulse(False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, *exc):
        await self.stop()
