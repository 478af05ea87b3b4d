"""Session supervisor — keeps one sync session alive, forever.

    Start → SyncActive → (any error) → wait restart_delay → Start

The loop ends only when the shutdown token is set (signal or the admin
shutdown command). Every session-level failure (stored session missing,
resume rejected, initial sync, sync loop, transport errors) tears the
session down and starts over instead of ending the process.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

import httpx

from .config import FxSettings
from .dispatch import EventDispatcher
from .pipeline import EmbedPipeline
from .publisher import RoomPublisher
from .shutdown import ShutdownToken

logger = logging.getLogger("fxmatrix.supervisor")


class Session(Protocol):
    """What the supervisor needs from a sync session (see ``MatrixSession``)."""

    user_id: str

    async def resume(self) -> None: ...
    async def sync_once(self) -> str: ...
    async def max_upload_size(self) -> Optional[int]: ...
    def publisher(self) -> RoomPublisher: ...
    def install_handlers(self, on_message, on_invite) -> None: ...
    async def sync_loop(self, since: str, should_stop: Callable[[], bool]) -> None: ...
    async def close(self) -> None: ...


class SessionSupervisor:
    """Owns the sync session and restarts it after failures.

    Args:
        settings: Loaded settings
        http: Shared HTTP client for embed + media requests
        session_factory: Builds a fresh, not yet resumed session
        shutdown: Process-wide shutdown token
    """

    def __init__(
        self,
        settings: FxSettings,
        http: httpx.AsyncClient,
        session_factory: Callable[[], Session],
        shutdown: ShutdownToken,
    ):
        self.settings = settings
        self.http = http
        self.session_factory = session_factory
        self.shutdown = shutdown
        self.sessions_started = 0
        self.failures = 0

    async def run(self):
        """Run sessions until shutdown is requested."""
        while not self.shutdown.is_set():
            try:
                await self.run_session_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                logger.error(f"Session failed: {type(e).__name__}: {e}", exc_info=True)
                if self.shutdown.is_set():
                    break
                logger.info(f"Restarting in {self.settings.restart_delay:g}s")
                await self.shutdown.wait(timeout=self.settings.restart_delay)

        logger.info(f"Supervisor stopped ({self.shutdown.reason})")

    async def run_session_once(self):
        """One full session lifecycle. Returns cleanly only on shutdown."""
        self.sessions_started += 1
        session = self.session_factory()
        dispatcher: Optional[EventDispatcher] = None
        try:
            await session.resume()
            since = await session.sync_once()

            max_upload = await session.max_upload_size()
            logger.info(f"max_upload_size = {max_upload}")

            publisher = session.publisher()
            pipeline = EmbedPipeline(self.settings, self.http, publisher, max_upload_bytes=max_upload)
            dispatcher = EventDispatcher(
                self.settings, session.user_id, pipeline, publisher, self.shutdown,
            )
            session.install_handlers(dispatcher.on_message, dispatcher.on_invite)

            await session.sync_loop(since, self.shutdown.is_set)
        finally:
            if dispatcher is not None:
                await dispatcher.aclose(drain_timeout=self.settings.drain_timeout)
            await session.close()
