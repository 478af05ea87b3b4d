"""Event dispatch — decides what to do with each inbound room event.

Message policy, applied in order before any link scanning:
    1. room not joined           → ignore
    2. sent by this account      → ignore
    3. unencrypted room          → ignore (only with encrypted_rooms_only)
    4. edit of an earlier event  → ignore
    5. not an m.text body        → ignore
    6. admin command             → handle, stop
    7. post links                → spawn the embed pipeline
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .autojoin import AutojoinRetrier
from .config import FxSettings
from .links import extract_links
from .pipeline import EmbedPipeline
from .publisher import RoomPublisher
from .shutdown import ShutdownToken

logger = logging.getLogger("fxmatrix.dispatch")


@dataclass
class InboundMessage:
    """A room message, stripped down to what the dispatch policy needs."""
    room_id: str
    sender: str
    body: str
    msgtype: str = "m.text"
    room_joined: bool = True
    room_encrypted: bool = False
    relation_type: Optional[str] = None

    @property
    def is_edit(self) -> bool:
        return self.relation_type == "m.replace"


@dataclass
class RoomInvite:
    room_id: str
    sender: str
    invitee: str
    room_name: Optional[str] = None


class EventDispatcher:
    """Routes inbound messages and invites for one sync session.

    Work is spawned as independent tasks so a slow embed never blocks
    the sync loop. ``aclose()`` drains or cancels them on teardown.
    """

    def __init__(
        self,
        settings: FxSettings,
        user_id: str,
        pipeline: EmbedPipeline,
        publisher: RoomPublisher,
        shutdown: ShutdownToken,
    ):
        self.settings = settings
        self.user_id = user_id
        self.pipeline = pipeline
        self.publisher = publisher
        self.shutdown = shutdown
        self._message_tasks: set[asyncio.Task] = set()
        self._join_tasks: set[asyncio.Task] = set()

    # ── Messages ─────────────────────────────────────────────

    def _is_admin(self, sender: str) -> bool:
        admins = self.settings.admin_users
        return not admins or sender in admins

    async def on_message(self, message: InboundMessage) -> Optional[asyncio.Task]:
        """Apply the dispatch policy; returns the spawned pipeline task, if any."""
        if not message.room_joined:
            return None
        if message.sender == self.user_id:
            return None
        if self.settings.encrypted_rooms_only and not message.room_encrypted:
            return None
        if message.is_edit:
            return None
        if message.msgtype != "m.text":
            return None

        if await self._handle_command(message):
            return None

        links = extract_links(message.body)
        if not links:
            return None

        logger.info(f"[{message.room_id}] {message.sender}: {len(links)} link(s)")
        task = asyncio.create_task(self.pipeline.process_message(message.room_id, links))
        self._message_tasks.add(task)
        task.add_done_callback(self._message_tasks.discard)
        return task

    async def _handle_command(self, message: InboundMessage) -> bool:
        command = message.body.strip()
        if command not in (self.settings.status_command, self.settings.shutdown_command):
            return False
        if not self._is_admin(message.sender):
            logger.warning(f"Ignoring {command} from non-admin {message.sender}")
            return True

        if command == self.settings.status_command:
            logger.info(f"{command} from {message.sender} in {message.room_id}")
            try:
                await self.publisher.send_text(message.room_id, self.settings.status_reply)
            except Exception as e:
                logger.warning(f"Status reply to {message.room_id} failed: {e}")
        else:
            logger.info(f"{command} from {message.sender} in {message.room_id}")
            self.shutdown.set(f"{command} from {message.sender}")
        return True

    # ── Invites ──────────────────────────────────────────────

    def _autojoin_allowed(self, invite: RoomInvite) -> bool:
        if not self.settings.autojoin:
            return False
        allowed = self.settings.autojoin_rooms
        return not allowed or invite.room_name in allowed

    async def on_invite(self, invite: RoomInvite) -> Optional[asyncio.Task]:
        """Spawn an autojoin retrier for invites addressed to us."""
        if invite.invitee != self.user_id:
            return None
        if not self._autojoin_allowed(invite):
            logger.info(f"Not autojoining {invite.room_id} (invite from {invite.sender})")
            return None

        logger.info(f"Autojoining room {invite.room_id} (invite from {invite.sender})")
        retrier = AutojoinRetrier(
            invite.room_id,
            self.publisher.join_room,
            initial_delay=self.settings.autojoin_initial_delay,
            max_delay=self.settings.autojoin_max_delay,
        )
        task = asyncio.create_task(retrier.run())
        self._join_tasks.add(task)
        task.add_done_callback(self._join_tasks.discard)
        return task

    # ── Teardown ─────────────────────────────────────────────

    @property
    def pending(self) -> int:
        return len(self._message_tasks) + len(self._join_tasks)

    async def aclose(self, drain_timeout: float = 0.0):
        """Give in-flight messages ``drain_timeout`` seconds, then cancel everything."""
        if self._message_tasks and drain_timeout > 0:
            await asyncio.wait(set(self._message_tasks), timeout=drain_timeout)

        leftovers = self._message_tasks | self._join_tasks
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
            logger.info(f"Cancelled {len(leftovers)} pending task(s)")
