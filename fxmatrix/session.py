"""Matrix session boundary — stored credentials, login, resume and sync.

Everything protocol-level is delegated to ``matrix-nio``. This module
only persists the session material, turns nio events into plain
``InboundMessage`` / ``RoomInvite`` records and surfaces any
session-level failure as ``SessionError``.
"""

import logging
import random
import shutil
import sqlite3
from pathlib import Path
from typing import Awaitable, Callable, Optional

from nio import (
    AsyncClient,
    AsyncClientConfig,
    ContentRepositoryConfigError,
    InviteMemberEvent,
    LoginError,
    MatrixRoom,
    RoomMessage,
    SyncError,
    WhoamiError,
)
from pydantic import BaseModel, ValidationError

from .config import FxSettings
from .dispatch import InboundMessage, RoomInvite
from .errors import SessionError
from .publisher import MatrixRoomPublisher

logger = logging.getLogger("fxmatrix.session")

LAZY_LOADING_FILTER = {"room": {"state": {"lazy_load_members": True}}}

_CREATE_TABLE = "CREATE TABLE IF NOT EXISTS FxSessionData (id INTEGER PRIMARY KEY, settings TEXT NOT NULL)"
_UPSERT = """
    INSERT INTO FxSessionData (id, settings)
    VALUES (1, ?)
    ON CONFLICT (id)
    DO UPDATE SET settings = excluded.settings
"""


class SessionData(BaseModel):
    """Durable session material needed to resume without logging in again."""
    homeserver: str
    user_id: str
    device_id: str
    access_token: str


class SessionStore:
    """Single-row SQLite store for ``SessionData``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, data: SessionData):
        conn = sqlite3.connect(self.path, timeout=5)
        try:
            with conn:
                conn.execute(_CREATE_TABLE)
                conn.execute(_UPSERT, (data.model_dump_json(),))
        finally:
            conn.close()

    def load(self) -> SessionData:
        """Load the stored session.

        Raises:
            SessionError: nothing stored yet, or the stored row is unreadable.
        """
        if not self.path.exists():
            raise SessionError(f"No session stored at {self.path}, run `fxmatrix login` first")
        try:
            conn = sqlite3.connect(self.path, timeout=5)
            try:
                row = conn.execute("SELECT settings FROM FxSessionData WHERE id = 1").fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise SessionError(f"Failed to read session store: {e}") from e

        if row is None:
            raise SessionError("Session store is empty, run `fxmatrix login` first")
        try:
            return SessionData.model_validate_json(row[0])
        except ValidationError as e:
            raise SessionError(f"Stored session is corrupt: {e}") from e


def normalize_homeserver(homeserver: str) -> str:
    """Accept a bare server name as well as a full homeserver URL."""
    homeserver = homeserver.strip().rstrip("/")
    if "://" not in homeserver:
        homeserver = f"https://{homeserver}"
    return homeserver


def _client_config(settings: FxSettings) -> AsyncClientConfig:
    return AsyncClientConfig(
        store_sync_tokens=settings.e2ee,
        encryption_enabled=settings.e2ee,
    )


def _store_path(settings: FxSettings) -> str:
    path = settings.database_dir / "nio-store"
    path.mkdir(parents=True, exist_ok=True)
    return str(path)


async def login(
    settings: FxSettings,
    homeserver: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    login_token: Optional[str] = None,
) -> SessionData:
    """Log in and persist a fresh session, wiping any previous state.

    Raises:
        SessionError: missing credentials or the homeserver rejected them.
    """
    if not ((username and password) or login_token):
        raise SessionError("missing username/password or login_token combo!")

    shutil.rmtree(settings.database_dir, ignore_errors=True)
    settings.database_dir.mkdir(parents=True, exist_ok=True)

    homeserver_url = normalize_homeserver(homeserver)
    logger.info(f"Connecting to {homeserver_url}")
    client = AsyncClient(
        homeserver_url,
        user=username or "",
        store_path=_store_path(settings),
        config=_client_config(settings),
        proxy=settings.proxy,
    )
    device_name = f"Element {random.getrandbits(32)}"
    try:
        if username and password:
            logger.info(f"Attempting to login as {username} on {homeserver_url}")
            response = await client.login(password=password, device_name=device_name)
        else:
            logger.info("Attempting to login with token")
            response = await client.login(token=login_token, device_name=device_name)
    finally:
        await client.close()

    if isinstance(response, LoginError):
        raise SessionError(f"Login failed: {response.message}")

    data = SessionData(
        homeserver=homeserver_url,
        user_id=response.user_id,
        device_id=response.device_id,
        access_token=response.access_token,
    )
    SessionStore(settings.session_db_path).save(data)
    logger.info(f"Logged in as {data.user_id} (device {data.device_id})")
    return data


MessageHandler = Callable[[InboundMessage], Awaitable[object]]
InviteHandler = Callable[[RoomInvite], Awaitable[object]]


class MatrixSession:
    """One live sync session built from stored ``SessionData``."""

    def __init__(self, settings: FxSettings, data: SessionData):
        self.settings = settings
        self.data = data
        self.client: Optional[AsyncClient] = None

    @classmethod
    def from_store(cls, settings: FxSettings) -> "MatrixSession":
        return cls(settings, SessionStore(settings.session_db_path).load())

    @property
    def user_id(self) -> str:
        return self.data.user_id

    async def resume(self):
        """Restore the stored login and check the token is still accepted."""
        self.client = AsyncClient(
            self.data.homeserver,
            user=self.data.user_id,
            device_id=self.data.device_id,
            store_path=_store_path(self.settings),
            config=_client_config(self.settings),
            proxy=self.settings.proxy,
        )
        self.client.restore_login(self.data.user_id, self.data.device_id, self.data.access_token)

        response = await self.client.whoami()
        if isinstance(response, WhoamiError):
            raise SessionError(f"Stored session rejected: {response.message} ({response.status_code})")
        logger.info(f"Resumed session for {self.data.user_id} on {self.data.homeserver}")

    async def sync_once(self) -> str:
        """Initial full sync; returns the cursor to continue from."""
        logger.info("Syncing...")
        response = await self.client.sync(
            timeout=0, sync_filter=LAZY_LOADING_FILTER, full_state=True,
        )
        if isinstance(response, SyncError):
            raise SessionError(f"Initial sync failed: {response.message}")
        return response.next_batch

    async def max_upload_size(self) -> Optional[int]:
        """Homeserver upload limit in bytes, if it advertises one."""
        try:
            response = await self.client.content_repository_config()
        except Exception as e:
            logger.debug(f"Upload limit query failed: {e}")
            return None
        if isinstance(response, ContentRepositoryConfigError):
            return None
        return response.upload_size

    def publisher(self) -> MatrixRoomPublisher:
        return MatrixRoomPublisher(self.client, e2ee=self.settings.e2ee)

    def install_handlers(self, on_message: MessageHandler, on_invite: InviteHandler):
        """Translate nio callbacks into dispatcher records."""
        client = self.client

        async def _on_room_message(room: MatrixRoom, event: RoomMessage):
            content = event.source.get("content", {}) if isinstance(event.source, dict) else {}
            relates_to = content.get("m.relates_to") or {}
            await on_message(InboundMessage(
                room_id=room.room_id,
                sender=event.sender,
                body=content.get("body", "") if isinstance(content.get("body"), str) else "",
                msgtype=content.get("msgtype", ""),
                room_joined=room.room_id in client.rooms,
                room_encrypted=bool(room.encrypted),
                relation_type=relates_to.get("rel_type") if isinstance(relates_to, dict) else None,
            ))

        async def _on_invite(room: MatrixRoom, event: InviteMemberEvent):
            if event.membership != "invite":
                return
            await on_invite(RoomInvite(
                room_id=room.room_id,
                sender=event.sender,
                invitee=event.state_key,
                room_name=room.name,
            ))

        client.add_event_callback(_on_room_message, RoomMessage)
        client.add_event_callback(_on_invite, InviteMemberEvent)

    async def _maintain_keys(self):
        client = self.client
        if client.should_upload_keys:
            await client.keys_upload()
        if client.should_query_keys:
            await client.keys_query()
        if client.should_claim_keys:
            await client.keys_claim(client.get_users_for_key_claiming())
        await client.send_to_device_messages()

    async def sync_loop(self, since: str, should_stop: Callable[[], bool]):
        """Long-poll sync until ``should_stop()`` is true between iterations.

        Raises:
            SessionError: the homeserver answered a sync with an error.
        """
        while not should_stop():
            if self.settings.e2ee:
                await self._maintain_keys()
            response = await self.client.sync(
                timeout=self.settings.sync_timeout_ms,
                since=since,
                sync_filter=LAZY_LOADING_FILTER,
            )
            if isinstance(response, SyncError):
                raise SessionError(f"Sync failed: {response.message}")
            since = response.next_batch

    async def close(self):
        if self.client is not None:
            await self.client.close()
            self.client = None
