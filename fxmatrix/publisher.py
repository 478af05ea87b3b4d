"""Room publishing — the boundary for posting into Matrix rooms."""

import io
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from nio import (
    AsyncClient,
    JoinError,
    RoomSendError,
    RoomTypingError,
    UploadError,
)

from .errors import JoinRoomError, PublishError
from .models import AnimatedImageMedia, CompositeImageMedia, StillImageMedia, UploadJob, VideoMedia

logger = logging.getLogger("fxmatrix.publisher")

TYPING_NOTICE_TIMEOUT_MS = 30_000


class RoomPublisher(ABC):
    """Abstract room publisher.

    Content posts (text, attachments) raise ``PublishError`` on failure.
    Typing pulses may raise too; callers treat them as best-effort.
    """

    @abstractmethod
    async def send_text(self, room_id: str, text: str) -> None:
        """Post a plain-text message."""
        ...

    @abstractmethod
    async def send_attachment(self, room_id: str, job: UploadJob) -> None:
        """Upload a fully buffered attachment and post it."""
        ...

    @abstractmethod
    async def set_typing(self, room_id: str, typing: bool) -> None:
        """Assert or clear the typing indicator."""
        ...

    @abstractmethod
    async def join_room(self, room_id: str) -> None:
        """Join a room we were invited to."""
        ...


def build_attachment_info(job: UploadJob) -> dict[str, Any]:
    """Build the ``info`` block for an attachment event."""
    media = job.media
    info: dict[str, Any] = {"mimetype": job.content_type, "size": job.size}
    if isinstance(media, (VideoMedia, StillImageMedia)):
        if media.width is not None:
            info["w"] = media.width
        if media.height is not None:
            info["h"] = media.height
    if isinstance(media, VideoMedia) and media.duration is not None:
        info["duration"] = int(media.duration * 1000)
    return info


def thumbnail_filename(filename: str) -> str:
    return f"{filename.rsplit('.', 1)[0]}_thumb.jpg"


def attachment_msgtype(job: UploadJob) -> str:
    media = job.media
    if isinstance(media, VideoMedia):
        return "m.video"
    if isinstance(media, (AnimatedImageMedia, CompositeImageMedia, StillImageMedia)):
        return "m.image"
    return "m.file"


class MatrixRoomPublisher(RoomPublisher):
    """Room publisher backed by a logged-in ``nio.AsyncClient``."""

    def __init__(self, client: AsyncClient, e2ee: bool = False):
        self._client = client
        self._e2ee = e2ee

    def _is_encrypted(self, room_id: str) -> bool:
        room = self._client.rooms.get(room_id)
        return bool(room is not None and room.encrypted)

    async def _send_content(self, room_id: str, content: dict[str, Any]) -> None:
        response = await self._client.room_send(
            room_id=room_id,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=self._e2ee,
        )
        if isinstance(response, RoomSendError):
            raise PublishError(f"Send to {room_id} failed: {response.message} ({response.status_code})")

    async def _upload(
        self, data: bytes, content_type: str, filename: str, encrypt: bool,
    ) -> tuple[str, Optional[dict]]:
        response, keys = await self._client.upload(
            io.BytesIO(data),
            content_type=content_type,
            filename=filename,
            encrypt=encrypt,
            filesize=len(data),
        )
        if isinstance(response, UploadError):
            raise PublishError(f"Upload of {filename} failed: {response.message}")
        return response.content_uri, keys

    async def send_text(self, room_id: str, text: str) -> None:
        await self._send_content(room_id, {"msgtype": "m.text", "body": text})

    async def send_attachment(self, room_id: str, job: UploadJob) -> None:
        encrypt = self._e2ee and self._is_encrypted(room_id)
        info = build_attachment_info(job)

        if job.thumbnail is not None:
            thumb_uri, thumb_keys = await self._upload(
                job.thumbnail, job.thumbnail_content_type, thumbnail_filename(job.filename), encrypt,
            )
            info["thumbnail_info"] = {
                "mimetype": job.thumbnail_content_type,
                "size": len(job.thumbnail),
            }
            if thumb_keys:
                info["thumbnail_file"] = {**thumb_keys, "url": thumb_uri}
            else:
                info["thumbnail_url"] = thumb_uri

        content_uri, keys = await self._upload(job.data, job.content_type, job.filename, encrypt)
        content: dict[str, Any] = {
            "msgtype": attachment_msgtype(job),
            "body": job.filename,
            "filename": job.filename,
            "info": info,
        }
        if keys:
            content["file"] = {**keys, "url": content_uri}
        else:
            content["url"] = content_uri

        await self._send_content(room_id, content)

    async def set_typing(self, room_id: str, typing: bool) -> None:
        response = await self._client.room_typing(
            room_id, typing_state=typing, timeout=TYPING_NOTICE_TIMEOUT_MS,
        )
        if isinstance(response, RoomTypingError):
            raise PublishError(f"Typing notice for {room_id} failed: {response.message}")

    async def join_room(self, room_id: str) -> None:
        response = await self._client.join(room_id)
        if isinstance(response, JoinError):
            raise JoinRoomError(f"Join {room_id} failed: {response.message} ({response.status_code})")
