"""Pytest configuration and shared fixtures."""

from typing import Optional

import httpx
import pytest

from fxmatrix.config import FxSettings
from fxmatrix.errors import JoinRoomError, PublishError
from fxmatrix.publisher import RoomPublisher


class FakePublisher(RoomPublisher):
    """Records everything posted to rooms instead of talking to a homeserver."""

    def __init__(self, fail_text: bool = False, fail_typing: bool = False, join_failures: int = 0):
        self.texts: list[tuple[str, str]] = []
        self.attachments: list[tuple[str, object]] = []
        self.typing: list[tuple[str, bool]] = []
        self.joins: list[str] = []
        self.fail_text = fail_text
        self.fail_typing = fail_typing
        self.join_failures = join_failures

    async def send_text(self, room_id, text):
        if self.fail_text:
            raise PublishError("send refused")
        self.texts.append((room_id, text))

    async def send_attachment(self, room_id, job):
        self.attachments.append((room_id, job))

    async def set_typing(self, room_id, typing):
        if self.fail_typing:
            raise PublishError("typing refused")
        self.typing.append((room_id, typing))

    async def join_room(self, room_id):
        self.joins.append(room_id)
        if len(self.joins) <= self.join_failures:
            raise JoinRoomError("M_FORBIDDEN")


def make_post(post_id: str = "123", media: Optional[dict] = None, **overrides) -> dict:
    """An embed API ``tweet`` object."""
    post = {
        "id": post_id,
        "url": f"https://x.com/someone/status/{post_id}",
        "text": "hello world",
        "author": {
            "id": "42",
            "name": "Some One",
            "screen_name": "someone",
            "avatar_url": "https://pbs.twimg.com/profile_images/1/a.jpg",
        },
        "created_at": "Wed Oct 10 20:19:24 +0000 2018",
        "created_timestamp": 1539202764,
        "likes": 10,
        "retweets": 2,
        "replies": 3,
        "views": 1000,
    }
    if media is not None:
        post["media"] = media
    post.update(overrides)
    return post


def embed_response(post: Optional[dict] = None, code: int = 200, message: str = "OK") -> dict:
    body = {"code": code, "message": message}
    if post is not None:
        body["tweet"] = post
    return body


@pytest.fixture
def settings(tmp_path):
    return FxSettings(
        database_dir=tmp_path,
        typing_interval=0.01,
        typing_grace=0.02,
        restart_delay=0.01,
        drain_timeout=1.0,
        autojoin_initial_delay=0.001,
        autojoin_max_delay=0.01,
    )


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def mock_http():
    """Build an ``httpx.AsyncClient`` whose requests go to a handler function."""
    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _make
