"""Tests for the per-message resolve → publish pipeline."""

import asyncio

import httpx
import pytest

from conftest import FakePublisher, embed_response, make_post
from fxmatrix.models import StillImageMedia, VideoMedia
from fxmatrix.pipeline import EmbedPipeline

PHOTO_URL = "https://pbs.twimg.com/media/AAA.jpg"
VIDEO_URL = "https://video.twimg.com/v/abc.mp4"
THUMB_URL = "https://pbs.twimg.com/thumb/abc.jpg"


class FakeApi:
    """Embed API + media CDN behind one MockTransport."""

    def __init__(self, posts=None, assets=None):
        self.posts = posts or {}
        self.assets = assets or {}
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request):
        url = str(request.url)
        self.requests.append(url)
        if request.url.host == "api.fxtwitter.com":
            post_id = request.url.path.rsplit("/", 1)[-1]
            if post_id not in self.posts:
                return httpx.Response(404, json=embed_response(None, code=404, message="NOT_FOUND"))
            return httpx.Response(200, json=embed_response(self.posts[post_id]))
        status, body = self.assets.get(url, (404, b""))
        return httpx.Response(status, content=body)

    @property
    def api_requests(self):
        return [u for u in self.requests if "api.fxtwitter.com" in u]


class TestEmbedPipeline:

    @pytest.mark.asyncio
    async def test_duplicate_link_resolved_once(self, settings, mock_http):
        from fxmatrix.links import extract_links

        api = FakeApi(posts={"123": make_post("123")})
        publisher = FakePublisher()
        links = extract_links("https://x.com/user/status/123 https://x.com/user/status/123")

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message("!room", links)

        assert api.api_requests == ["https://api.fxtwitter.com/user/status/123"]
        assert len(publisher.texts) == 1

    @pytest.mark.asyncio
    async def test_text_only_post(self, settings, mock_http):
        api = FakeApi(posts={"1": make_post("1")})
        publisher = FakePublisher()

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message(
                "!room", ["https://x.com/u/status/1"],
            )

        assert len(publisher.texts) == 1
        assert publisher.texts[0][0] == "!room"
        assert publisher.texts[0][1].startswith("Some One (@someone)")
        assert publisher.attachments == []

    @pytest.mark.asyncio
    async def test_photo_post(self, settings, mock_http):
        post = make_post("2", media={"photos": [{"type": "photo", "url": PHOTO_URL, "width": 4, "height": 3}]})
        api = FakeApi(posts={"2": post}, assets={PHOTO_URL: (200, b"jpeg")})
        publisher = FakePublisher()

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message(
                "!room", ["https://x.com/u/status/2"],
            )

        assert len(publisher.texts) == 1
        assert len(publisher.attachments) == 1
        room_id, job = publisher.attachments[0]
        assert room_id == "!room"
        assert isinstance(job.media, StillImageMedia)
        assert job.data == b"jpeg"

    @pytest.mark.asyncio
    async def test_video_post_with_thumbnail(self, settings, mock_http):
        video = {"type": "video", "url": VIDEO_URL, "thumbnail_url": THUMB_URL,
                 "width": 1, "height": 2, "duration": 1.5, "format": "video/mp4"}
        api = FakeApi(
            posts={"3": make_post("3", media={"videos": [video]})},
            assets={VIDEO_URL: (200, b"mp4"), THUMB_URL: (200, b"jpg")},
        )
        publisher = FakePublisher()

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message(
                "!room", ["https://x.com/u/status/3"],
            )

        _, job = publisher.attachments[0]
        assert isinstance(job.media, VideoMedia)
        assert job.thumbnail == b"jpg"

    @pytest.mark.asyncio
    async def test_asset_500_keeps_text_and_logs(self, settings, mock_http, caplog):
        post = make_post("4", media={"photos": [{"type": "photo", "url": PHOTO_URL}]})
        api = FakeApi(posts={"4": post}, assets={PHOTO_URL: (500, b"")})
        publisher = FakePublisher()

        with caplog.at_level("WARNING", logger="fxmatrix.pipeline"):
            async with mock_http(api) as http:
                await EmbedPipeline(settings, http, publisher).process_message(
                    "!room", ["https://x.com/u/status/4"],
                )

        assert len(publisher.texts) == 1
        assert publisher.attachments == []
        assert "FetchError" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_link_does_not_stop_siblings(self, settings, mock_http):
        api = FakeApi(posts={"6": make_post("6", text="second")})
        publisher = FakePublisher()
        links = ["https://x.com/u/status/5", "https://x.com/u/status/6"]

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message("!room", links)

        assert len(api.api_requests) == 2
        assert len(publisher.texts) == 1
        assert "second" in publisher.texts[0][1]

    @pytest.mark.asyncio
    async def test_replies_in_link_order(self, settings, mock_http):
        api = FakeApi(posts={
            "7": make_post("7", text="seven"),
            "8": make_post("8", text="eight"),
        })
        publisher = FakePublisher()
        links = ["https://x.com/u/status/8", "https://x.com/u/status/7"]

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message("!room", links)

        assert ["eight" in t for _, t in publisher.texts] == [True, False]

    @pytest.mark.asyncio
    async def test_send_failure_is_logged_not_raised(self, settings, mock_http, caplog):
        api = FakeApi(posts={"9": make_post("9")})
        publisher = FakePublisher(fail_text=True)

        with caplog.at_level("WARNING", logger="fxmatrix.pipeline"):
            async with mock_http(api) as http:
                await EmbedPipeline(settings, http, publisher).process_message(
                    "!room", ["https://x.com/u/status/9"],
                )

        assert "PublishError" in caplog.text

    @pytest.mark.asyncio
    async def test_typing_runs_for_the_batch(self, settings, mock_http):
        api = FakeApi(posts={"1": make_post("1")})
        publisher = FakePublisher()

        async with mock_http(api) as http:
            await EmbedPipeline(settings, http, publisher).process_message(
                "!room", ["https://x.com/u/status/1"],
            )

        assert ("!room", True) in publisher.typing
        assert publisher.typing[-1] == ("!room", False)

    @pytest.mark.asyncio
    async def test_no_links_no_typing(self, settings, mock_http):
        publisher = FakePublisher()
        async with mock_http(FakeApi()) as http:
            await EmbedPipeline(settings, http, publisher).process_message("!room", [])
        assert publisher.typing == []

    @pytest.mark.asyncio
    async def test_total_timeout_comes_from_settings(self, settings, mock_http, caplog):
        settings.total_timeout = 0.05

        async def slow_api(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=embed_response(make_post("1")))

        publisher = FakePublisher()
        with caplog.at_level("WARNING", logger="fxmatrix.pipeline"):
            async with mock_http(slow_api) as http:
                await EmbedPipeline(settings, http, publisher).process_message(
                    "!room", ["https://x.com/u/status/1"],
                )

        assert publisher.texts == []
        assert "ResolveError" in caplog.text
