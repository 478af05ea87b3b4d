"""Attachment fetching — download selected media into an upload job."""

import asyncio
import logging
from typing import Optional

import httpx

from .config import FxSettings
from .errors import FetchError
from .models import Media, UploadJob, VideoMedia

logger = logging.getLogger("fxmatrix.fetcher")

def build_http_client(settings: FxSettings) -> httpx.AsyncClient:
    """Create the process-wide HTTP client for embed and media requests."""
    timeout = httpx.Timeout(
        settings.total_timeout,
        connect=settings.connect_timeout,
        read=settings.read_timeout,
    )
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        proxy=settings.proxy,
        headers={"User-Agent": settings.user_agent},
    )


async def _download(
    http: httpx.AsyncClient,
    url: str,
    max_bytes: Optional[int],
) -> bytes:
    async with http.stream("GET", url) as response:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"Bad status for {url}: HTTP {response.status_code}") from e

        declared = response.headers.get("content-length")
        if max_bytes and declared and declared.isdigit() and int(declared) > max_bytes:
            raise FetchError(
                f"{url} is {declared} bytes, over the {max_bytes} byte upload limit"
            )

        return await response.aread()


async def fetch_bytes(
    http: httpx.AsyncClient,
    url: str,
    max_bytes: Optional[int] = None,
    total_timeout: Optional[float] = None,
) -> bytes:
    """GET a URL and return the whole body.

    Raises:
        FetchError: network failure, timeout, non-2xx status or an
            advertised size above ``max_bytes``.
    """
    try:
        return await asyncio.wait_for(_download(http, url, max_bytes), timeout=total_timeout)
    except asyncio.TimeoutError as e:
        raise FetchError(f"Timed out fetching {url} after {total_timeout}s") from e
    except httpx.HTTPError as e:
        raise FetchError(f"Failed to fetch {url}: {type(e).__name__}: {e}") from e


async def fetch_upload_job(
    http: httpx.AsyncClient,
    media: Media,
    max_bytes: Optional[int] = None,
    total_timeout: Optional[float] = None,
) -> UploadJob:
    """Download the asset (and thumbnail, for videos) for a selected media item.

    No retries: a failure here drops the attachment, the text reply that
    was already sent stands.
    """
    logger.info(f"  Fetching {media.url}")
    data = await fetch_bytes(http, media.url, max_bytes=max_bytes, total_timeout=total_timeout)

    thumbnail = None
    if isinstance(media, VideoMedia) and media.thumbnail_url:
        logger.info(f"  Fetching thumbnail {media.thumbnail_url}")
        thumbnail = await fetch_bytes(
            http, media.thumbnail_url, max_bytes=max_bytes, total_timeout=total_timeout,
        )

    return UploadJob(
        media=media,
        data=data,
        filename=media.filename,
        content_type=media.content_type,
        thumbnail=thumbnail,
    )
