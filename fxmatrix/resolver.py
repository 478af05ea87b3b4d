"""Embed resolution — turn a post link into a normalized post via the embed API."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import httpx
from pydantic import ValidationError

from .errors import MalformedResponseError, NoContentError, ResolveError
from .models import EmbedResponse, Post

logger = logging.getLogger("fxmatrix.resolver")


def api_url_for(link: str, api_host: str) -> str:
    """Rewrite a post link so it points at the embed API host."""
    parts = urlsplit(link)
    return urlunsplit((parts.scheme, api_host, parts.path, parts.query, ""))


async def resolve_post(
    http: httpx.AsyncClient,
    link: str,
    api_host: str = "api.fxtwitter.com",
    total_timeout: Optional[float] = None,
) -> Post:
    """Resolve one post link through the embed API.

    Args:
        http: Shared HTTP client
        link: Candidate link (already filtered by ``extract_links``)
        api_host: Host serving the embed API
        total_timeout: Ceiling for the whole request (``settings.total_timeout``);
            the client's ``httpx.Timeout`` only bounds each phase

    Returns:
        The resolved post.

    Raises:
        ResolveError: network failure, timeout or non-2xx status
        MalformedResponseError: body is not the expected JSON shape
        NoContentError: the API reports nothing to embed
    """
    url = api_url_for(link, api_host)
    try:
        response = await asyncio.wait_for(http.get(url), timeout=total_timeout)
    except asyncio.TimeoutError as e:
        raise ResolveError(f"Embed API timed out after {total_timeout}s") from e
    except httpx.HTTPError as e:
        raise ResolveError(f"Failed to fetch {api_host} results: {type(e).__name__}: {e}") from e

    if response.is_error:
        raise ResolveError(
            f"Embed API returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    try:
        payload = response.json()
    except ValueError as e:
        raise MalformedResponseError(f"Embed API body is not JSON: {e}") from e

    try:
        parsed = EmbedResponse.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(f"Unexpected embed API response shape: {e}") from e

    if parsed.tweet is None:
        raise NoContentError(parsed.code, parsed.message)

    return parsed.tweet


def _format_count(value) -> str:
    return "?" if value is None else str(value)


def format_summary(post: Post) -> str:
    """Render the plain-text reply for a resolved post."""
    if post.created_timestamp is not None:
        created = datetime.fromtimestamp(post.created_timestamp, tz=timezone.utc)
        created_text = created.strftime("%Y-%m-%d %H:%M:%S")
    else:
        created_text = post.created_at or ""

    return (
        f"{post.author.name} (@{post.author.screen_name})\n"
        f"{post.text}\n"
        f"💬{post.replies} ♻️{post.retweets} ❤️{post.likes} 👁️{_format_count(post.views)}\n"
        f"{created_text}"
    )
