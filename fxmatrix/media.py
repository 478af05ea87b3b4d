"""Media selection — pick the single asset to republish for a post.

Priority, first match wins:
    1. first video (GIF-type videos become an animated image)
    2. composite "mosaic" image (WEBP rendition)
    3. first still photo
    4. nothing

A post may carry several images; only one representative asset is ever
republished.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from .models import (
    AnimatedImageMedia,
    CompositeImageMedia,
    Media,
    Post,
    StillImageMedia,
    VideoMedia,
)

logger = logging.getLogger("fxmatrix.media")


def _filename_from_url(url: str) -> str:
    path = urlsplit(url).path
    return path.rstrip("/").rsplit("/", 1)[-1]


def image_content_type(filename: str) -> str:
    """Infer an image MIME type from a filename extension."""
    if filename.endswith(".jpg"):
        return "image/jpeg"
    return f"image/{filename.rsplit('.', 1)[-1]}"


def _gif_rendition(url: str, gif_host: str) -> str:
    parts = urlsplit(url)
    path = parts.path.replace(".mp4", ".gif")
    return urlunsplit((parts.scheme, gif_host, path, parts.query, parts.fragment))


def select_media(post: Post, gif_host: str = "gif.fxtwitter.com") -> Optional[Media]:
    """Select at most one media item from a resolved post.

    Returns None for text-only posts, which is a normal outcome.
    """
    payload = post.media
    if payload is None:
        return None

    if payload.videos:
        video = payload.videos[0]
        if video.type == "gif":
            url = _gif_rendition(video.url, gif_host)
            return AnimatedImageMedia(url=url, filename=_filename_from_url(url))
        return VideoMedia(
            url=video.url,
            filename=_filename_from_url(video.url),
            content_type=video.format,
            width=video.width,
            height=video.height,
            duration=video.duration,
            thumbnail_url=video.thumbnail_url,
        )

    if payload.mosaic is not None and payload.mosaic.formats.webp:
        return CompositeImageMedia(
            url=payload.mosaic.formats.webp,
            filename=f"{post.id}_mosaic.webp",
        )

    if payload.photos:
        photo = payload.photos[0]
        filename = _filename_from_url(photo.url)
        return StillImageMedia(
            url=photo.url,
            filename=filename,
            content_type=image_content_type(filename),
            width=photo.width,
            height=photo.height,
        )

    logger.debug(f"Post {post.id} has a media block but nothing selectable")
    return None
