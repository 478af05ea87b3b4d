"""Data shapes: embed API payloads, selected media, upload jobs."""

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


# ════════════════════════════════════════════════════════
# Embed API payload. Only the fields we use are declared,
# everything else in the response is ignored.
# ════════════════════════════════════════════════════════

class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Author(_ApiModel):
    name: str
    screen_name: str
    avatar_url: Optional[str] = None
    id: Optional[str] = None


class Video(_ApiModel):
    url: str
    type: str = "video"
    format: str = "video/mp4"
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    thumbnail_url: Optional[str] = None


class Photo(_ApiModel):
    url: str
    type: str = "photo"
    width: Optional[int] = None
    height: Optional[int] = None


class MosaicFormats(_ApiModel):
    webp: Optional[str] = None
    jpeg: Optional[str] = None


class Mosaic(_ApiModel):
    formats: MosaicFormats
    type: str = "mosaic_photo"


class MediaPayload(_ApiModel):
    videos: Optional[list[Video]] = None
    photos: Optional[list[Photo]] = None
    mosaic: Optional[Mosaic] = None


class Post(_ApiModel):
    """A resolved post, as normalized by the embed API."""
    id: str
    author: Author
    text: str = ""
    created_at: Optional[str] = None
    created_timestamp: Optional[int] = None
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    views: Optional[int] = None
    media: Optional[MediaPayload] = None


class EmbedResponse(_ApiModel):
    code: int
    message: str = ""
    tweet: Optional[Post] = None


# ════════════════════════════════════════════════════════
# Selected media: at most one of these per post.
# ════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VideoMedia:
    url: str
    filename: str
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None  # seconds
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True)
class AnimatedImageMedia:
    url: str
    filename: str
    content_type: str = "image/gif"


@dataclass(frozen=True)
class CompositeImageMedia:
    url: str
    filename: str
    content_type: str = "image/webp"


@dataclass(frozen=True)
class StillImageMedia:
    url: str
    filename: str
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None


Media = Union[VideoMedia, AnimatedImageMedia, CompositeImageMedia, StillImageMedia]


@dataclass
class UploadJob:
    """Fully buffered attachment, ready to hand to the room publisher."""
    media: Media
    data: bytes
    filename: str
    content_type: str
    thumbnail: Optional[bytes] = None
    thumbnail_content_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.data)
