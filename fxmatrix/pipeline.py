"""Per-message pipeline: resolve each link, reply with text, then media."""

import asyncio
import logging
from typing import Optional

import httpx

from .config import FxSettings
from .errors import FxError, NoContentError
from .fetcher import fetch_upload_job
from .media import select_media
from .publisher import RoomPublisher
from .resolver import format_summary, resolve_post
from .typing_indicator import TypingIndicator

logger = logging.getLogger("fxmatrix.pipeline")


class EmbedPipeline:
    """Resolves post links and republishes them into a room.

    Links are handled one after another in the order given; a failure on
    one link is logged and never stops its siblings.
    """

    def __init__(
        self,
        settings: FxSettings,
        http: httpx.AsyncClient,
        publisher: RoomPublisher,
        max_upload_bytes: Optional[int] = None,
    ):
        self.settings = settings
        self.http = http
        self.publisher = publisher
        self.max_upload_bytes = max_upload_bytes

    async def process_message(self, room_id: str, links: list[str]):
        """Handle every link of one inbound message under a typing indicator."""
        if not links:
            return

        async with TypingIndicator(
            self.publisher,
            room_id,
            interval=self.settings.typing_interval,
            grace=self.settings.typing_grace,
        ):
            for link in links:
                logger.info(f"found {link}")
                try:
                    await self.republish(room_id, link)
                except asyncio.CancelledError:
                    raise
                except NoContentError as e:
                    logger.info(f"  skipped: {e}")
                except FxError as e:
                    logger.warning(f"  error: {type(e).__name__}: {e}")
                except Exception as e:
                    logger.error(f"  unexpected error for {link}: {type(e).__name__}: {e}", exc_info=True)

    async def republish(self, room_id: str, link: str):
        """Resolve one link and post its summary and media.

        The text summary is sent before any media is fetched, so an
        attachment failure leaves the text reply standing.
        """
        post = await resolve_post(
            self.http,
            link,
            api_host=self.settings.api_host,
            total_timeout=self.settings.total_timeout,
        )

        await self.publisher.send_text(room_id, format_summary(post))
        logger.info("  Sent textmsg")

        media = select_media(post, gif_host=self.settings.gif_host)
        if media is None:
            logger.info("  No media")
            return

        job = await fetch_upload_job(
            self.http,
            media,
            max_bytes=self.max_upload_bytes,
            total_timeout=self.settings.total_timeout,
        )
        await self.publisher.send_attachment(room_id, job)
        logger.info(f"  uploaded {media.url} ({job.size} bytes)")
