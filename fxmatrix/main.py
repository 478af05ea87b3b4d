"""fxmatrix — main entry points."""

import logging
from typing import Optional

import httpx

from .config import FxSettings
from .errors import ConfigError
from .fetcher import build_http_client
from .session import MatrixSession
from .shutdown import ShutdownToken
from .supervisor import SessionSupervisor

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("fxmatrix")


def setup_logging(settings: FxSettings, debug: bool = False, log_to_file: bool = True):
    """Log to stderr and ``<database_dir>/fxmatrix.log``."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_to_file:
        settings.database_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_path, encoding="utf-8"))

    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers, force=True)
    if debug:
        logger.setLevel(logging.DEBUG)
    # nio is chatty at INFO
    logging.getLogger("nio").setLevel(logging.WARNING)


async def run(settings: FxSettings, shutdown: Optional[ShutdownToken] = None):
    """Run the bot until a signal or the admin shutdown command."""
    shutdown = shutdown or ShutdownToken()
    shutdown.install_signal_handlers()

    try:
        http = build_http_client(settings)
    except (ValueError, httpx.InvalidURL) as e:
        raise ConfigError(f"Cannot build HTTP client: {e}") from e

    async with http:
        supervisor = SessionSupervisor(
            settings,
            http,
            session_factory=lambda: MatrixSession.from_store(settings),
            shutdown=shutdown,
        )
        logger.info("fxmatrix is running. Press Ctrl+C to stop.")
        await supervisor.run()

