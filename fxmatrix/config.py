"""fxmatrix configuration management."""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError

logger = logging.getLogger("fxmatrix.config")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/145.0.0.0 Safari/537.36"
)


class FxSettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Storage
    database_dir: Optional[Path] = Field(default=None, description="Session + log directory")

    # Network
    proxy: Optional[str] = Field(default=None, description="Proxy URL for HTTP and Matrix traffic")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent for embed/media requests")
    connect_timeout: float = Field(default=10.0, description="HTTP connect timeout (s)")
    read_timeout: float = Field(default=120.0, description="HTTP read timeout (s)")
    total_timeout: float = Field(default=140.0, description="Total budget per HTTP call (s)")

    # Embed API
    api_host: str = Field(default="api.fxtwitter.com", description="Embed resolution API host")
    gif_host: str = Field(default="gif.fxtwitter.com", description="Host serving GIF renditions")

    # Session
    restart_delay: float = Field(default=10.0, description="Delay before re-establishing a failed session (s)")
    sync_timeout_ms: int = Field(default=30000, description="Long-poll timeout per sync call (ms)")
    drain_timeout: float = Field(default=30.0, description="Grace for in-flight messages on session teardown (s)")
    e2ee: bool = Field(default=False, description="Enable end-to-end encryption (needs matrix-nio[e2e])")

    # Typing indicator
    typing_interval: float = Field(default=1.0, description="Seconds between typing pulses")
    typing_grace: float = Field(default=1.0, description="Keep typing this long after the last reply (s)")

    # Autojoin
    autojoin: bool = Field(default=True, description="Accept room invites automatically")
    autojoin_rooms: list[str] = Field(default_factory=list, description="Room names allowed for autojoin (empty = any)")
    autojoin_initial_delay: float = Field(default=2.0, description="First autojoin retry delay (s)")
    autojoin_max_delay: float = Field(default=3600.0, description="Give up once the retry delay exceeds this (s)")

    # Dispatch
    encrypted_rooms_only: bool = Field(default=False, description="Only handle messages in encrypted rooms")
    admin_users: list[str] = Field(default_factory=list, description="Users allowed to run admin commands (empty = anyone)")
    status_command: str = Field(default="!status")
    status_reply: str = Field(default="IKIRU")
    shutdown_command: str = Field(default="!die")

    model_config = {"env_prefix": "FX_", "env_file": ".env", "extra": "ignore"}

    @property
    def session_db_path(self) -> Path:
        return self.database_dir / "fxsession.sqlite3"

    @property
    def log_path(self) -> Path:
        return self.database_dir / "fxmatrix.log"


def load_settings(**overrides) -> FxSettings:
    """Load settings from environment, with CLI overrides on top.

    ``None`` overrides are ignored so unset CLI options fall through to
    the environment.

    Raises:
        ConfigError: settings are invalid or ``database_dir`` is missing.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        settings = FxSettings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if settings.database_dir is None:
        raise ConfigError("database_dir is required (--database-dir or FX_DATABASE_DIR)")

    if settings.total_timeout < settings.connect_timeout:
        logger.warning(
            f"total_timeout ({settings.total_timeout}s) is shorter than "
            f"connect_timeout ({settings.connect_timeout}s)"
        )

    return settings
