"""Exception hierarchy for fxmatrix.

Errors are classified by type, not by string matching. The pipeline
catches these per link; the supervisor catches ``SessionError`` (and
anything unexpected) per session.
"""

from typing import Optional


class FxError(Exception):
    """Base class for all fxmatrix errors."""
    pass


class ConfigError(FxError):
    """Missing or invalid configuration; the process cannot start."""
    pass


class ResolveError(FxError):
    """The embed API call failed (network, timeout, bad status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ResolveError):
    """The embed API returned a body that is not the expected JSON shape."""
    pass


class NoContentError(ResolveError):
    """The embed API answered but reported nothing to embed.

    Deleted, suspended and private posts all end up here.
    """

    def __init__(self, code: int, message: str):
        super().__init__(f"nothing to embed (code={code}, message={message!r})")
        self.code = code
        self.api_message = message


class FetchError(FxError):
    """Downloading a media asset or its thumbnail failed."""
    pass


class PublishError(FxError):
    """The homeserver rejected a send, upload or typing request."""
    pass


class JoinRoomError(PublishError):
    """Joining a room failed."""
    pass


class SessionError(FxError):
    """The sync session cannot continue and must be re-established."""
    pass
