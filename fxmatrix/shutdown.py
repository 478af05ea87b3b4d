"""Process-wide cooperative shutdown token."""

import asyncio
import logging
import signal
from typing import Optional

logger = logging.getLogger("fxmatrix.shutdown")

_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGQUIT") if hasattr(signal, name)
)


class ShutdownToken:
    """Write-once flag shared by every long-running task.

    Setting it more than once is harmless; the first reason is kept.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def set(self, reason: str = "requested"):
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.info(f"Shutdown requested ({reason})")

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until set or ``timeout`` elapses. Returns whether it is set."""
        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Set the token on SIGINT/SIGTERM/SIGQUIT."""
        loop = loop or asyncio.get_running_loop()
        for sig in _SIGNALS:
            try:
                loop.add_signal_handler(sig, self.set, f"received {sig.name}")
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Cannot install handler for {sig.name} on this platform")
