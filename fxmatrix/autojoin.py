"""Autojoin with exponential backoff.

Homeservers can deliver an invite before the invited user is actually
able to join (see https://github.com/matrix-org/synapse/issues/4345), so
a failed join is retried with a doubling delay until it either succeeds
or the delay grows past a ceiling.

States:
    INVITED → JOINING → JOINED
    INVITED → JOINING → ABANDONED
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Iterator, Optional

logger = logging.getLogger("fxmatrix.autojoin")

DEFAULT_INITIAL_DELAY = 2.0
DEFAULT_MAX_DELAY = 3600.0


class JoinState(str, Enum):
    INVITED = "invited"
    JOINING = "joining"
    JOINED = "joined"
    ABANDONED = "abandoned"


def retry_delays(
    initial: float = DEFAULT_INITIAL_DELAY,
    ceiling: float = DEFAULT_MAX_DELAY,
) -> Iterator[float]:
    """Yield the waits between join attempts: initial, 2×initial, … up to ceiling.

    With the defaults that is 2, 4, …, 2048: eleven retries after the
    first attempt.
    """
    if initial <= 0:
        raise ValueError("initial delay must be positive")
    delay = initial
    while delay <= ceiling:
        yield delay
        delay *= 2


class AutojoinRetrier:
    """Join one invited room, retrying with backoff.

    Args:
        room_id: Room to join
        join: Async callable performing the join; raises on failure
        initial_delay: First wait after a failed attempt (seconds)
        max_delay: Abandon once the next wait would exceed this
        sleep: Injectable sleep, for tests
    """

    def __init__(
        self,
        room_id: str,
        join: Callable[[str], Awaitable[None]],
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.room_id = room_id
        self._join = join
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self.state = JoinState.INVITED
        self.attempts = 0
        self._last_error: Optional[Exception] = None

    async def _attempt(self) -> bool:
        self.attempts += 1
        try:
            await self._join(self.room_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._last_error = e
            return False
        return True

    async def run(self) -> JoinState:
        """Run the attempt sequence to completion and return the final state."""
        self.state = JoinState.JOINING
        logger.info(f"Autojoining room {self.room_id}")

        if await self._attempt():
            return self._joined()

        for delay in retry_delays(self._initial_delay, self._max_delay):
            logger.warning(
                f"Failed to join room {self.room_id} ({self._last_error}), retrying in {delay:g}s"
            )
            await self._sleep(delay)
            if await self._attempt():
                return self._joined()

        self.state = JoinState.ABANDONED
        logger.warning(
            f"Can't join room {self.room_id} after {self.attempts} attempts ({self._last_error}), giving up"
        )
        return self.state

    def _joined(self) -> JoinState:
        self.state = JoinState.JOINED
        logger.info(f"Successfully joined room {self.room_id}")
        return self.state
