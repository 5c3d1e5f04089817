import asyncio
import time
from typing import Awaitable, Callable


class Pacer:
    """Keeps a minimum gap between consecutive bubble emissions.

    Call :meth:`wait` right before handing a bubble to the consumer and
    :meth:`mark` once the consumer has taken it, so the gap runs from the
    end of one emission.  The first emission is never delayed.

    Args:
        min_interval: Minimum seconds between the end of one emission and
            the start of the next.
        clock: Monotonic time source.
        sleep: Coroutine function used to suspend.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_emit: float | None = None

    def remaining(self) -> float:
        if self._last_emit is None:
            return 0.0
        return max(0.0, self.min_interval - (self._clock() - self._last_emit))

    async def wait(self) -> None:
        delay = self.remaining()
        if delay > 0:
            await self._sleep(delay)

    def mark(self) -> None:
        self._last_emit = self._clock()
