from __future__ import annotations

import asyncio
import time

from searchtype.shutdown import Shutdown


class RateLimiter:
    """Hands out one permit every ``1 / rps`` seconds.

    The interval is measured from the previous permit (or from
    construction for the first one). Time spent idle is not banked, so
    there is never a burst after a pause.
    """

    def __init__(self, rps: float) -> None:
        self.period = 1.0 / rps
        self._last = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, shutdown: Shutdown) -> None:
        """Block until the next permit; raise ``PipelineAborted`` on shutdown."""
        async with self._lock:
            delay = self._last + self.period - time.monotonic()
            if delay > 0:
                await shutdown.guard(asyncio.sleep(delay))
            else:
                shutdown.check()
            self._last = time.monotonic()
