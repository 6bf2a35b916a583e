"""Shared shutdown signal observed by every pipeline stage."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable

from searchtype.errors import PipelineAborted

logger = logging.getLogger(__name__)

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Shutdown:
    """A one-shot "done" signal.

    The first :meth:`trigger` wins and records its reason; later calls
    are no-ops. Blocking calls are wrapped with :meth:`guard` so that
    they raise :class:`PipelineAborted` as soon as the signal fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: BaseException | str | None = None

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> BaseException | str | None:
        return self._reason

    def trigger(self, reason: BaseException | str | None = None) -> bool:
        """Set the signal. Returns ``False`` if it was already set."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        logger.info("Shutdown requested: %s", reason or "no reason given")
        return True

    async def wait(self) -> None:
        await self._event.wait()

    def check(self) -> None:
        if self._event.is_set():
            raise PipelineAborted()

    async def guard[T](self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless shutdown fires first.

        On shutdown the awaitable is cancelled and
        :class:`PipelineAborted` is raised.
        """
        task = asyncio.ensure_future(awaitable)
        if self._event.is_set():
            task.cancel()
            raise PipelineAborted()
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise
        waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        raise PipelineAborted()

    # ---- OS signals ----

    def install_signal_handlers(
        self, loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in _SIGNALS:
            loop.add_signal_handler(sig, self.trigger, f"signal {sig.name}")

    def remove_signal_handlers(
        self, loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in _SIGNALS:
            loop.remove_signal_handler(sig)
