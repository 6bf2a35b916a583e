"""Buffered console logging flushed on a fixed period.

Records from any task or thread are appended to a buffer; a background
task writes them out every ``period`` seconds and once more on exit.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import BufferingHandler
from typing import TextIO

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class PeriodicFlushHandler(BufferingHandler):
    """Hold records until :meth:`flush` is called.

    ``capacity`` is a safety valve: a full buffer is flushed right away.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        capacity: int = 10_000,
        fmt: str = DEFAULT_FORMAT,
    ) -> None:
        super().__init__(capacity)
        self.target = logging.StreamHandler(stream or sys.stdout)
        self.target.setFormatter(logging.Formatter(fmt))

    def setFormatter(self, fmt: logging.Formatter | None) -> None:
        self.target.setFormatter(fmt)

    def flush(self) -> None:
        self.acquire()
        try:
            records, self.buffer = self.buffer, []
        finally:
            self.release()
        for record in records:
            self.target.handle(record)
        self.target.flush()


@asynccontextmanager
async def periodic_flush(
    handler: PeriodicFlushHandler, period: float
) -> AsyncIterator[PeriodicFlushHandler]:
    """Flush *handler* every *period* seconds while the block runs."""

    async def _loop() -> None:
        while True:
            await asyncio.sleep(period)
            handler.flush()

    task = asyncio.create_task(_loop())
    try:
        yield handler
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        handler.flush()


def setup_logging(
    *, verbose: bool = False, stream: TextIO | None = None
) -> PeriodicFlushHandler:
    """Install a :class:`PeriodicFlushHandler` on the root logger."""
    handler = PeriodicFlushHandler(stream)
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return handler
