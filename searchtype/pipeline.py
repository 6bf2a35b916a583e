"""Wire reader → executor → saver and run them as one task group."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field

import httpx

from searchtype.channel import Channel
from searchtype.config import Config
from searchtype.errors import collapse
from searchtype.executor import IgnorePredicate, RequestExecutor
from searchtype.ratelimit import RateLimiter
from searchtype.reader import read_queries
from searchtype.saver import Saver
from searchtype.shutdown import Shutdown

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    queries_read: int = 0
    saved: dict[str, int] = field(default_factory=dict)
    skipped: int = 0

    @property
    def total_saved(self) -> int:
        return sum(self.saved.values())


async def run_stage[T](shutdown: Shutdown, name: str, stage: Awaitable[T]) -> T:
    """Await one stage; its failure is the shutdown reason for the others."""
    try:
        return await stage
    except BaseException as exc:
        if shutdown.trigger(exc):
            logger.error("Stage %s failed: %r", name, exc)
        raise


async def run_pipeline(
    config: Config,
    *,
    shutdown: Shutdown | None = None,
    client: httpx.AsyncClient | None = None,
    ignore: IgnorePredicate | None = None,
) -> PipelineResult:
    """Classify every query of ``config.queries_path`` into category files.

    Raises the first root error of any stage, or ``PipelineAborted`` when
    the run was stopped through *shutdown*. Rows flushed before the
    failure stay on disk.
    """
    shutdown = shutdown or Shutdown()
    saver = Saver(
        config.resolved_output_dir,
        field_delimiter=config.field_delimiter,
        preset_delimiter=config.preset_delimiter,
        unknown_policy=config.unknown_policy,
    )
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=config.timeout)

    queries: Channel[str] = Channel(shutdown)
    bodies: Channel[bytes] = Channel(shutdown)
    executor = RequestExecutor(
        client,
        config.url,
        limiter=RateLimiter(config.rps),
        shutdown=shutdown,
        concurrency=config.concurrency,
        retries=config.retries,
        ignore=ignore,
    )

    try:
        async with asyncio.TaskGroup() as group:
            reader = group.create_task(
                run_stage(
                    shutdown,
                    "reader",
                    read_queries(config.queries_path, queries, shutdown=shutdown),
                )
            )
            group.create_task(
                run_stage(shutdown, "executor", executor.run(queries, bodies))
            )
            group.create_task(run_stage(shutdown, "saver", saver.run(bodies)))
    except BaseExceptionGroup as eg:
        raise collapse(eg) from None
    finally:
        saver.close()
        if owns_client:
            await client.aclose()

    result = PipelineResult(
        queries_read=reader.result(),
        saved={category.value: n for category, n in saver.saved.items()},
        skipped=saver.skipped,
    )
    logger.info(
        "Pipeline finished: %d queries, %d saved, %d skipped",
        result.queries_read,
        result.total_saved,
        result.skipped,
    )
    return result
