"""Fetch the cards behind each preset query and hand them to a screenshotter."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

from searchtype.channel import Channel
from searchtype.classifier import PRESET_PARAM, parse_params
from searchtype.config import VisualizerConfig
from searchtype.errors import (
    BadResponseStatus,
    EmptyCards,
    PresetNotOnBucket,
    collapse,
)
from searchtype.executor import RequestExecutor, ignore_types
from searchtype.pipeline import run_stage
from searchtype.ratelimit import RateLimiter
from searchtype.reader import read_rows
from searchtype.shutdown import Shutdown
from searchtype.visualizer.cards import cards_prefix, parse_cards, write_cards

logger = logging.getLogger(__name__)

BAD_PRESET_MESSAGE = "preset param malformed"


class Screenshotter(Protocol):
    async def take(self, preset_ids: str, prefix: Path) -> None:
        """Render *preset_ids* and write ``<prefix>_screenshot.jpg``."""
        ...


@dataclass
class VisualizerResult:
    rows_read: int = 0
    rendered: int = 0


async def run_visualizer(
    config: VisualizerConfig,
    *,
    screenshotter: Screenshotter,
    shutdown: Shutdown | None = None,
    client: httpx.AsyncClient | None = None,
) -> VisualizerResult:
    shutdown = shutdown or Shutdown()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=config.timeout)

    results_path = config.resolved_results_path
    result = VisualizerResult()
    rows: Channel[tuple[str, str]] = Channel(shutdown)
    executor = RequestExecutor(
        client,
        config.bucket_url,
        limiter=RateLimiter(config.rps),
        shutdown=shutdown,
        concurrency=config.concurrency,
        retries=config.retries,
        ignore=ignore_types(EmptyCards, PresetNotOnBucket),
    )

    async def handle(row: tuple[str, str]) -> None:
        text, query = row
        params = parse_params(query)
        try:
            body = await executor.fetch(params)
        except BadResponseStatus as exc:
            if exc.status == httpx.codes.BAD_REQUEST and exc.body == BAD_PRESET_MESSAGE:
                raise PresetNotOnBucket(params.get(PRESET_PARAM, [])) from exc
            raise
        ids = parse_cards(body, text)
        prefix = cards_prefix(results_path, text, config.version_name)
        joined = write_cards(prefix, ids)
        await shutdown.guard(screenshotter.take(joined, prefix))
        result.rendered += 1
        logger.info("%r query has finished", text)

    try:
        async with asyncio.TaskGroup() as group:
            reader = group.create_task(
                run_stage(
                    shutdown,
                    "reader",
                    read_rows(
                        config.queries_path,
                        rows,
                        delimiter=config.csv_separator,
                        shutdown=shutdown,
                    ),
                )
            )
            group.create_task(
                run_stage(shutdown, "executor", executor.map(rows, handle))
            )
    except BaseExceptionGroup as eg:
        raise collapse(eg) from None
    finally:
        if owns_client:
            await client.aclose()

    result.rows_read = reader.result()
    return result
