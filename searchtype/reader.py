"""Input readers feeding the first pipeline channel."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from searchtype.channel import Channel
from searchtype.errors import BadColumnCount
from searchtype.shutdown import Shutdown

logger = logging.getLogger(__name__)


async def read_queries(
    path: str | Path, out: Channel[str], *, shutdown: Shutdown
) -> int:
    """Send one query per line of *path*. Returns the number of queries sent."""
    count = 0
    try:
        with open(path, encoding="utf-8", newline="") as f:
            for line in f:
                shutdown.check()
                query = line.rstrip("\r\n")
                await out.send(query)
                count += 1
                logger.debug("Query %r has been read", query)
    except BaseException as exc:
        shutdown.trigger(exc)
        raise
    finally:
        await out.close()
        logger.info("Reader has finished after %d queries", count)
    return count


async def read_rows(
    path: str | Path,
    out: Channel[tuple[str, str]],
    *,
    delimiter: str,
    shutdown: Shutdown,
) -> int:
    """Send ``(text, query)`` rows of a delimited file with a header line.

    Semicolons in the query column are escaped so that they survive URL
    query parsing as part of a value.
    """
    count = 0
    try:
        with open(path, encoding="utf-8", newline="") as f:
            rows = csv.reader(f, delimiter=delimiter)
            next(rows, None)
            for row in rows:
                shutdown.check()
                if len(row) != 2:
                    raise BadColumnCount(len(row), rows.line_num)
                text, query = row
                await out.send((text, query.replace(";", "%3B")))
                count += 1
    except BaseException as exc:
        shutdown.trigger(exc)
        raise
    finally:
        await out.close()
        logger.info("Reader has finished after %d rows", count)
    return count
