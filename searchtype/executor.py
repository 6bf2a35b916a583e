from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence

import httpx
from pydantic import ConfigDict, ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from searchtype.channel import Channel
from searchtype.errors import (
    BadResponseBody,
    BadResponseStatus,
    DecodeError,
    PipelineAborted,
    TransportFailure,
    collapse,
)
from searchtype.models import ResponseModel
from searchtype.ratelimit import RateLimiter
from searchtype.shutdown import Shutdown

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 100
QUERY_PARAM = "query"

IgnorePredicate = Callable[[Exception], bool]
Params = Mapping[str, str | Sequence[str]]


class ResponseEnvelope(ResponseModel):
    """Error fields every service answer may carry."""

    model_config = ConfigDict(extra="allow")

    code: int = 0
    error: str = ""


def check_response(response: httpx.Response) -> bytes:
    """Validate status and envelope, returning the raw body."""
    body = response.content
    if not response.is_success:
        raise BadResponseStatus(response.status_code, response.text)
    try:
        envelope = ResponseEnvelope.model_validate_json(body)
    except ValidationError as exc:
        raise DecodeError(f"bad response envelope: {body[:200]!r}") from exc
    if envelope.code != 0:
        raise BadResponseBody(envelope.code, envelope.error)
    return body


def ignore_messages(*messages: str) -> IgnorePredicate:
    """Ignore service errors whose reason (or error body) is one of *messages*."""
    known = frozenset(messages)

    def predicate(exc: Exception) -> bool:
        if isinstance(exc, BadResponseBody):
            return exc.reason in known
        if isinstance(exc, BadResponseStatus):
            return exc.body in known
        return False

    return predicate


def ignore_types(*types: type[Exception]) -> IgnorePredicate:
    def predicate(exc: Exception) -> bool:
        return isinstance(exc, types)

    return predicate


class RequestExecutor:
    """Rate-limited, bounded fan-out of GET requests to one endpoint.

    Each item taken from the input channel first waits for a rate
    limiter permit, then for one of ``concurrency`` slots, and is then
    handled in its own task. The first failing task cancels its siblings
    and the intake loop.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str | httpx.URL,
        *,
        limiter: RateLimiter,
        shutdown: Shutdown,
        concurrency: int = DEFAULT_CONCURRENCY,
        retries: int = 0,
        ignore: IgnorePredicate | None = None,
    ) -> None:
        self.url = httpx.URL(url)
        self.concurrency = concurrency
        self.retries = retries
        self._client = client
        self._limiter = limiter
        self._shutdown = shutdown
        self._ignore = ignore

    def build_url(self, params: Params) -> httpx.URL:
        """Merge *params* into the base URL, replacing same-name parameters."""
        return self.url.copy_merge_params(dict(params))

    async def fetch(self, params: Params) -> bytes:
        url = self.build_url(params)
        response = await self._shutdown.guard(self._get(url))
        return check_response(response)

    async def _get(self, url: httpx.URL) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=0.1, max=2),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        try:
            return await retrying(self._client.get, url)
        except httpx.TransportError as exc:
            raise TransportFailure(str(url), exc) from exc

    async def map[T](
        self,
        items: Channel[T],
        handle: Callable[[T], Awaitable[None]],
    ) -> None:
        """Run *handle* for every item, at most ``concurrency`` at a time."""
        slots = asyncio.Semaphore(self.concurrency)
        try:
            async with asyncio.TaskGroup() as group:
                async for item in items:
                    await self._limiter.acquire(self._shutdown)
                    await self._shutdown.guard(slots.acquire())
                    group.create_task(self._work(item, handle, slots))
        except BaseExceptionGroup as eg:
            raise collapse(eg) from None

    async def _work[T](
        self,
        item: T,
        handle: Callable[[T], Awaitable[None]],
        slots: asyncio.Semaphore,
    ) -> None:
        try:
            await handle(item)
        except PipelineAborted:
            raise
        except Exception as exc:
            if self._ignore is not None and self._ignore(exc):
                logger.info("Skipping %r: %s", item, exc)
                return
            raise
        finally:
            slots.release()

    async def run(self, queries: Channel[str], bodies: Channel[bytes]) -> None:
        """Fetch every query and forward the raw bodies downstream.

        ``bodies`` is closed on exit. On failure shutdown is triggered
        first, so the consumer aborts instead of seeing a clean end of
        stream.
        """

        async def handle(query: str) -> None:
            body = await self.fetch({QUERY_PARAM: query})
            await bodies.send(body)

        try:
            await self.map(queries, handle)
        except BaseException as exc:
            self._shutdown.trigger(exc)
            raise
        finally:
            await bodies.close()
            logger.info("Executor has finished")
