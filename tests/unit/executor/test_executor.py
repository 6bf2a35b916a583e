from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from searchtype.channel import Channel
from searchtype.errors import (
    BadResponseBody,
    BadResponseStatus,
    DecodeError,
    PipelineAborted,
    TransportFailure,
)
from searchtype.executor import (
    RequestExecutor,
    check_response,
    ignore_messages,
    ignore_types,
)
from searchtype.ratelimit import RateLimiter
from searchtype.shutdown import Shutdown

from tests.conftest import MATCH_URL, match_body


def ok(request: httpx.Request) -> httpx.Response:
    query = request.url.params["query"]
    return httpx.Response(200, content=match_body(query, f"preset={query}"))


def make_executor(client: httpx.AsyncClient, shutdown: Shutdown, **kwargs):
    return RequestExecutor(
        client,
        MATCH_URL,
        limiter=RateLimiter(1000),
        shutdown=shutdown,
        **kwargs,
    )


async def filled[T](shutdown: Shutdown, items: list[T]) -> Channel[T]:
    channel: Channel[T] = Channel(shutdown, capacity=len(items) + 1)
    for item in items:
        await channel.send(item)
    await channel.close()
    return channel


class TestCheckResponse:
    def test_success_returns_body(self):
        body = match_body("a", "preset=1")
        assert check_response(httpx.Response(200, content=body)) == body

    def test_non_success_status(self):
        with pytest.raises(BadResponseStatus) as exc_info:
            check_response(httpx.Response(503, text="busy"))
        assert exc_info.value.status == 503
        assert exc_info.value.body == "busy"

    def test_undecodable_body(self):
        with pytest.raises(DecodeError):
            check_response(httpx.Response(200, content=b"<html>"))

    @pytest.mark.parametrize(
        "body",
        [
            b'{"code": 0, "error": null, "metadata": {"name": "a"}}',
            b'{"code": null, "error": "", "metadata": {"name": "a"}}',
            b'{"code": null, "error": null}',
            b"null",
        ],
    )
    def test_null_fields_count_as_success(self, body: bytes):
        assert check_response(httpx.Response(200, content=body)) == body

    def test_application_error(self):
        body = json.dumps({"code": 7, "error": "no such text"}).encode()
        with pytest.raises(BadResponseBody) as exc_info:
            check_response(httpx.Response(200, content=body))
        assert exc_info.value.code == 7
        assert exc_info.value.reason == "no such text"


class TestIgnorePredicates:
    def test_messages_match_reason_and_status_body(self):
        predicate = ignore_messages("not found")
        assert predicate(BadResponseBody(1, "not found"))
        assert predicate(BadResponseStatus(400, "not found"))
        assert not predicate(BadResponseBody(1, "other"))
        assert not predicate(ValueError("not found"))

    def test_types(self):
        predicate = ignore_types(KeyError, DecodeError)
        assert predicate(DecodeError())
        assert not predicate(ValueError())


class TestFetch:
    def test_build_url_keeps_base_params(self, mock_client, shutdown):
        executor = make_executor(mock_client(ok), shutdown)
        url = executor.build_url({"query": "red dress"})
        assert url.params["lang"] == "ru"
        assert url.params["query"] == "red dress"
        assert url.path == "/exactmatch"

    def test_build_url_replaces_same_name_param(self, mock_client, shutdown):
        executor = make_executor(mock_client(ok), shutdown)
        url = executor.build_url({"lang": "en"})
        assert url.params.get_list("lang") == ["en"]

    async def test_returns_body(self, mock_client, shutdown):
        async with mock_client(ok) as client:
            body = await make_executor(client, shutdown).fetch({"query": "x"})
        assert json.loads(body)["metadata"]["catalog_value"] == "preset=x"

    async def test_retries_transport_errors(self, mock_client, shutdown):
        calls = 0

        def flaky(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise httpx.ConnectError("refused", request=request)
            return ok(request)

        async with mock_client(flaky) as client:
            await make_executor(client, shutdown, retries=2).fetch({"query": "x"})
        assert calls == 3

    async def test_gives_up_after_retry_budget(self, mock_client, shutdown):
        calls = 0

        def down(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ReadTimeout("slow", request=request)

        async with mock_client(down) as client:
            executor = make_executor(client, shutdown, retries=1)
            with pytest.raises(TransportFailure) as exc_info:
                await executor.fetch({"query": "x"})
        assert calls == 2
        assert "query=x" in exc_info.value.url

    async def test_status_errors_are_not_retried(self, mock_client, shutdown):
        calls = 0

        def broken(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500, text="oops")

        async with mock_client(broken) as client:
            with pytest.raises(BadResponseStatus):
                await make_executor(client, shutdown, retries=3).fetch({"query": "x"})
        assert calls == 1

    async def test_shutdown_cancels_in_flight_request(self, mock_client, shutdown):
        started = asyncio.Event()

        async def hang(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(60)
            return ok(request)

        async with mock_client(hang) as client:
            task = asyncio.create_task(
                make_executor(client, shutdown).fetch({"query": "x"})
            )
            await started.wait()
            shutdown.trigger("stop")
            with pytest.raises(PipelineAborted):
                await task


class TestMap:
    async def test_concurrency_is_bounded(self, mock_client, shutdown):
        in_flight = 0
        peak = 0

        async def handle(item: int) -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1

        executor = make_executor(mock_client(ok), shutdown, concurrency=3)
        await executor.map(await filled(shutdown, list(range(12))), handle)
        assert peak == 3

    async def test_first_error_cancels_siblings(self, mock_client, shutdown):
        cancelled = 0

        async def handle(item: int) -> None:
            nonlocal cancelled
            if item == 2:
                raise ValueError("bad item")
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled += 1
                raise

        executor = make_executor(mock_client(ok), shutdown, concurrency=10)
        with pytest.raises(ValueError, match="bad item"):
            await executor.map(await filled(shutdown, list(range(6))), handle)
        assert cancelled >= 2

    async def test_ignored_errors_do_not_fail(self, mock_client, shutdown):
        handled = []

        async def handle(item: int) -> None:
            if item % 2:
                raise DecodeError("odd")
            handled.append(item)

        executor = make_executor(
            mock_client(ok), shutdown, ignore=ignore_types(DecodeError)
        )
        await executor.map(await filled(shutdown, list(range(6))), handle)
        assert sorted(handled) == [0, 2, 4]


class TestRun:
    async def test_forwards_bodies_and_closes(self, mock_client, shutdown):
        queries = await filled(shutdown, ["a", "b", "c"])
        bodies: Channel[bytes] = Channel(shutdown, capacity=10)

        async with mock_client(ok) as client:
            await make_executor(client, shutdown).run(queries, bodies)

        names = sorted([json.loads(b)["metadata"]["name"] async for b in bodies])
        assert names == ["a", "b", "c"]
        assert not shutdown.is_set

    async def test_ignored_service_errors_are_skipped(self, mock_client, shutdown):
        def picky(request: httpx.Request) -> httpx.Response:
            if request.url.params["query"] == "b":
                return httpx.Response(200, json={"code": 4, "error": "not found"})
            return ok(request)

        queries = await filled(shutdown, ["a", "b", "c"])
        bodies: Channel[bytes] = Channel(shutdown, capacity=10)
        async with mock_client(picky) as client:
            executor = make_executor(
                client, shutdown, ignore=ignore_messages("not found")
            )
            await executor.run(queries, bodies)

        assert len([b async for b in bodies]) == 2

    async def test_failure_triggers_shutdown(self, mock_client, shutdown):
        def broken(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="gateway")

        queries = await filled(shutdown, ["a"])
        bodies: Channel[bytes] = Channel(shutdown, capacity=10)
        async with mock_client(broken) as client:
            with pytest.raises(BadResponseStatus):
                await make_executor(client, shutdown).run(queries, bodies)

        assert shutdown.is_set
        assert isinstance(shutdown.reason, BadResponseStatus)
        assert bodies.closed
