import pytest
from aiohttp import web

from craftlaunch.download.fetcher import FetchClient, backoff_delay
from craftlaunch.exceptions import APIError, NotFoundError, TransientNetworkError


def failing_app(failures: int, status: int = 503, body: bytes = b"ok"):
    calls = []

    async def handler(request):
        calls.append(request.path)
        if len(calls) <= failures:
            return web.Response(status=status, text="unavailable")
        return web.Response(body=body)

    app = web.Application()
    app.router.add_get("/resource", handler)
    return app, calls


def test_backoff_delay():
    assert [backoff_delay(n) for n in (1, 2, 3)] == [2, 4, 8]
    assert backoff_delay(2, 0.5) == 2


async def test_retry_then_success(serve, fetcher, log_records):
    app, calls = failing_app(3)
    server = await serve(app)

    body = await fetcher.fetch(str(server.make_url("/resource")))

    assert body == b"ok"
    assert len(calls) == 4
    retries = [r for r in log_records if r["level"].name == "WARNING" and "[retry]" in r["message"]]
    assert len(retries) == 3
    assert "attempt 3/3" in retries[-1]["message"]


async def test_retries_exhausted(serve, fetcher):
    app, calls = failing_app(4, status=500)
    server = await serve(app)

    with pytest.raises(TransientNetworkError) as info:
        await fetcher.fetch(str(server.make_url("/resource")))

    assert len(calls) == 4
    assert info.value.context["status_code"] == 500


async def test_rate_limit_is_retried(serve, fetcher):
    app, calls = failing_app(1, status=429)
    server = await serve(app)

    assert await fetcher.fetch(str(server.make_url("/resource"))) == b"ok"
    assert len(calls) == 2


async def test_not_found_is_not_retried(serve, fetcher):
    app, calls = failing_app(10, status=404)
    server = await serve(app)

    with pytest.raises(NotFoundError):
        await fetcher.fetch(str(server.make_url("/resource")))
    assert len(calls) == 1


async def test_client_error_keeps_body(serve, fetcher):
    async def handler(request):
        return web.json_response({"error": "authorization_pending"}, status=400)

    app = web.Application()
    app.router.add_post("/token", handler)
    server = await serve(app)

    with pytest.raises(APIError) as info:
        await fetcher.fetch(str(server.make_url("/token")), method="POST")

    assert info.value.status == 400
    assert info.value.body_json() == {"error": "authorization_pending"}


async def test_connection_refused_is_retried(unused_tcp_port):
    client = FetchClient(max_retries=2, retry_delay=0)
    try:
        with pytest.raises(TransientNetworkError):
            await client.fetch(f"http://127.0.0.1:{unused_tcp_port}/nothing")
    finally:
        await client.close()


async def test_invalid_json(serve, fetcher):
    app, _ = failing_app(0, body=b"<html>")
    server = await serve(app)

    with pytest.raises(APIError):
        await fetcher.fetch_json(str(server.make_url("/resource")))


async def test_streaming_progress_with_length(serve, fetcher):
    data = bytes(range(256)) * 100
    app, _ = failing_app(0, body=data)
    server = await serve(app)

    received = bytearray()
    progress = []

    async def on_chunk(chunk):
        received.extend(chunk)

    size = await fetcher.fetch_streaming(
        str(server.make_url("/resource")),
        on_chunk,
        on_progress=lambda *args: progress.append(args),
    )

    assert size == len(data)
    assert bytes(received) == data
    assert progress[-1] == (len(data), len(data), 100.0)
    assert [p[0] for p in progress] == sorted(p[0] for p in progress)


async def test_streaming_progress_without_length(serve, fetcher):
    async def handler(request):
        response = web.StreamResponse()
        response.enable_chunked_encoding()
        await response.prepare(request)
        await response.write(b"a" * 1000)
        await response.write(b"b" * 1000)
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_get("/chunked", handler)
    server = await serve(app)

    progress = []

    async def on_chunk(chunk):
        pass

    size = await fetcher.fetch_streaming(
        str(server.make_url("/chunked")),
        on_chunk,
        on_progress=lambda *args: progress.append(args),
    )

    assert size == 2000
    assert progress[-1] == (2000, None, None)
