"""
Tests for per-call deadlines against a real socket.

respx answers requests without going through httpx's transport timeouts,
so these tests serve HTTP from a local asyncio server instead.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List

import httpx
import pytest
import respx

from quester_client import (
    CancellationToken,
    ClientConfig,
    NetworkError,
    QuesterClient,
    RequestCancelledError,
    RequestConfig,
    StreamCallbacks,
    TimeoutConfig,
)

Responder = Callable[[asyncio.StreamWriter], Awaitable[None]]

# Much shorter than every timeout_ms used below
SHORT_READ = TimeoutConfig(connect=1.0, read=0.2, write=1.0)


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch):
    for key in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(key, raising=False)


@asynccontextmanager
async def http_server(respond: Responder):
    """Serve every connection with ``respond``; yields the base URL and the request lines seen."""
    seen: List[str] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            length = 0
            for line in head.split(b"\r\n"):
                if line.lower().startswith(b"content-length:"):
                    length = int(line.split(b":", 1)[1])
            if length:
                await reader.readexactly(length)
            seen.append(head.split(b"\r\n", 1)[0].decode())
            await respond(writer)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}", seen
    finally:
        server.close()
        await server.wait_closed()


def json_after(delay: float, body: bytes = b'{"ok":true}') -> Responder:
    async def respond(writer: asyncio.StreamWriter) -> None:
        await asyncio.sleep(delay)
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n"
            b"Connection: close\r\n\r\n" + body
        )
        await writer.drain()
    return respond


def events_with_gap(gap: float, *frames: bytes) -> Responder:
    async def respond(writer: asyncio.StreamWriter) -> None:
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/event-stream\r\n"
            b"Connection: close\r\n\r\n"
        )
        await writer.drain()
        for index, frame in enumerate(frames):
            if index:
                await asyncio.sleep(gap)
            writer.write(frame)
            await writer.drain()
    return respond


@pytest.mark.asyncio
async def test_timeout_ms_longer_than_read_timeout_wins():
    async with http_server(json_after(0.5)) as (base_url, seen):
        async with QuesterClient(ClientConfig(base_url=base_url, timeout=SHORT_READ)) as client:
            result = await client.get("/slow", config={"timeout_ms": 5000, "retries": 1})

    assert result == {"ok": True}
    assert seen == ["GET /slow HTTP/1.1"]


@pytest.mark.asyncio
async def test_expired_deadline_is_cancellation_and_not_retried():
    async with http_server(json_after(0.6)) as (base_url, seen):
        async with QuesterClient(ClientConfig(base_url=base_url, timeout=SHORT_READ)) as client:
            with pytest.raises(RequestCancelledError) as exc:
                await client.get("/slow", config={"timeout_ms": 300, "retries": 3})

    assert exc.value.is_timeout
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_caller_signal_keeps_transport_read_timeout():
    async with http_server(json_after(0.5)) as (base_url, _):
        async with QuesterClient(ClientConfig(base_url=base_url, timeout=SHORT_READ)) as client:
            with pytest.raises(NetworkError) as exc:
                await client.get("/slow", config=RequestConfig(signal=CancellationToken(), retries=0))

    assert isinstance(exc.value.cause, httpx.ReadTimeout)
    assert str(exc.value).endswith("ReadTimeout")


@pytest.mark.asyncio
async def test_stream_survives_gap_longer_than_read_timeout():
    events = []
    callbacks = StreamCallbacks(
        on_message=events.append,
        on_error=lambda error: events.append(("error", error)),
    )
    responder = events_with_gap(0.5, b'data: {"n":1}\n\n', b'data: {"n":2}\n\ndata: [DONE]\n\n')

    async with http_server(responder) as (base_url, _):
        async with QuesterClient(ClientConfig(base_url=base_url, timeout=SHORT_READ)) as client:
            await client.stream_sse("/chat/stream", callbacks, data={"message": "hi"}, config={"timeout_ms": 5000})

    assert events == [{"n": 1}, {"n": 2}]


@pytest.mark.asyncio
async def test_built_requests_carry_per_call_read_timeout():
    config = ClientConfig(base_url="https://api.example.com", timeout=SHORT_READ)
    async with QuesterClient(config) as client:
        with respx.mock(base_url="https://api.example.com") as mock:
            route = mock.get("/a").respond(200, json={})
            stream_route = mock.post("/s").respond(200, content=b"")

            await client.get("/a")
            await client.get("/a", config=RequestConfig(signal=CancellationToken()))
            response = await client.stream("/s")
            await response.aclose()

        deadline_bound, signal_bound = [call.request.extensions["timeout"] for call in route.calls]
        assert deadline_bound["read"] is None
        assert deadline_bound["connect"] == 1.0
        assert signal_bound["read"] == 0.2
        assert stream_route.calls.last.request.extensions["timeout"]["read"] is None
