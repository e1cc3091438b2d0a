"""
Incremental Server-Sent Events decoding.

``SSEFrameDecoder`` turns decoded text chunks into ``data:`` payloads,
``SSEFrameReader`` owns the response body for the lifetime of one stream,
and ``process_sse_stream`` drives a reader into generic callbacks.
"""
import inspect
import json
import logging
from typing import Any, AsyncIterator, Callable, List, Optional

import httpx

from ..cancellation import CancellationToken, run_cancellable
from ..errors import NetworkError, StreamError
from ..types import StreamCallbacks

logger = logging.getLogger(__name__)

LOG_PREFIX = "[SSE]"

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
NULL_BODY_MESSAGE = "Response body is null"


class SSEFrameDecoder:
    """
    Split a text stream into ``data:`` payloads.

    Between calls to ``feed`` the buffer holds at most one incomplete
    trailing line. Byte decoding happens upstream in ``Response.aiter_text``,
    which holds back multi-byte characters split across network chunks.
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, text: str) -> List[str]:
        """Append ``text`` and return the payloads of every completed data line."""
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        payloads = []
        for line in lines:
            if line.endswith("\r"):
                line = line[:-1]
            # Comments, keepalives and other fields carry no payload
            if not line.startswith(DATA_PREFIX):
                continue
            payloads.append(line[len(DATA_PREFIX):])
        return payloads


class SSEFrameReader:
    """
    Scoped reader over a streaming response body.

    Use as an async context manager; the response is closed exactly once
    when the block exits, whether the stream ended, hit the ``[DONE]``
    sentinel or failed. Iterating yields payload strings and stops at the
    sentinel even if the server sent more bytes after it.
    """

    def __init__(
        self,
        response: httpx.Response,
        signal: Optional[CancellationToken] = None,
    ):
        if response is None or getattr(response, "stream", None) is None:
            raise StreamError(NULL_BODY_MESSAGE)
        self._response = response
        self._signal = signal
        self._decoder = SSEFrameDecoder()
        self._chunks: Optional[AsyncIterator[str]] = None
        self._released = False
        self.sentinel_seen = False

    @property
    def url(self) -> str:
        try:
            return str(self._response.url)
        except RuntimeError:
            return "<unknown>"

    async def __aenter__(self) -> "SSEFrameReader":
        self._chunks = self._response.aiter_text()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._response.aclose()
        logger.debug(f"{LOG_PREFIX} Released stream for {self.url}")

    def __aiter__(self) -> AsyncIterator[str]:
        return self._payloads()

    async def _payloads(self) -> AsyncIterator[str]:
        while True:
            chunk = await self._read()
            if chunk is None:
                if self._decoder.buffer:
                    logger.debug(f"{LOG_PREFIX} Discarding incomplete trailing line: {self._decoder.buffer[:200]}")
                return
            for payload in self._decoder.feed(chunk):
                if payload == DONE_SENTINEL:
                    self.sentinel_seen = True
                    return
                yield payload

    async def _read(self) -> Optional[str]:
        """Next decoded body chunk, or ``None`` once the body is exhausted."""
        if self._chunks is None:
            raise StreamError("SSEFrameReader must be entered before iterating")
        try:
            if self._signal is None:
                return await self._next_chunk()
            return await run_cancellable(self._next_chunk(), self._signal, self.url)
        except httpx.TransportError as e:
            raise NetworkError(self.url, e) from e
        except (httpx.StreamClosed, httpx.StreamConsumed) as e:
            raise StreamError(f"Response body for {self.url} is no longer readable: {e}") from e

    async def _next_chunk(self) -> Optional[str]:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def process_sse_stream(
    response: httpx.Response,
    callbacks: StreamCallbacks,
    signal: Optional[CancellationToken] = None,
) -> None:
    """
    Drive a streaming response into ``callbacks`` until it completes or fails.

    Each payload is JSON-decoded and passed to ``on_message``. A payload that
    is not JSON is reported to ``on_error`` and still delivered raw to
    ``on_message``. ``on_complete`` fires after the body is released, on the
    sentinel or at end of stream. Any read failure is reported to
    ``on_error`` and re-raised.
    """
    try:
        reader = SSEFrameReader(response, signal)
    except StreamError as e:
        await _invoke(callbacks.on_error, e)
        raise

    try:
        async with reader:
            async for payload in reader:
                try:
                    parsed = json.loads(payload)
                except ValueError as e:
                    logger.warning(f"{LOG_PREFIX} Failed to parse SSE message: {payload[:200]!r} ({e})")
                    await _invoke(callbacks.on_error, e)
                    await _invoke(callbacks.on_message, payload)
                    continue
                await _invoke(callbacks.on_message, parsed)
    except Exception as e:
        logger.error(f"{LOG_PREFIX} Stream from {reader.url} failed: {e}")
        await _invoke(callbacks.on_error, e)
        raise

    await _invoke(callbacks.on_complete)
