"""
Request/response interceptor registries.
"""
import inspect
import json
import logging
from typing import Any, List

import httpx

from .types import Disposer, RequestInterceptor, ResponseInterceptor

logger = logging.getLogger(__name__)

LOG_PREFIX = "[API]"


def _format_body(body: Any) -> str:
    """
    Format body for logging safeguards against binary data.
    """
    if body is None:
        return "<empty>"
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<binary data: {len(body)} bytes>"
    if isinstance(body, str):
        try:
            # Try to pretty print if it looks like JSON
            if body.strip().startswith(("{", "[")):
                return json.dumps(json.loads(body), indent=2)
        except json.JSONDecodeError:
            pass
        # Truncate long strings
        if len(body) > 5000:
            return body[:5000] + "... (truncated)"
        return body
    if isinstance(body, dict):
        return json.dumps(body, indent=2)
    return str(body)


def _remove_once(entries: List[Any], entry: Any) -> Disposer:
    removed = False

    def dispose() -> None:
        nonlocal removed
        if removed:
            return
        removed = True
        # Remove by identity so a function registered twice only loses this entry
        for index, candidate in enumerate(entries):
            if candidate is entry:
                del entries[index]
                return

    return dispose


class _Registration:
    __slots__ = ("fn",)

    def __init__(self, fn: Any):
        self.fn = fn


class InterceptorChain:
    """
    Ordered, fault-isolated observers around every request and response.

    Interceptors run sequentially in registration order. An interceptor that
    raises is logged and skipped; it never blocks the call or the
    interceptors after it.
    """

    def __init__(self) -> None:
        self._request: List[_Registration] = []
        self._response: List[_Registration] = []

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> Disposer:
        """Register ``interceptor(url, request)``; returns a disposer."""
        entry = _Registration(interceptor)
        self._request.append(entry)
        return _remove_once(self._request, entry)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> Disposer:
        """Register ``interceptor(response, url)``; returns a disposer."""
        entry = _Registration(interceptor)
        self._response.append(entry)
        return _remove_once(self._response, entry)

    @property
    def request_interceptors(self) -> List[RequestInterceptor]:
        return [entry.fn for entry in self._request]

    @property
    def response_interceptors(self) -> List[ResponseInterceptor]:
        return [entry.fn for entry in self._response]

    async def run_request(self, url: str, request: httpx.Request) -> None:
        # Snapshot so a disposer called mid-run does not shift the iteration
        for entry in list(self._request):
            try:
                result = entry.fn(url, request)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"{LOG_PREFIX} Request interceptor error: {e}")

    async def run_response(self, response: httpx.Response, url: str) -> None:
        for entry in list(self._response):
            try:
                result = entry.fn(response, url)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"{LOG_PREFIX} Response interceptor error: {e}")

    def enable_debug_logging(self) -> Disposer:
        """Log every request and response; returns one disposer for both loggers."""

        def request_logger(url: str, request: httpx.Request) -> None:
            logger.info(
                f"{LOG_PREFIX} {request.method} {url} "
                f"headers={dict(request.headers)} body={_format_body(request.content)}"
            )

        def response_logger(response: httpx.Response, url: str) -> None:
            logger.info(
                f"{LOG_PREFIX} {response.status_code} {url} "
                f"status_text={response.reason_phrase} headers={dict(response.headers)}"
            )

        remove_request = self.add_request_interceptor(request_logger)
        remove_response = self.add_response_interceptor(response_logger)

        def dispose() -> None:
            remove_request()
            remove_response()

        return dispose
