"""
Core HTTP client implementation based on httpx.
"""
import logging
from typing import Any, Optional, Tuple

import httpx

from ..auth.auth_gate import AuthGate
from ..cancellation import CancellationTimer, CancellationToken, run_cancellable, sleep_cancellable
from ..config import (
    DEFAULT_STREAM_TIMEOUT_MS,
    ClientConfig,
    RequestConfig,
    RequestConfigLike,
    ResolvedConfig,
    coerce_request_config,
    resolve_config,
)
from ..errors import NetworkError, QuesterClientError, is_retryable
from ..interceptors import InterceptorChain, _format_body
from ..types import HttpMethod, LogoutHandler, RequestOptions
from .request import RequestBuilder
from .response import build_api_error, parse_response_body

logger = logging.getLogger(__name__)

# Constants
LOG_PREFIX = "[QuesterClient]"
EVENT_STREAM_ACCEPT = "text/event-stream"


class BaseClient:
    """
    Base HTTP client wrapping httpx.AsyncClient.

    Owns the interceptor chain and the auth gate for every call made through
    it; nothing is shared between client instances.
    """
    def __init__(self, config: ClientConfig, on_auth_failure: Optional[LogoutHandler] = None):
        self._config_raw = config
        self._config: ResolvedConfig = resolve_config(config)
        self._client: Optional[httpx.AsyncClient] = config.httpx_client

        self.interceptors = InterceptorChain()
        self.auth_gate = AuthGate(on_auth_failure, dedupe=self._config.dedupe_logout)

        # Flag to track if we own the client (created it)
        self._own_client = self._client is None

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def connect(self) -> None:
        """Initialize the client if needed."""
        if self._client:
            return

        timeout = httpx.Timeout(
            connect=self._config.timeout.connect,
            read=self._config.timeout.read,
            write=self._config.timeout.write,
            pool=self._config.timeout.pool
        )

        # The cookie jar carries the session on every call
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=self._config.headers,
            cookies=self._config.cookies,
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the client if we own it."""
        if self._own_client and self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BaseClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_api_url(self, endpoint: str) -> str:
        """Absolute URLs pass through; relative ones are joined to base_url."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._config.base_url}/{endpoint.lstrip('/')}"

    async def request(
        self,
        method: HttpMethod,
        url: str,
        json: Any = None,
        config: RequestConfigLike = None,
    ) -> Any:
        """
        Execute one logical call and return the parsed body.

        Transport failures and 5xx responses are retried with exponential
        backoff up to ``config.retries`` times. Everything else surfaces on
        the first failure as a typed error.
        """
        config = coerce_request_config(config)
        await self.connect()

        request_url = self.get_api_url(url)
        options = self._build_options(method, request_url, json, config)
        token, timer = self._arm_cancellation(config, config.timeout_ms)
        # An internal deadline bounds reads through the token instead of httpx
        transport_timeout = self._transport_timeout(token_bounded=timer is not None)

        try:
            for attempt in range(config.retries + 1):
                try:
                    return await self._attempt(options, request_url, config, token, transport_timeout)
                except QuesterClientError as e:
                    if not is_retryable(e) or attempt == config.retries:
                        raise
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        f"{LOG_PREFIX} Attempt {attempt + 1}/{config.retries + 1} for "
                        f"{method} {request_url} failed ({e}); retrying in {delay:.2f}s"
                    )
                    await self._backoff_sleep(delay, token, request_url)
        finally:
            if timer:
                timer.disarm()

    async def stream(
        self,
        url: str,
        method: HttpMethod = "POST",
        json: Any = None,
        config: RequestConfigLike = None,
    ) -> httpx.Response:
        """
        Open a streaming call and return the unconsumed response.

        Failure handling matches ``request`` but nothing is retried. The
        caller owns the returned response and must close it.
        """
        config = coerce_request_config(config)
        await self.connect()
        assert self._client is not None

        timeout_ms = config.timeout_ms if "timeout_ms" in config.model_fields_set else DEFAULT_STREAM_TIMEOUT_MS
        request_url = self.get_api_url(url)
        options = self._build_options(method, request_url, json, config, accept=EVENT_STREAM_ACCEPT)
        token, timer = self._arm_cancellation(config, timeout_ms)

        try:
            # Gaps between events can outlast any fixed read timeout
            request = self._build_request(options, self._transport_timeout(token_bounded=True))
            await self.interceptors.run_request(request_url, request)
            logger.debug(f"{LOG_PREFIX} Stream request: {request.method} {request_url}")

            response = await self._send(request, request_url, token, stream=True)
            try:
                await self.interceptors.run_response(response, request_url)
                if not response.is_success:
                    try:
                        await run_cancellable(response.aread(), token, request_url)
                    except httpx.TransportError as e:
                        raise NetworkError(request_url, e) from e
                    self._raise_for_status(response, request_url, config)
            except BaseException:
                await response.aclose()
                raise
            return response
        finally:
            if timer:
                timer.disarm()

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _build_options(
        self,
        method: HttpMethod,
        url: str,
        json: Any,
        config: RequestConfig,
        accept: Optional[str] = None,
    ) -> RequestOptions:
        builder = RequestBuilder(url, method).header("Content-Type", self._config.content_type)
        if accept:
            builder.accept(accept)
        # Caller headers win over the defaults
        return (
            builder
            .headers(config.headers)
            .params(config.params)
            .json(json, self._config.serializer)
            .build()
        )

    def _build_request(self, options: RequestOptions, timeout: httpx.Timeout) -> httpx.Request:
        assert self._client is not None
        return self._client.build_request(
            method=options["method"],
            url=options["url"],
            headers=options["headers"],
            params=options["params"] or None,
            content=options.get("content"),
            timeout=timeout,
        )

    def _transport_timeout(self, token_bounded: bool) -> httpx.Timeout:
        """
        Per-request httpx timeouts.

        Connect, write and pool limits always come from ``TimeoutConfig``.
        When a cancellation token carries the deadline the read limit is
        lifted, so the call ends as ``RequestCancelledError`` at
        ``timeout_ms`` rather than as a retryable ``ReadTimeout``.
        """
        timeout = self._config.timeout
        return httpx.Timeout(
            connect=timeout.connect,
            read=None if token_bounded else timeout.read,
            write=timeout.write,
            pool=timeout.pool,
        )

    def _arm_cancellation(
        self, config: RequestConfig, timeout_ms: int
    ) -> Tuple[CancellationToken, Optional[CancellationTimer]]:
        # A caller-supplied token replaces the timeout entirely
        if config.signal is not None:
            return config.signal, None
        token = CancellationToken()
        return token, CancellationTimer(token, timeout_ms)

    async def _attempt(
        self,
        options: RequestOptions,
        url: str,
        config: RequestConfig,
        token: CancellationToken,
        transport_timeout: httpx.Timeout,
    ) -> Any:
        request = self._build_request(options, transport_timeout)
        await self.interceptors.run_request(url, request)
        logger.debug(f"{LOG_PREFIX} Request: {request.method} {url} body={_format_body(options.get('content'))}")

        response = await self._send(request, url, token)
        await self.interceptors.run_response(response, url)
        logger.debug(f"{LOG_PREFIX} Response: {response.status_code} {url}")

        self._raise_for_status(response, url, config)
        return parse_response_body(response, config.expected_content_type)

    async def _send(
        self,
        request: httpx.Request,
        url: str,
        token: CancellationToken,
        stream: bool = False,
    ) -> httpx.Response:
        assert self._client is not None
        try:
            return await run_cancellable(self._client.send(request, stream=stream), token, url)
        except httpx.TransportError as e:
            logger.error(f"{LOG_PREFIX} Request failed: {e}")
            raise NetworkError(url, e) from e

    def _raise_for_status(self, response: httpx.Response, url: str, config: RequestConfig) -> None:
        self.auth_gate.check(response, url, config.skip_auth_check)
        if response.is_success:
            return
        error = build_api_error(response, config.preserve_error_detail)
        logger.warning(f"{LOG_PREFIX} {response.status_code} on {url}: {error.message}")
        raise error

    def _backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        delay_ms = min(self._config.backoff_base_ms * (2 ** attempt), self._config.backoff_max_ms)
        return delay_ms / 1000

    async def _backoff_sleep(self, delay: float, token: CancellationToken, url: str) -> None:
        await sleep_cancellable(delay, token, url)
