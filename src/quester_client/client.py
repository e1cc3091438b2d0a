"""
High-level QuesterClient implementation.
"""
from typing import Any, Optional

import httpx

from .config import ClientConfig, RequestConfigLike, coerce_request_config
from .core.base_client import BaseClient
from .streaming.sse import process_sse_stream
from .types import Disposer, HttpMethod, LogoutHandler, RequestInterceptor, ResponseInterceptor, StreamCallbacks


class QuesterClient(BaseClient):
    """
    High-level HTTP client with convenience methods.
    """

    @classmethod
    def create(cls, config: Optional[ClientConfig] = None, on_auth_failure: Optional[LogoutHandler] = None) -> "QuesterClient":
        """Factory method to create a client; reads the environment when no config is given."""
        return cls(config or ClientConfig.from_env(), on_auth_failure=on_auth_failure)

    async def get(self, url: str, config: RequestConfigLike = None) -> Any:
        """Execute GET request."""
        return await self.request("GET", url, config=config)

    async def post(self, url: str, data: Any = None, config: RequestConfigLike = None) -> Any:
        """Execute POST request. ``data`` is sent as JSON; ``None`` sends no body."""
        return await self.request("POST", url, json=data, config=config)

    async def put(self, url: str, data: Any = None, config: RequestConfigLike = None) -> Any:
        """Execute PUT request."""
        return await self.request("PUT", url, json=data, config=config)

    async def patch(self, url: str, data: Any = None, config: RequestConfigLike = None) -> Any:
        """Execute PATCH request."""
        return await self.request("PATCH", url, json=data, config=config)

    async def delete(self, url: str, config: RequestConfigLike = None) -> Any:
        """Execute DELETE request."""
        return await self.request("DELETE", url, config=config)

    async def stream_sse(
        self,
        url: str,
        callbacks: StreamCallbacks,
        method: HttpMethod = "POST",
        data: Any = None,
        config: RequestConfigLike = None,
    ) -> None:
        """Open a stream and process it as Server-Sent Events until it ends."""
        config = coerce_request_config(config)
        response: httpx.Response = await self.stream(url, method=method, json=data, config=config)
        await process_sse_stream(response, callbacks, signal=config.signal)

    # Session and interceptor wiring

    def set_logout_handler(self, handler: Optional[LogoutHandler]) -> None:
        """Register (or replace) the handler invoked when the session is rejected."""
        self.auth_gate.set_handler(handler)

    def mark_authenticated(self) -> None:
        """Re-arm the logout handler after a successful login."""
        self.auth_gate.mark_authenticated()

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> Disposer:
        return self.interceptors.add_request_interceptor(interceptor)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> Disposer:
        return self.interceptors.add_response_interceptor(interceptor)

    def enable_debug_logging(self) -> Disposer:
        return self.interceptors.enable_debug_logging()
