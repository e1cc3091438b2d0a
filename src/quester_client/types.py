"""
Core type definitions for quester-client.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Protocol, TypedDict, Union, runtime_checkable

import httpx

# HTTP Methods
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

# Response body parsers
ExpectedContentType = Literal["auto", "json", "text", "blob"]

# Interceptors may be plain functions or coroutines
RequestInterceptor = Callable[[str, httpx.Request], Union[None, Awaitable[None]]]
ResponseInterceptor = Callable[[httpx.Response, str], Union[None, Awaitable[None]]]

class RequestOptions(TypedDict, total=False):
    """Options for building one HTTP request."""
    method: HttpMethod
    url: str  # Absolute URL
    headers: Dict[str, str]
    params: Dict[str, Any]  # Query parameters
    content: Optional[str]  # Serialized JSON body; absent means no body


LogoutHandler = Callable[[], None]
Disposer = Callable[[], None]


@dataclass
class StreamCallbacks:
    """Callbacks driven by the generic SSE stream processor."""
    on_message: Optional[Callable[[Any], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    on_complete: Optional[Callable[[], Any]] = None


@runtime_checkable
class Serializer(Protocol):
    """Protocol for request body serialization."""
    def serialize(self, data: Any) -> str: ...
