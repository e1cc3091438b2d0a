"""
Request builder helper.
"""
from typing import Any, Dict, Optional

import httpx

from ..types import HttpMethod, RequestOptions, Serializer


class RequestBuilder:
    """
    Fluent builder for the options of one logical call.

    Header names are case-insensitive: setting ``accept`` after ``Accept``
    replaces the value instead of sending both. The body is serialized once
    here and reused for every retry attempt.
    """

    def __init__(self, url: str = "", method: HttpMethod = "GET"):
        self._url = url
        self._method = method
        self._headers = httpx.Headers()
        self._params: Dict[str, Any] = {}
        self._content: Optional[str] = None

    def url(self, url: str) -> "RequestBuilder":
        self._url = url
        return self

    def method(self, method: HttpMethod) -> "RequestBuilder":
        self._method = method
        return self

    def header(self, key: str, value: str) -> "RequestBuilder":
        self._headers[key] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "RequestBuilder":
        self._headers.update(headers)
        return self

    def accept(self, media_type: str) -> "RequestBuilder":
        return self.header("Accept", media_type)

    def params(self, params: Dict[str, Any]) -> "RequestBuilder":
        self._params.update(params)
        return self

    def json(self, data: Any, serializer: Serializer) -> "RequestBuilder":
        """Serialize ``data`` as the body. ``None`` leaves the request without one."""
        self._content = None if data is None else serializer.serialize(data)
        return self

    def build(self) -> RequestOptions:
        options: RequestOptions = {
            "url": self._url,
            "method": self._method,
            "headers": dict(self._headers),
            "params": dict(self._params),
        }
        if self._content is not None:
            options["content"] = self._content
        return options
