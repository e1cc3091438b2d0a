from typing import Any, Dict, Optional

import httpx


class QuesterClientError(Exception):
    """Base exception for every failure surfaced by the client."""
    pass


class APIError(QuesterClientError):
    """A non-2xx response, or a 2xx response whose body could not be parsed."""

    def __init__(
        self,
        message: str,
        status: int,
        code: Optional[str] = None,
        raw_response: Optional[httpx.Response] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.raw_response = raw_response
        self.data = data or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"


class AuthenticationError(APIError):
    """401/403 outcome of a call that did not skip the auth check."""

    def __init__(
        self,
        message: str,
        status: int,
        raw_response: Optional[httpx.Response] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, status, None, raw_response, data)


class NetworkError(QuesterClientError):
    def __init__(self, url: str, cause: Exception):
        # httpx timeout exceptions often carry an empty message
        detail = f"{type(cause).__name__}: {cause}" if str(cause) else type(cause).__name__
        msg = f"Network request to '{url}' failed: {detail}"
        super().__init__(msg)
        self.url = url
        self.cause = cause


class RequestCancelledError(QuesterClientError):
    """The call was cancelled by its token, either on timeout or by the caller."""

    def __init__(self, url: str, reason: str = "cancelled"):
        msg = f"Request to '{url}' was cancelled ({reason})"
        super().__init__(msg)
        self.url = url
        self.reason = reason

    @property
    def is_timeout(self) -> bool:
        return self.reason == "timeout"


class StreamError(QuesterClientError):
    """Raised when a streaming response cannot be read."""
    pass


def is_auth_error(error: Any) -> bool:
    """Check whether an error is an authentication failure."""
    return isinstance(error, AuthenticationError)


def get_error_message(error: Any) -> str:
    """Get a user-facing message for any error value."""
    if isinstance(error, APIError):
        return error.message
    if isinstance(error, BaseException):
        return str(error)
    return "An unexpected error occurred"


def is_retryable(error: Exception) -> bool:
    """
    Decide whether a failed attempt may be re-issued.

    Transport failures and 5xx responses are retryable. Every 4xx (auth
    included), cancellations and 2xx parse failures are final.
    """
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, AuthenticationError):
        return False
    if isinstance(error, APIError):
        return error.status >= 500
    return False
