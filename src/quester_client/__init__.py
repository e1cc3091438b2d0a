"""
Quester Client - resilient request/streaming client for the Quester API
"""

__version__ = "0.1.0"

from .cancellation import CancellationToken
from .client import QuesterClient
from .config import ClientConfig, RequestConfig, TimeoutConfig
from .errors import (
    APIError,
    AuthenticationError,
    NetworkError,
    QuesterClientError,
    RequestCancelledError,
    StreamError,
    get_error_message,
    is_auth_error,
)
from .interceptors import InterceptorChain
from .streaming import (
    AnalysisEventDispatcher,
    AnalysisQueryParams,
    AnalysisStreamCallbacks,
    SSEFrameDecoder,
    SSEFrameReader,
    process_sse_stream,
    stream_analysis,
)
from .types import StreamCallbacks

__all__ = [
    "QuesterClient",
    "ClientConfig", "RequestConfig", "TimeoutConfig",
    "CancellationToken",
    "APIError", "AuthenticationError", "NetworkError", "QuesterClientError",
    "RequestCancelledError", "StreamError",
    "get_error_message", "is_auth_error",
    "InterceptorChain",
    "StreamCallbacks",
    "SSEFrameDecoder", "SSEFrameReader", "process_sse_stream",
    "AnalysisEventDispatcher", "AnalysisQueryParams", "AnalysisStreamCallbacks", "stream_analysis",
]
