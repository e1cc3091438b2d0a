"""
Server-Sent Events decoding and the analysis event stream.
"""
from .analysis import (
    AnalysisEventDispatcher,
    AnalysisQueryParams,
    AnalysisStreamCallbacks,
    StreamEvent,
    parse_stream_event,
    stream_analysis,
)
from .sse import DONE_SENTINEL, SSEFrameDecoder, SSEFrameReader, process_sse_stream

__all__ = [
    "SSEFrameDecoder", "SSEFrameReader", "process_sse_stream", "DONE_SENTINEL",
    "AnalysisEventDispatcher", "AnalysisQueryParams", "AnalysisStreamCallbacks",
    "StreamEvent", "parse_stream_event", "stream_analysis",
]
