"""
Typed event stream for the research analysis endpoint.

The backend emits one JSON object per ``data:`` line. Each object is
validated into one of eight ``StreamEvent`` variants and routed to the
matching callback in ``AnalysisStreamCallbacks``.
"""
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, Callable, Dict, List, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..cancellation import CancellationToken
from ..config import RequestConfig
from .sse import SSEFrameReader, _invoke

if TYPE_CHECKING:
    from ..client import QuesterClient

logger = logging.getLogger(__name__)

LOG_PREFIX = "[AnalysisStream]"

ANALYSIS_QUERY_PATH = "/analysis/query"
ANALYSIS_STREAM_TIMEOUT_MS = 120000

BlockType = Literal["table", "chart", "metric", "citation", "comparison"]


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# =========================================================================
# Event payload pieces
# =========================================================================

class SuggestionItem(_WireModel):
    text: str
    category: Optional[str] = None


class Usage(_WireModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class StepStartInfo(_WireModel):
    step_id: str
    description: str
    tool_name: Optional[str] = None


class StepCompleteInfo(_WireModel):
    step_id: str
    summary: str
    duration: float
    status: Literal["success", "error"]
    error: Optional[str] = None


class BlockInfo(_WireModel):
    block_id: str
    block_type: BlockType
    block: Dict[str, Any]


class DoneMetadata(_WireModel):
    session_id: str
    message_id: str
    content: Optional[str] = None
    usage: Optional[Usage] = None
    duration: float
    tool_call_count: int
    suggestions: Optional[List[SuggestionItem]] = None


# =========================================================================
# Stream events
# =========================================================================

class SessionStartEvent(_WireModel):
    type: Literal["session_start"]
    session_id: str


class StepStartEvent(_WireModel):
    type: Literal["step_start"]
    step_id: str
    description: str
    tool_name: Optional[str] = None


class StepCompleteEvent(_WireModel):
    type: Literal["step_complete"]
    step_id: str
    summary: str
    duration: float
    status: Literal["success", "error"]
    error: Optional[str] = None


class BlockEvent(_WireModel):
    type: Literal["block"]
    block_id: str
    block_type: BlockType
    data: Dict[str, Any]


class ContentDeltaEvent(_WireModel):
    type: Literal["content_delta"]
    text: str


class SuggestionsEvent(_WireModel):
    type: Literal["suggestions"]
    items: List[SuggestionItem]


class ErrorEvent(_WireModel):
    type: Literal["error"]
    message: str
    recoverable: bool


class DoneEvent(_WireModel):
    type: Literal["done"]
    metadata: DoneMetadata


StreamEvent = Annotated[
    Union[
        SessionStartEvent,
        StepStartEvent,
        StepCompleteEvent,
        BlockEvent,
        ContentDeltaEvent,
        SuggestionsEvent,
        ErrorEvent,
        DoneEvent,
    ],
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def parse_stream_event(payload: Any) -> StreamEvent:
    """Validate a decoded payload into a ``StreamEvent``; raises ``ValidationError``."""
    return _stream_event_adapter.validate_python(payload)


# =========================================================================
# Dispatch
# =========================================================================

@dataclass
class AnalysisStreamCallbacks:
    """One optional callback per event kind; sync or async."""
    on_session_start: Optional[Callable[[str], Any]] = None
    on_step_start: Optional[Callable[[StepStartInfo], Any]] = None
    on_step_complete: Optional[Callable[[StepCompleteInfo], Any]] = None
    on_block: Optional[Callable[[BlockInfo], Any]] = None
    on_content_delta: Optional[Callable[[str], Any]] = None
    on_suggestions: Optional[Callable[[List[SuggestionItem]], Any]] = None
    on_error: Optional[Callable[[str, bool], Any]] = None
    on_done: Optional[Callable[[DoneMetadata], Any]] = None


class AnalysisEventDispatcher:
    """
    Route analysis stream payloads to typed callbacks.

    Empty, malformed and unrecognised payloads are logged and skipped; they
    never reach a callback. Transport failures propagate to the caller.
    """

    def __init__(self, callbacks: AnalysisStreamCallbacks):
        self.callbacks = callbacks

    def decode(self, payload: str) -> Optional[StreamEvent]:
        if not payload:
            return None
        try:
            return parse_stream_event(json.loads(payload))
        except ValueError as e:
            # ValidationError is a ValueError too
            kind = "invalid event" if isinstance(e, ValidationError) else "non-JSON payload"
            logger.warning(f"{LOG_PREFIX} Skipping {kind}: {payload[:200]!r}")
            return None

    async def dispatch(self, event: StreamEvent) -> None:
        cb = self.callbacks
        if isinstance(event, SessionStartEvent):
            await _invoke(cb.on_session_start, event.session_id)
        elif isinstance(event, StepStartEvent):
            await _invoke(cb.on_step_start, StepStartInfo(
                step_id=event.step_id,
                description=event.description,
                tool_name=event.tool_name,
            ))
        elif isinstance(event, StepCompleteEvent):
            await _invoke(cb.on_step_complete, StepCompleteInfo(
                step_id=event.step_id,
                summary=event.summary,
                duration=event.duration,
                status=event.status,
                error=event.error,
            ))
        elif isinstance(event, BlockEvent):
            await _invoke(cb.on_block, BlockInfo(
                block_id=event.block_id,
                block_type=event.block_type,
                block=event.data,
            ))
        elif isinstance(event, ContentDeltaEvent):
            await _invoke(cb.on_content_delta, event.text)
        elif isinstance(event, SuggestionsEvent):
            await _invoke(cb.on_suggestions, event.items)
        elif isinstance(event, ErrorEvent):
            await _invoke(cb.on_error, event.message, event.recoverable)
        elif isinstance(event, DoneEvent):
            await _invoke(cb.on_done, event.metadata)

    async def consume(self, response: httpx.Response, signal: Optional[CancellationToken] = None) -> None:
        """Read ``response`` to the end (or the sentinel), dispatching each event."""
        async with SSEFrameReader(response, signal) as reader:
            async for payload in reader:
                event = self.decode(payload)
                if event is not None:
                    await self.dispatch(event)


# =========================================================================
# Entry point
# =========================================================================

class AnalysisQueryParams(_WireModel):
    project_id: str
    message: str
    session_id: Optional[str] = None
    literature_ids: List[str] = Field(default_factory=list)
    research_question_ids: List[str] = Field(default_factory=list)
    note_ids: List[str] = Field(default_factory=list)

    def to_body(self) -> Dict[str, Any]:
        """Request body with an empty session id and empty id lists left out."""
        body = self.model_dump(by_alias=True, exclude_none=True)
        for key in ("sessionId", "literatureIds", "researchQuestionIds", "noteIds"):
            if not body.get(key):
                body.pop(key, None)
        return body


async def stream_analysis(
    client: "QuesterClient",
    params: AnalysisQueryParams,
    callbacks: AnalysisStreamCallbacks,
    signal: Optional[CancellationToken] = None,
) -> None:
    """Open the analysis query stream and dispatch its events until it ends."""
    config = RequestConfig(timeout_ms=ANALYSIS_STREAM_TIMEOUT_MS, signal=signal)
    response = await client.stream(ANALYSIS_QUERY_PATH, method="POST", json=params.to_body(), config=config)
    await AnalysisEventDispatcher(callbacks).consume(response, signal)
