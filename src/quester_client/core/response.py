"""
Response body handling: content negotiation for successful responses and
error message extraction for failed ones.
"""
import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

import httpx

from ..errors import APIError
from ..types import ExpectedContentType

logger = logging.getLogger(__name__)

LOG_PREFIX = "[Response]"

INVALID_JSON_MESSAGE = "Invalid JSON response from server"

BINARY_CONTENT_MARKERS = ("application/octet-stream", "image/", "audio/", "video/")

_TITLE_RE = re.compile(r"<title>([^<]*)</title>", re.IGNORECASE)


def _content_type(response: httpx.Response) -> str:
    return (response.headers.get("content-type") or "").lower()


def _status_text(response: httpx.Response) -> str:
    return response.reason_phrase or ""


# =========================================================================
# Content negotiation
# =========================================================================

def resolve_content_kind(content_type: str, expected: ExpectedContentType = "auto") -> ExpectedContentType:
    """
    Pick the body parser for a successful response.

    An explicit ``expected`` always wins. In ``auto`` mode JSON-ish and
    unknown types parse as JSON, ``text/*`` as text and media or
    octet-stream as raw bytes.
    """
    if expected != "auto":
        return expected

    content_type = (content_type or "").lower()
    if "json" in content_type:
        return "json"
    if "text/" in content_type:
        return "text"
    if any(marker in content_type for marker in BINARY_CONTENT_MARKERS):
        return "blob"
    return "json"


def parse_response_body(response: httpx.Response, expected: ExpectedContentType = "auto") -> Any:
    """Parse an already-read response body according to ``expected``."""
    kind = resolve_content_kind(_content_type(response), expected)

    if kind == "text":
        return response.text

    if kind == "blob":
        return response.content

    text = response.text
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        logger.warning(f"{LOG_PREFIX} Invalid JSON body (status {response.status_code}): {text[:200]}")
        raise APIError(INVALID_JSON_MESSAGE, response.status_code, raw_response=response)


# =========================================================================
# Error classification
# =========================================================================

def extract_error_detail(response: httpx.Response) -> Tuple[str, Dict[str, Any]]:
    """
    Recover a human-readable message from a failed response.

    Returns the message and the error payload the message came from, so
    fields such as ``code`` survive into the raised error.
    """
    content_type = _content_type(response)
    status_text = _status_text(response)

    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return status_text, {"message": status_text}

    if "json" in content_type:
        try:
            data = json.loads(text) if text else {}
        except ValueError:
            return status_text, {"message": status_text}
        if not isinstance(data, dict):
            return status_text, {"message": status_text}
        message = data.get("message") or data.get("error") or status_text
        return str(message), data

    if "text/html" in content_type:
        match = _TITLE_RE.search(text)
        message = match.group(1) if match else status_text
        return message, {"message": message, "html": True}

    message = text or status_text
    return message, {"message": message}


def build_api_error(response: httpx.Response, preserve_error_detail: bool = True) -> APIError:
    """Turn a non-2xx response into an ``APIError``."""
    message, data = extract_error_detail(response)
    if not preserve_error_detail or not message:
        message = f"Request failed with status {response.status_code}"

    code: Optional[str] = data.get("code")
    return APIError(
        message,
        response.status_code,
        code=code,
        raw_response=response,
        data=data,
    )
