from .base_client import BaseClient
from .request import RequestBuilder
from .response import build_api_error, extract_error_detail, parse_response_body, resolve_content_kind

__all__ = [
    "BaseClient",
    "RequestBuilder",
    "build_api_error", "extract_error_detail", "parse_response_body", "resolve_content_kind",
]
