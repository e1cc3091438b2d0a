"""
Configuration models and validation for quester-client.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .cancellation import CancellationToken
from .types import ExpectedContentType, Serializer

logger = logging.getLogger(__name__)

LOG_PREFIX = "[Config]"

# Constants
DEFAULT_BASE_URL = "http://localhost:3333"
DEFAULT_TIMEOUT_CONNECT = 5.0
DEFAULT_TIMEOUT_READ = 30.0
DEFAULT_TIMEOUT_WRITE = 10.0
DEFAULT_CONTENT_TYPE = "application/json"

DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_STREAM_TIMEOUT_MS = 60000
DEFAULT_BACKOFF_BASE_MS = 1000
DEFAULT_BACKOFF_MAX_MS = 5000

ENV_BASE_URL = ["QUESTER_API_BASE_URL", "PUBLIC_API_BASE_URL"]
ENV_TIMEOUT = ["QUESTER_API_TIMEOUT"]


class TimeoutConfig(BaseModel):
    """Transport-level timeouts handed to httpx, in seconds."""
    connect: float = DEFAULT_TIMEOUT_CONNECT
    read: float = DEFAULT_TIMEOUT_READ
    write: float = DEFAULT_TIMEOUT_WRITE
    pool: Optional[float] = None


class CompactJsonSerializer:
    """JSON serializer producing the same text as ``JSON.stringify``."""
    def serialize(self, data: Any) -> str:
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class RequestConfig(BaseModel):
    """
    Per-call options.

    Built once at the call boundary and never shared between calls. Unknown
    keys are rejected so a typo never silently falls back to a default.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    retries: int = Field(default=DEFAULT_RETRIES, ge=0)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    signal: Optional[CancellationToken] = None
    skip_auth_check: bool = False
    expected_content_type: ExpectedContentType = "auto"
    preserve_error_detail: bool = True
    headers: Dict[str, str] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)


RequestConfigLike = Union[RequestConfig, Dict[str, Any], None]


def coerce_request_config(config: RequestConfigLike) -> RequestConfig:
    """Validate caller options into a ``RequestConfig``."""
    if config is None:
        return RequestConfig()
    if isinstance(config, RequestConfig):
        return config
    return RequestConfig(**config)


class ClientConfig(BaseModel):
    """Client configuration."""
    model_config = {"arbitrary_types_allowed": True}

    base_url: str = DEFAULT_BASE_URL
    timeout: Optional[Union[float, TimeoutConfig]] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    cookies: Dict[str, str] = Field(default_factory=dict)
    content_type: str = DEFAULT_CONTENT_TYPE

    backoff_base_ms: int = Field(default=DEFAULT_BACKOFF_BASE_MS, ge=0)
    backoff_max_ms: int = Field(default=DEFAULT_BACKOFF_MAX_MS, ge=0)

    # Fire the logout handler once per invalidated session instead of once per failing call
    dedupe_logout: bool = True

    # Optional pre-configured client (httpx)
    httpx_client: Any = None

    # Custom serializer
    serializer: Optional[Serializer] = None

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @classmethod
    def from_env(
        cls,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        env_file: Optional[str] = None,
        **kwargs: Any,
    ) -> "ClientConfig":
        """
        Build a config resolving each value in priority order:
        1. Direct argument
        2. Environment variables
        3. Values from ``env_file`` (dotenv format), if given
        4. Default value
        """
        file_values = _load_env_file(env_file)
        resolved_url = _resolve(base_url, ENV_BASE_URL, DEFAULT_BASE_URL, file_values)
        resolved_timeout = _resolve(timeout, ENV_TIMEOUT, None, file_values)
        if resolved_timeout is not None:
            try:
                resolved_timeout = float(resolved_timeout)
            except (ValueError, TypeError):
                logger.warning(f"{LOG_PREFIX} Ignoring non-numeric timeout: {resolved_timeout!r}")
                resolved_timeout = None
        return cls(base_url=resolved_url, timeout=resolved_timeout, **kwargs)


def _load_env_file(env_file: Optional[str]) -> Dict[str, str]:
    if not env_file:
        return {}
    if not os.path.isfile(env_file):
        logger.warning(f"{LOG_PREFIX} Env file not found: {env_file}")
        return {}
    values = dotenv_values(env_file)
    logger.debug(f"{LOG_PREFIX} Loaded {len(values)} values from {env_file}")
    # Keys declared without a value parse as None
    return {key: value for key, value in values.items() if value is not None}


def _resolve(arg: Any, env_keys: List[str], default: Any, file_values: Mapping[str, str]) -> Any:
    if arg is not None:
        return arg
    for key in env_keys:
        val = os.getenv(key)
        if val:
            return val
    for key in env_keys:
        val = file_values.get(key)
        if val:
            return val
    return default


def normalize_timeout(timeout: Optional[Union[float, TimeoutConfig]]) -> TimeoutConfig:
    """Normalize timeout to TimeoutConfig object."""
    if timeout is None:
        return TimeoutConfig()
    if isinstance(timeout, (int, float)):
        return TimeoutConfig(connect=float(timeout), read=float(timeout), write=float(timeout))
    return timeout


@dataclass
class ResolvedConfig:
    """Fully resolved configuration ready for usage."""
    base_url: str
    timeout: TimeoutConfig
    headers: Dict[str, str]
    cookies: Dict[str, str]
    content_type: str
    serializer: Serializer
    backoff_base_ms: int
    backoff_max_ms: int
    dedupe_logout: bool


def resolve_config(config: ClientConfig) -> ResolvedConfig:
    """Apply defaults and return resolved config."""
    return ResolvedConfig(
        base_url=config.base_url,
        timeout=normalize_timeout(config.timeout),
        headers=config.headers,
        cookies=config.cookies,
        content_type=config.content_type,
        serializer=config.serializer or CompactJsonSerializer(),
        backoff_base_ms=config.backoff_base_ms,
        backoff_max_ms=config.backoff_max_ms,
        dedupe_logout=config.dedupe_logout,
    )
