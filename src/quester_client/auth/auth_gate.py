"""
Authentication failure interception.
"""
import json
import logging
from typing import Optional

import httpx

from ..errors import AuthenticationError
from ..types import LogoutHandler

logger = logging.getLogger(__name__)
LOG_PREFIX = "[AUTH]"

AUTH_FAILURE_STATUSES = (401, 403)


def _auth_failure_message(response: httpx.Response) -> str:
    """Use the body's ``message`` field, else the status text."""
    try:
        data = json.loads(response.text) if response.text else None
    except (ValueError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase or f"Authentication failed ({response.status_code})"


class AuthGate:
    """
    Detect 401/403 responses and invalidate the session.

    Holds the client's logout handler. With ``dedupe`` enabled the handler
    fires once per invalidated session: later failures are still raised but
    do not call it again until ``mark_authenticated()`` is called.
    """

    def __init__(self, on_auth_failure: Optional[LogoutHandler] = None, dedupe: bool = True):
        self._handler = on_auth_failure
        self._dedupe = dedupe
        self._invalidated = False

    @property
    def handler(self) -> Optional[LogoutHandler]:
        return self._handler

    @property
    def session_invalidated(self) -> bool:
        return self._invalidated

    def set_handler(self, handler: Optional[LogoutHandler]) -> None:
        self._handler = handler

    def mark_authenticated(self) -> None:
        """Close the current invalidation episode after a successful login."""
        if self._invalidated:
            logger.debug(f"{LOG_PREFIX} Session re-authenticated, logout latch reset")
        self._invalidated = False

    @staticmethod
    def is_auth_failure(response: httpx.Response) -> bool:
        return response.status_code in AUTH_FAILURE_STATUSES

    def check(self, response: httpx.Response, url: str, skip_auth_check: bool = False) -> None:
        """Raise ``AuthenticationError`` if ``response`` is an auth failure."""
        if skip_auth_check or not self.is_auth_failure(response):
            return

        status = response.status_code
        logger.warning(f"{LOG_PREFIX} Authentication error detected: {status} on {url}")

        message = _auth_failure_message(response)
        self._trigger_logout()
        raise AuthenticationError(message, status, raw_response=response, data={"message": message})

    def _trigger_logout(self) -> None:
        if self._dedupe and self._invalidated:
            logger.debug(f"{LOG_PREFIX} Logout already triggered for this session, skipping handler")
            return
        self._invalidated = True

        if self._handler is None:
            logger.error(f"{LOG_PREFIX} No logout handler registered - session state may be left half logged out")
            return
        try:
            self._handler()
        except Exception as e:
            logger.error(f"{LOG_PREFIX} Logout handler failed: {e}")
