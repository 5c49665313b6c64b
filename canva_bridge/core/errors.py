"""
Error taxonomy shared by the OAuth flow, the credential store and the job
orchestrator.

Every error renders to the same JSON envelope: a human readable ``error``
message, the upstream ``code`` when one is known, the raw upstream payload for
diagnostics and, for authentication failures, an ``authStartUrl`` the caller
can navigate to directly.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, Optional


class CanvaBridgeError(Exception):
    """Base class for every failure surfaced to API callers."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        upstream: Any = None,
        status_code: Optional[int] = None,
        auth_start_url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.upstream = upstream
        self.auth_start_url = auth_start_url
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.code:
            body["code"] = self.code
        if self.upstream is not None:
            body["canva"] = self.upstream
        if self.auth_start_url:
            body["authStartUrl"] = self.auth_start_url
        return body


class MalformedRequest(CanvaBridgeError):
    """A required request field is missing or invalid."""

    status_code = HTTPStatus.BAD_REQUEST


class AuthorizationDenied(CanvaBridgeError):
    """The user (or Canva) declined the authorization request."""

    status_code = HTTPStatus.BAD_REQUEST


class MalformedCallback(CanvaBridgeError):
    """The OAuth callback arrived without a code or state."""

    status_code = HTTPStatus.BAD_REQUEST


class ExpiredOrUnknownSession(CanvaBridgeError):
    """No PKCE session matches the callback state; sign-in must restart."""

    status_code = HTTPStatus.BAD_REQUEST


class InvalidAssertion(CanvaBridgeError):
    """The return correlation token failed verification or claim checks."""

    status_code = HTTPStatus.BAD_REQUEST


class ReauthRequired(CanvaBridgeError):
    """No usable credential; the caller must restart the authorization flow."""

    status_code = HTTPStatus.UNAUTHORIZED


class UpstreamAuthError(CanvaBridgeError):
    """The token endpoint rejected a code exchange or refresh."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class UpstreamJobError(CanvaBridgeError):
    """A Canva API call or job failed for a reason other than authentication."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class JobTimeout(CanvaBridgeError):
    """A polled job did not reach a terminal state within its attempt budget."""

    status_code = HTTPStatus.GATEWAY_TIMEOUT


class PollingAborted(CanvaBridgeError):
    """The client went away while a job was being polled."""

    status_code = 499


__all__ = [
    "AuthorizationDenied",
    "CanvaBridgeError",
    "ExpiredOrUnknownSession",
    "InvalidAssertion",
    "JobTimeout",
    "MalformedCallback",
    "MalformedRequest",
    "PollingAborted",
    "ReauthRequired",
    "UpstreamAuthError",
    "UpstreamJobError",
]
