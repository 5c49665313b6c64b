"""
Redirect-based Canva sign-in: the ``start`` and ``callback`` transitions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from canva_bridge.clients.canva_auth import CanvaOAuthClient
from canva_bridge.core.errors import (
    AuthorizationDenied,
    ExpiredOrUnknownSession,
    MalformedCallback,
)
from canva_bridge.models.oauth import CredentialPair
from canva_bridge.services.credential_store import CredentialStore
from canva_bridge.services.pkce_sessions import (
    PkceCookieMap,
    PkceSessionRegistry,
    code_challenge_s256,
)

logger = logging.getLogger(__name__)

AUTH_START_PATH = "/api/canva/auth/start"


def safe_return_path(return_to: Optional[str], default: str = "/") -> str:
    """Keep post-auth destinations on our own origin."""
    if not return_to or not return_to.startswith("/") or return_to.startswith("//"):
        return default
    return return_to


def build_auth_start_url(public_base_url: str, return_to: str) -> str:
    """Absolute (or, without a public origin, relative) sign-in URL."""
    path = f"{AUTH_START_PATH}?return_to={quote(return_to, safe='')}"
    return f"{public_base_url}{path}" if public_base_url else path


@dataclass(frozen=True)
class CallbackOutcome:
    redirect_url: str
    credentials: CredentialPair


class AuthorizationFlowController:
    """Drive the PKCE authorization-code handshake with Canva."""

    def __init__(
        self,
        *,
        sessions: PkceSessionRegistry,
        oauth_client: CanvaOAuthClient,
        credential_store: CredentialStore,
        public_base_url: str,
    ) -> None:
        self._sessions = sessions
        self._oauth = oauth_client
        self._credentials = credential_store
        self._public_base_url = public_base_url

    def start(self, cookie_map: PkceCookieMap, *, return_to: Optional[str] = None) -> str:
        """Record a new PKCE session and return the Canva consent URL."""
        session = self._sessions.begin(cookie_map, return_to=safe_return_path(return_to))
        logger.info("Starting Canva sign-in (%d pending in cookie)", len(cookie_map))
        return self._oauth.build_authorization_url(
            state=session.state,
            code_challenge=code_challenge_s256(session.code_verifier),
            redirect_uri=session.redirect_uri,
        )

    async def callback(
        self,
        cookie_map: PkceCookieMap,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        fallback_origin: str = "",
    ) -> CallbackOutcome:
        """Validate the callback, exchange the code and pick the redirect target."""
        if error:
            raise AuthorizationDenied(error_description or error, code=error)
        if not code:
            raise MalformedCallback("Missing authorization code")
        if not state:
            raise MalformedCallback("Missing OAuth state. Please restart Canva sign-in.")

        session = self._sessions.resolve(cookie_map, state)
        if session is None:
            raise ExpiredOrUnknownSession(
                "Missing PKCE verifier. Please restart Canva sign-in."
            )

        credentials = await self._credentials.exchange(
            code=code,
            code_verifier=session.code_verifier,
            redirect_uri=session.redirect_uri,
        )
        self._sessions.consume(cookie_map, state)
        logger.info("Canva sign-in completed")

        base = self._public_base_url or fallback_origin.rstrip("/")
        return CallbackOutcome(
            redirect_url=f"{base}{safe_return_path(session.return_to)}",
            credentials=credentials,
        )


__all__ = [
    "AUTH_START_PATH",
    "AuthorizationFlowController",
    "CallbackOutcome",
    "build_auth_start_url",
    "safe_return_path",
]
