"""
Canva OAuth utilities.

Builds the PKCE authorization URL and talks to the token endpoint for code
exchange and refresh. Both grants authenticate the client with HTTP Basic.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from canva_bridge.core.config import CanvaSettings
from canva_bridge.core.errors import UpstreamAuthError
from canva_bridge.models.oauth import CredentialPair
from canva_bridge.utils.http import json_or_empty

logger = logging.getLogger(__name__)


class CanvaOAuthClient:
    """Build Canva authorization URLs and exchange or refresh tokens."""

    def __init__(
        self,
        settings: CanvaSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout

    @property
    def redirect_uri(self) -> str:
        return str(self._settings.redirect_uri)

    def build_authorization_url(
        self, *, state: str, code_challenge: str, redirect_uri: Optional[str] = None
    ) -> str:
        """Construct the Canva consent URL for a PKCE session."""
        params = {
            "code_challenge": code_challenge,
            "code_challenge_method": "s256",
            "scope": self._settings.scopes,
            "response_type": "code",
            "client_id": self._settings.client_id,
            "state": state,
            "redirect_uri": redirect_uri or self.redirect_uri,
        }
        return f"{self._settings.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, *, code: str, code_verifier: str, redirect_uri: Optional[str] = None
    ) -> CredentialPair:
        """Exchange an authorization code (plus its PKCE verifier) for tokens."""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": redirect_uri or self.redirect_uri,
        }
        body = await self._post_token(payload, "Failed to exchange authorization code")
        if not body.get("access_token") or not body.get("refresh_token"):
            raise UpstreamAuthError("Incomplete token payload returned from Canva.")
        return _credentials_from(body)

    async def refresh_access_token(
        self, *, refresh_token: str, scope: Optional[str] = None
    ) -> CredentialPair:
        """Obtain a new access token; keeps the old refresh token unless rotated."""
        payload = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        if scope:
            payload["scope"] = scope
        body = await self._post_token(payload, "Failed to refresh Canva access token")
        if not body.get("access_token"):
            raise UpstreamAuthError("Incomplete refresh payload returned from Canva.")
        return _credentials_from(body, fallback_refresh_token=refresh_token)

    async def _post_token(self, payload: dict, failure_message: str) -> dict:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.post(
                self._settings.token_url,
                data=payload,
                auth=(self._settings.client_id, self._settings.client_secret),
            )

        body = json_or_empty(response)
        if not response.is_success:
            logger.warning(
                "Canva token endpoint returned %s for %s grant",
                response.status_code,
                payload["grant_type"],
            )
            raise UpstreamAuthError(
                body.get("message") or body.get("error_description") or failure_message,
                code=body.get("code") or body.get("error"),
            )
        return body


def _credentials_from(
    body: dict, *, fallback_refresh_token: Optional[str] = None
) -> CredentialPair:
    try:
        return CredentialPair.from_token_response(
            body, fallback_refresh_token=fallback_refresh_token
        )
    except (ValidationError, OverflowError, TypeError, ValueError) as exc:
        logger.warning("Canva token endpoint returned an unusable payload: %s", exc)
        raise UpstreamAuthError("Malformed token payload returned from Canva.") from exc


__all__ = ["CanvaOAuthClient"]
