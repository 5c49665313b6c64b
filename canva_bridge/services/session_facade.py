"""
Single entry point for anything that needs a Canva access token.
"""

from __future__ import annotations

from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from canva_bridge.core.cookies import CREDENTIAL_COOKIE, CookiePolicy
from canva_bridge.core.errors import ReauthRequired
from canva_bridge.services.authorization_flow import build_auth_start_url, safe_return_path
from canva_bridge.services.credential_store import AccessGrant, CredentialStore


class CanvaSessionFacade:
    """Cache check, refresh and cache update behind one call."""

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        cookie_policy: CookiePolicy,
        public_base_url: str,
    ) -> None:
        self._store = credential_store
        self._cookies = cookie_policy
        self._public_base_url = public_base_url

    async def with_access_token(self, request: Request) -> Optional[AccessGrant]:
        return await self._store.get_valid_access_token(
            request.cookies.get(CREDENTIAL_COOKIE)
        )

    async def require_access_token(self, request: Request, *, return_to: str) -> AccessGrant:
        grant = await self.with_access_token(request)
        if grant is None:
            raise ReauthRequired(
                "Canva not connected",
                auth_start_url=self.auth_start_url(return_to),
            )
        return grant

    def auth_start_url(self, return_to: str) -> str:
        return build_auth_start_url(self._public_base_url, safe_return_path(return_to))

    def persist(self, response: Response, grant: AccessGrant) -> None:
        """Re-seal the credential cookie when this request refreshed it."""
        if grant.refreshed is not None:
            self._cookies.set_credential(
                response, self._store.seal_credential(grant.refreshed)
            )


__all__ = ["CanvaSessionFacade"]
