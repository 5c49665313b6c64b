"""
Credential storage and refresh for the delegated Canva session.

The refresh token lives client-side in a sealed cookie; access tokens are kept
in a server-side cache keyed by refresh token. Concurrent refreshes of the same
refresh token collapse into a single upstream call, because a second refresh
racing the first can invalidate its result when Canva rotates tokens.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Protocol

import httpx

from canva_bridge.core.errors import UpstreamAuthError
from canva_bridge.models.oauth import CredentialPair, SealedCredential
from canva_bridge.services.sealed_codec import SealedCodec

logger = logging.getLogger(__name__)


class TokenEndpoint(Protocol):
    async def exchange_authorization_code(
        self, *, code: str, code_verifier: str, redirect_uri: Optional[str] = None
    ) -> CredentialPair:
        ...

    async def refresh_access_token(
        self, *, refresh_token: str, scope: Optional[str] = None
    ) -> CredentialPair:
        ...


@dataclass
class _AccessCacheEntry:
    access_token: str
    expires_at: datetime
    scope: Optional[str]
    stored_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AccessTokenCache:
    """Server-side access tokens keyed by the refresh token that minted them."""

    EXPIRY_MARGIN = timedelta(seconds=60)

    def __init__(self) -> None:
        self._entries: Dict[str, _AccessCacheEntry] = {}

    def store(self, credentials: CredentialPair) -> None:
        if not credentials.access_token or not credentials.refresh_token:
            return
        self._entries[credentials.refresh_token] = _AccessCacheEntry(
            access_token=credentials.access_token,
            expires_at=credentials.expires_at,
            scope=credentials.scope,
        )

    def get(self, refresh_token: str) -> Optional[str]:
        entry = self._entries.get(refresh_token)
        if entry is None:
            return None
        if entry.expires_at - datetime.now(timezone.utc) <= self.EXPIRY_MARGIN:
            self._entries.pop(refresh_token, None)
            return None
        return entry.access_token

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class AccessGrant:
    """A usable access token, plus the credential pair when a refresh happened."""

    access_token: str
    refreshed: Optional[CredentialPair] = None


class CredentialStore:
    """Exchange, refresh and cache Canva credentials."""

    def __init__(
        self,
        *,
        oauth_client: TokenEndpoint,
        codec: SealedCodec,
        access_cache: AccessTokenCache,
        refresh_in_flight: Dict[str, "asyncio.Task[CredentialPair]"],
    ) -> None:
        self._oauth = oauth_client
        self._codec = codec
        self._cache = access_cache
        self._in_flight = refresh_in_flight

    async def exchange(
        self, *, code: str, code_verifier: str, redirect_uri: Optional[str] = None
    ) -> CredentialPair:
        """Complete the authorization-code grant and cache the access token."""
        credentials = await self._oauth.exchange_authorization_code(
            code=code, code_verifier=code_verifier, redirect_uri=redirect_uri
        )
        self._cache.store(credentials)
        return credentials

    async def refresh(
        self, *, refresh_token: str, scope: Optional[str] = None
    ) -> CredentialPair:
        """Refresh, sharing one upstream call among concurrent callers."""
        task = self._in_flight.get(refresh_token)
        if task is None:
            task = asyncio.ensure_future(
                self._oauth.refresh_access_token(refresh_token=refresh_token, scope=scope)
            )
            self._in_flight[refresh_token] = task
            task.add_done_callback(
                lambda done, key=refresh_token: self._settle(key, done)
            )
        # Shielded so one caller's cancellation does not abort the shared refresh.
        return await asyncio.shield(task)

    def _settle(self, key: str, task: "asyncio.Task[CredentialPair]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.info("Canva token refresh failed: %s", task.exception())

    def read_sealed_credential(self, sealed: Optional[str]) -> Optional[SealedCredential]:
        return SealedCredential.from_unsealed(self._codec.unseal(sealed))

    def seal_credential(self, credentials: CredentialPair) -> str:
        return self._codec.seal(credentials.sealed_payload())

    async def get_valid_access_token(self, sealed: Optional[str]) -> Optional[AccessGrant]:
        """Return a usable access token, or ``None`` when the user must sign in."""
        stored = self.read_sealed_credential(sealed)
        if stored is None:
            return None

        cached = self._cache.get(stored.refresh_token)
        if cached:
            return AccessGrant(access_token=cached)

        try:
            refreshed = await self.refresh(
                refresh_token=stored.refresh_token, scope=stored.scope
            )
        except (UpstreamAuthError, httpx.HTTPError) as exc:
            logger.warning("Treating session as signed out after refresh failure: %s", exc)
            return None

        self._cache.store(refreshed)
        return AccessGrant(access_token=refreshed.access_token, refreshed=refreshed)


__all__ = ["AccessGrant", "AccessTokenCache", "CredentialStore", "TokenEndpoint"]
