"""
Verification of the signed correlation token Canva sends on return navigation.

The token is a JWT signed with one of Canva's published keys. Its signature is
checked against the remote JWKS (cached in memory) and its audience must be our
client id before any claim is trusted.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from canva_bridge.core.errors import InvalidAssertion

logger = logging.getLogger(__name__)

RETURN_ASSERTION_TYPE = "rti"
ALLOWED_ALGORITHMS = ["RS256"]


class JWKSCache:
    """Small in-memory cache for the Canva Connect key set.

    Forced refetches (unknown ``kid``) happen at most once per
    ``min_refresh_interval_seconds`` so arbitrary tokens cannot drive
    outbound traffic.
    """

    def __init__(
        self,
        url: str,
        *,
        ttl_seconds: int = 300,
        min_refresh_interval_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.min_refresh_interval_seconds = min_refresh_interval_seconds
        self._transport = transport
        self._jwks: Optional[Dict[str, Any]] = None
        self._expires_at = 0.0
        self._last_forced_at: Optional[float] = None

    async def get(self, *, force: bool = False) -> Dict[str, Any]:
        now = time.time()
        if force and self._jwks is not None and not self._may_force(now):
            logger.debug("Skipping forced JWKS refetch; last one was too recent.")
            return self._jwks
        if not force and self._jwks is not None and self._expires_at > now:
            return self._jwks
        if force:
            self._last_forced_at = now
        jwks = await self._fetch()
        self._jwks = jwks
        self._expires_at = now + self.ttl_seconds
        return jwks

    def _may_force(self, now: float) -> bool:
        if self._last_forced_at is None:
            return True
        return now - self._last_forced_at >= self.min_refresh_interval_seconds

    async def _fetch(self) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                resp = await client.get(self.url)
        except httpx.HTTPError as exc:
            raise InvalidAssertion("Unable to fetch Canva signing keys") from exc
        if resp.status_code != 200:
            raise InvalidAssertion("Unable to fetch Canva signing keys")
        try:
            jwks = resp.json()
        except ValueError as exc:
            raise InvalidAssertion("Canva signing keys were malformed") from exc
        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise InvalidAssertion("Canva signing keys were malformed")
        return jwks


@dataclass(frozen=True)
class ReturnAssertion:
    design_id: str
    correlation_state: Optional[str]
    claims: Dict[str, Any]


async def verify_assertion(
    token: str, *, audience: str, cache: JWKSCache
) -> Dict[str, Any]:
    """Validate signature, expiry and audience; return the claims.

    Raises
    ------
    InvalidAssertion:
        On a malformed token, an unknown signing key or any failed check.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JOSEError as exc:
        raise InvalidAssertion("Invalid correlation_jwt") from exc

    kid = header.get("kid")
    if not kid:
        raise InvalidAssertion("Invalid correlation_jwt: missing key id")

    key = _find_key(await cache.get(), kid)
    if key is None:
        # Canva may have rotated keys since the last fetch.
        key = _find_key(await cache.get(force=True), kid)
    if key is None:
        raise InvalidAssertion("Invalid correlation_jwt: unknown signing key")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=ALLOWED_ALGORITHMS,
            audience=audience,
            options={
                "verify_at_hash": False,
                "require_aud": True,
                "require_exp": True,
                "leeway": 5,
            },
        )
    except JOSEError as exc:
        logger.info("Rejected correlation token: %s", exc)
        raise InvalidAssertion(str(exc) or "Invalid correlation_jwt") from exc


async def verify_return_assertion(
    token: str, *, audience: str, cache: JWKSCache
) -> ReturnAssertion:
    """Verify the token, then apply the return-navigation claim checks."""
    claims = await verify_assertion(token, audience=audience, cache=cache)
    if claims.get("type") != RETURN_ASSERTION_TYPE:
        raise InvalidAssertion("Invalid return token type")
    design_id = claims.get("design_id")
    if not isinstance(design_id, str) or not design_id:
        raise InvalidAssertion("Missing design_id in return token")
    correlation_state = claims.get("correlation_state")
    return ReturnAssertion(
        design_id=design_id,
        correlation_state=correlation_state if isinstance(correlation_state, str) else None,
        claims=claims,
    )


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    for key in jwks.get("keys", []):
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    return None


__all__ = [
    "JWKSCache",
    "RETURN_ASSERTION_TYPE",
    "ReturnAssertion",
    "verify_assertion",
    "verify_return_assertion",
]
