"""
PKCE session bookkeeping for the Canva authorization flow.

Sessions live in two places: a sealed cookie holding a ``state -> session``
map (so parallel sign-ins from several tabs do not clobber each other) and a
process-wide fallback that keeps the flow working when the browser drops the
cookie. Lookups try the cookie first, then the fallback; the two are never
merged.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol

from pydantic import ValidationError

from canva_bridge.models.oauth import PkceSession
from canva_bridge.services.sealed_codec import SealedCodec

logger = logging.getLogger(__name__)

DEFAULT_PKCE_TTL_SECONDS = 30 * 60


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier(length: int = 96) -> str:
    """High-entropy verifier (96 random bytes -> 128 URL-safe characters)."""
    return _b64url(os.urandom(length))


def generate_state() -> str:
    """Opaque correlation id with 256 bits of entropy."""
    return _b64url(os.urandom(32))


def code_challenge_s256(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


class PkceSessionBackend(Protocol):
    def get(self, state: str) -> Optional[PkceSession]:
        ...

    def discard(self, state: str) -> bool:
        ...


class PkceCookieMap:
    """The client-held map of sessions, decoded from (and re-sealed into) a cookie."""

    def __init__(self, sessions: Optional[Dict[str, PkceSession]] = None) -> None:
        self._sessions: Dict[str, PkceSession] = dict(sessions or {})
        self.changed = False

    @classmethod
    def from_cookie(cls, codec: SealedCodec, raw: Optional[str]) -> "PkceCookieMap":
        """Decode the cookie, dropping sessions past their own expiry."""
        payload = codec.unseal(raw) if raw else None
        sessions = _normalize_cookie_payload(payload)
        now = time.time()
        live = {state: s for state, s in sessions.items() if not s.is_expired(now)}
        cookie_map = cls(live)
        # Expired entries must not be re-sealed into the next cookie.
        cookie_map.changed = len(live) != len(sessions)
        return cookie_map

    def add(self, session: PkceSession) -> None:
        self._sessions[session.state] = session
        self.changed = True

    def get(self, state: str) -> Optional[PkceSession]:
        return self._sessions.get(state)

    def discard(self, state: str) -> bool:
        removed = self._sessions.pop(state, None) is not None
        if removed:
            self.changed = True
        return removed

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, state: object) -> bool:
        return state in self._sessions

    def to_cookie(self, codec: SealedCodec) -> Optional[str]:
        """Seal the map, or ``None`` when empty so the cookie can be cleared."""
        if not self._sessions:
            return None
        return codec.seal(
            {state: session.model_dump() for state, session in self._sessions.items()}
        )


def _normalize_cookie_payload(payload: Any) -> Dict[str, PkceSession]:
    if not isinstance(payload, dict):
        return {}
    # Older cookies held a single session object instead of a map.
    if payload.get("state") and payload.get("code_verifier"):
        entries: Iterable[Any] = [payload]
    else:
        entries = payload.values()

    sessions: Dict[str, PkceSession] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            session = PkceSession.model_validate(entry)
        except ValidationError:
            continue
        sessions[session.state] = session
    return sessions


@dataclass
class _MemoryEntry:
    session: PkceSession
    expires_at: float


class PkceMemoryStore:
    """Process-wide fallback store; lost on restart, swept on access."""

    def __init__(self, ttl_seconds: int = DEFAULT_PKCE_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, _MemoryEntry] = {}

    def add(self, session: PkceSession, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[session.state] = _MemoryEntry(
            session=session, expires_at=time.time() + ttl
        )

    def get(self, state: str) -> Optional[PkceSession]:
        self._sweep()
        entry = self._entries.get(state)
        return entry.session if entry else None

    def discard(self, state: str) -> bool:
        return self._entries.pop(state, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self) -> None:
        now = time.time()
        for state, entry in list(self._entries.items()):
            if entry.expires_at < now:
                self._entries.pop(state, None)


class PkceSessionRegistry:
    """Create, resolve and consume PKCE sessions across both backends."""

    def __init__(self, fallback: PkceMemoryStore, *, redirect_uri: str) -> None:
        self._fallback = fallback
        self._redirect_uri = redirect_uri

    def begin(self, cookie_map: PkceCookieMap, *, return_to: str = "/") -> PkceSession:
        session = PkceSession(
            code_verifier=generate_code_verifier(),
            state=generate_state(),
            return_to=return_to or "/",
            redirect_uri=self._redirect_uri,
            expires_at=time.time() + self._fallback.ttl_seconds,
        )
        cookie_map.add(session)
        self._fallback.add(session)
        return session

    def resolve(self, cookie_map: PkceCookieMap, state: str) -> Optional[PkceSession]:
        backends: tuple[PkceSessionBackend, ...] = (cookie_map, self._fallback)
        for backend in backends:
            session = backend.get(state)
            if session is not None:
                return session
        return None

    def consume(self, cookie_map: PkceCookieMap, state: str) -> None:
        in_cookie = cookie_map.discard(state)
        in_memory = self._fallback.discard(state)
        if not (in_cookie or in_memory):
            logger.debug("PKCE state already consumed or expired.")


__all__ = [
    "DEFAULT_PKCE_TTL_SECONDS",
    "PkceCookieMap",
    "PkceMemoryStore",
    "PkceSessionRegistry",
    "code_challenge_s256",
    "generate_code_verifier",
    "generate_state",
]
