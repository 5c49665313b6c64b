"""
Process-wide mutable state for the Canva integration.

One registry is constructed per process (see ``dependencies.clients``) and
handed to the services that need it, so tests can build a fresh one per case.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict

from canva_bridge.models.oauth import CredentialPair
from canva_bridge.services.credential_store import AccessTokenCache
from canva_bridge.services.pkce_sessions import DEFAULT_PKCE_TTL_SECONDS, PkceMemoryStore


@dataclass
class ProcessRegistry:
    pkce_fallback: PkceMemoryStore = field(
        default_factory=lambda: PkceMemoryStore(ttl_seconds=DEFAULT_PKCE_TTL_SECONDS)
    )
    access_cache: AccessTokenCache = field(default_factory=AccessTokenCache)
    refresh_in_flight: Dict[str, "asyncio.Task[CredentialPair]"] = field(
        default_factory=dict
    )

    def reset(self) -> None:
        self.pkce_fallback.clear()
        self.access_cache.clear()
        self.refresh_in_flight.clear()


__all__ = ["ProcessRegistry"]
