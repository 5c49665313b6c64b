"""
Domain models for delegated Canva credentials and in-flight PKCE sessions.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CredentialPair(BaseModel):
    """Access and refresh tokens issued by the Canva token endpoint."""

    access_token: str
    refresh_token: str
    scope: Optional[str] = None
    token_type: Optional[str] = None
    expires_at: datetime = Field(..., description="Absolute expiry of the access token.")

    @classmethod
    def from_token_response(
        cls,
        payload: Dict[str, Any],
        *,
        fallback_refresh_token: Optional[str] = None,
    ) -> "CredentialPair":
        try:
            expires_in = int(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return cls(
            access_token=payload["access_token"],
            # Canva does not always rotate refresh tokens.
            refresh_token=payload.get("refresh_token") or fallback_refresh_token,
            scope=payload.get("scope") or None,
            token_type=payload.get("token_type"),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )

    def sealed_payload(self) -> Dict[str, Any]:
        """The subset persisted client-side; the access token never leaves the server."""
        return SealedCredential(
            refresh_token=self.refresh_token, scope=self.scope
        ).model_dump(exclude_none=True)


class SealedCredential(BaseModel):
    """Contents of the long-lived credential cookie."""

    refresh_token: str
    scope: Optional[str] = None

    @classmethod
    def from_unsealed(cls, value: Any) -> Optional["SealedCredential"]:
        if not isinstance(value, dict):
            return None
        refresh_token = value.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            return None
        scope = value.get("scope")
        return cls(
            refresh_token=refresh_token,
            scope=scope if isinstance(scope, str) and scope else None,
        )


class PkceSession(BaseModel):
    """One authorization attempt, keyed by its state token."""

    code_verifier: str
    state: str
    return_to: str = "/"
    redirect_uri: Optional[str] = None
    expires_at: Optional[float] = Field(
        default=None, description="Epoch seconds after which the session is dropped."
    )

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at < now


__all__ = ["CredentialPair", "PkceSession", "SealedCredential"]
