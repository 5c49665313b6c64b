"""
Application configuration models and helpers.

Centralizes settings management so the API routes, the OAuth flow and the job
orchestration share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings

REQUIRED_CANVA_SCOPES: tuple[str, ...] = (
    "design:content:write",
    "design:content:read",
    "asset:write",
    "asset:read",
)


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class CanvaSettings(BaseSettings):
    """Configuration required for interacting with the Canva Connect API."""

    client_id: str = Field(..., validation_alias="CANVA_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="CANVA_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="CANVA_REDIRECT_URI")
    extra_scopes: str = Field(
        "",
        validation_alias="CANVA_SCOPES",
        description="Additional scopes, space or comma separated.",
    )
    public_base_url: Optional[str] = Field(
        None,
        validation_alias="CANVA_PUBLIC_BASE_URL",
        description="Browser-facing origin used to build absolute redirect URLs.",
    )
    api_base_url: str = Field(
        "https://api.canva.com/rest/v1", validation_alias="CANVA_API_BASE_URL"
    )
    authorize_url: str = Field(
        "https://www.canva.com/api/oauth/authorize",
        validation_alias="CANVA_AUTHORIZE_URL",
    )

    @property
    def scopes(self) -> str:
        """Configured scopes, always including the minimum required set."""
        requested = self.extra_scopes.replace(",", " ").split()
        if not requested:
            requested = list(REQUIRED_CANVA_SCOPES)
        ordered = list(dict.fromkeys(requested))
        for scope in REQUIRED_CANVA_SCOPES:
            if scope not in ordered:
                ordered.append(scope)
        return " ".join(ordered)

    @property
    def token_url(self) -> str:
        return f"{self.api_base_url}/oauth/token"

    @property
    def jwks_url(self) -> str:
        return f"{self.api_base_url}/connect/keys"

    def resolved_public_base_url(self) -> str:
        """Return the public origin without a trailing slash ('' when unknown)."""
        explicit = (self.public_base_url or "").strip()
        if explicit:
            return explicit.rstrip("/")
        parsed = urlparse(str(self.redirect_uri))
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"
        return ""


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_secret: str = Field(
        ...,
        validation_alias="CANVA_TOKEN_SECRET",
        description=(
            "Secret used to derive the symmetric key for sealing cookie payloads. "
            "Accepted as 64 hex chars, base64 of 32 bytes, or any string."
        ),
    )
    credential_cookie_max_age: int = Field(
        60 * 60 * 24 * 30, validation_alias="CANVA_CREDENTIAL_COOKIE_MAX_AGE"
    )
    pkce_ttl_seconds: int = Field(60 * 30, validation_alias="CANVA_PKCE_TTL")

    @field_validator("token_secret")
    @classmethod
    def _reject_blank_secret(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("CANVA_TOKEN_SECRET must not be blank.")
        return value


class PollingSettings(BaseSettings):
    """Bounds for submit-then-poll job tracking."""

    attempts: int = Field(30, validation_alias="CANVA_POLL_ATTEMPTS", ge=1)
    interval_seconds: float = Field(
        1.0, validation_alias="CANVA_POLL_INTERVAL_SECONDS", ge=0
    )


class StorageSettings(BaseSettings):
    """Where exported artifacts and their records are kept."""

    artifact_dir: str = Field("data/artifacts", validation_alias="ARTIFACT_DIR")
    record_db_path: str = Field("data/artifacts.db", validation_alias="ARTIFACT_DB_PATH")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    canva: CanvaSettings = Field(default_factory=CanvaSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @property
    def secure_cookies(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CanvaSettings",
    "PollingSettings",
    "REQUIRED_CANVA_SCOPES",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
