"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from canva_bridge.clients import (
    ArtifactRecordStore,
    CanvaApiClient,
    CanvaOAuthClient,
    FileFetcher,
    LocalArtifactStorage,
)
from canva_bridge.core.config import get_settings
from canva_bridge.core.cookies import CookiePolicy
from canva_bridge.services import (
    AuthorizationFlowController,
    CanvaJobOrchestrator,
    CanvaSessionFacade,
    CredentialStore,
    JWKSCache,
    PkceMemoryStore,
    PkceSessionRegistry,
    PollPolicy,
    ProcessRegistry,
    SealedCodec,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_process_registry() -> ProcessRegistry:
    """The one set of process-wide maps (PKCE fallback, token cache, in-flight refreshes)."""
    settings = _settings()
    return ProcessRegistry(
        pkce_fallback=PkceMemoryStore(ttl_seconds=settings.security.pkce_ttl_seconds)
    )


@lru_cache()
def get_sealed_codec() -> SealedCodec:
    """Provide the cookie sealing codec."""
    return SealedCodec(secret=_settings().security.token_secret)


@lru_cache()
def get_cookie_policy() -> CookiePolicy:
    settings = _settings()
    return CookiePolicy(
        secure=settings.secure_cookies,
        credential_max_age=settings.security.credential_cookie_max_age,
        pkce_max_age=settings.security.pkce_ttl_seconds,
    )


@lru_cache()
def get_canva_oauth_client() -> CanvaOAuthClient:
    """Create a singleton Canva OAuth client."""
    return CanvaOAuthClient(_settings().canva)


@lru_cache()
def get_canva_api_client() -> CanvaApiClient:
    """Create a singleton Canva Connect REST client."""
    return CanvaApiClient(_settings().canva)


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the credential store backed by the process registry."""
    registry = get_process_registry()
    return CredentialStore(
        oauth_client=get_canva_oauth_client(),
        codec=get_sealed_codec(),
        access_cache=registry.access_cache,
        refresh_in_flight=registry.refresh_in_flight,
    )


@lru_cache()
def get_pkce_registry() -> PkceSessionRegistry:
    settings = _settings()
    return PkceSessionRegistry(
        get_process_registry().pkce_fallback,
        redirect_uri=str(settings.canva.redirect_uri),
    )


@lru_cache()
def get_authorization_flow() -> AuthorizationFlowController:
    """Provide the PKCE sign-in flow controller."""
    settings = _settings()
    return AuthorizationFlowController(
        sessions=get_pkce_registry(),
        oauth_client=get_canva_oauth_client(),
        credential_store=get_credential_store(),
        public_base_url=settings.canva.resolved_public_base_url(),
    )


@lru_cache()
def get_session_facade() -> CanvaSessionFacade:
    """Provide the access-token facade used by every Canva-calling route."""
    settings = _settings()
    return CanvaSessionFacade(
        credential_store=get_credential_store(),
        cookie_policy=get_cookie_policy(),
        public_base_url=settings.canva.resolved_public_base_url(),
    )


@lru_cache()
def get_jwks_cache() -> JWKSCache:
    """Provide the cached Canva Connect key set."""
    return JWKSCache(_settings().canva.jwks_url)


@lru_cache()
def get_artifact_storage() -> LocalArtifactStorage:
    settings = _settings()
    return LocalArtifactStorage(
        settings.storage.artifact_dir,
        public_base_url=settings.canva.resolved_public_base_url(),
    )


@lru_cache()
def get_artifact_record_store() -> ArtifactRecordStore:
    """Provide the SQLite artifact record store."""
    return ArtifactRecordStore(_settings().storage.record_db_path)


@lru_cache()
def get_job_orchestrator() -> CanvaJobOrchestrator:
    """Provide the upload/export job orchestrator."""
    settings = _settings()
    return CanvaJobOrchestrator(
        api_client=get_canva_api_client(),
        fetcher=FileFetcher(),
        artifact_storage=get_artifact_storage(),
        policy=PollPolicy(
            attempts=settings.polling.attempts,
            interval_seconds=settings.polling.interval_seconds,
        ),
    )


__all__ = [
    "get_artifact_record_store",
    "get_artifact_storage",
    "get_authorization_flow",
    "get_canva_api_client",
    "get_canva_oauth_client",
    "get_cookie_policy",
    "get_credential_store",
    "get_jwks_cache",
    "get_job_orchestrator",
    "get_pkce_registry",
    "get_process_registry",
    "get_sealed_codec",
    "get_session_facade",
]
