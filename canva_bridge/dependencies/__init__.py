"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_artifact_record_store,
    get_artifact_storage,
    get_authorization_flow,
    get_canva_api_client,
    get_canva_oauth_client,
    get_cookie_policy,
    get_credential_store,
    get_jwks_cache,
    get_job_orchestrator,
    get_pkce_registry,
    get_process_registry,
    get_sealed_codec,
    get_session_facade,
)
from .config import SettingsDependency, get_app_settings, get_canva_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_artifact_record_store",
    "get_artifact_storage",
    "get_authorization_flow",
    "get_canva_api_client",
    "get_canva_oauth_client",
    "get_canva_settings",
    "get_cookie_policy",
    "get_credential_store",
    "get_jwks_cache",
    "get_job_orchestrator",
    "get_pkce_registry",
    "get_process_registry",
    "get_sealed_codec",
    "get_session_facade",
]
