"""Service layer exports."""

from .assertion_verifier import (
    JWKSCache,
    ReturnAssertion,
    verify_assertion,
    verify_return_assertion,
)
from .authorization_flow import AuthorizationFlowController, CallbackOutcome
from .credential_store import AccessGrant, AccessTokenCache, CredentialStore
from .job_orchestrator import (
    CanvaJobOrchestrator,
    ExportResult,
    LaunchResult,
    PollPolicy,
)
from .pkce_sessions import PkceCookieMap, PkceMemoryStore, PkceSessionRegistry
from .registry import ProcessRegistry
from .sealed_codec import SealedCodec
from .session_facade import CanvaSessionFacade

__all__ = [
    "AccessGrant",
    "AccessTokenCache",
    "AuthorizationFlowController",
    "CallbackOutcome",
    "CanvaJobOrchestrator",
    "CanvaSessionFacade",
    "CredentialStore",
    "ExportResult",
    "JWKSCache",
    "LaunchResult",
    "PkceCookieMap",
    "PkceMemoryStore",
    "PkceSessionRegistry",
    "PollPolicy",
    "ProcessRegistry",
    "ReturnAssertion",
    "SealedCodec",
    "verify_assertion",
    "verify_return_assertion",
]
