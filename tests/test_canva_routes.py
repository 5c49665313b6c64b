"""End-to-end tests for the Canva HTTP surface, with Canva itself faked."""

from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
    from ._signing import FakeJWKSEndpoint, SigningKey, return_claims
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _signing import FakeJWKSEndpoint, SigningKey, return_claims  # type: ignore

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from canva_bridge.clients.canva_auth import CanvaOAuthClient
from canva_bridge.clients.sqlite_store import ArtifactRecordStore
from canva_bridge.core.config import get_settings
from canva_bridge.core.cookies import CookiePolicy
from canva_bridge.core.errors import JobTimeout, ReauthRequired, UpstreamJobError
from canva_bridge.main import app
from canva_bridge.models.oauth import CredentialPair
from canva_bridge.services import (
    AuthorizationFlowController,
    CanvaSessionFacade,
    CredentialStore,
    ExportResult,
    JWKSCache,
    LaunchResult,
    PkceSessionRegistry,
    ProcessRegistry,
    SealedCodec,
)
from canva_bridge.services.pkce_sessions import code_challenge_s256

PUBLIC = "https://bridge.example.com"


class TokenEndpoint:
    def __init__(self) -> None:
        self.forms: list[dict[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        self.forms.append(form)
        if form.get("code") == "bad-code":
            return httpx.Response(400, json={"error": "invalid_grant"})
        if form["grant_type"] == "authorization_code":
            return httpx.Response(
                200,
                json={
                    "access_token": "at-1",
                    "refresh_token": "rt-1",
                    "expires_in": 3600,
                    "scope": "asset:read asset:write",
                },
            )
        return httpx.Response(
            200,
            json={"access_token": "at-refreshed", "refresh_token": "rt-rotated", "expires_in": 3600},
        )


class FakeOrchestrator:
    def __init__(self) -> None:
        self.launch_calls: list[tuple[str, dict]] = []
        self.export_calls: list[tuple[str, dict]] = []
        self.launch_error: Exception | None = None

    async def launch(self, access_token: str, **kwargs) -> LaunchResult:
        self.launch_calls.append((access_token, kwargs))
        if self.launch_error:
            raise self.launch_error
        return LaunchResult(
            edit_url="https://www.canva.com/design/DAF1/edit",
            design_id="DAF1",
            asset_id="asset-1",
        )

    async def export_design(self, access_token: str, **kwargs) -> ExportResult:
        self.export_calls.append((access_token, kwargs))
        return ExportResult(
            url=f"{PUBLIC}/artifacts/canva-export-1.{kwargs['image_format']}",
            design_id=kwargs["design_id"],
            image_format=kwargs["image_format"],
        )


@pytest.fixture(scope="module")
def signing_key() -> SigningKey:
    return SigningKey("route-key")


@pytest.fixture()
def bridge(tmp_path, signing_key):
    from canva_bridge import dependencies

    settings = get_settings()
    registry = ProcessRegistry()
    codec = SealedCodec(secret="route-secret")
    token_endpoint = TokenEndpoint()
    oauth_client = CanvaOAuthClient(
        settings.canva, transport=httpx.MockTransport(token_endpoint)
    )
    credential_store = CredentialStore(
        oauth_client=oauth_client,
        codec=codec,
        access_cache=registry.access_cache,
        refresh_in_flight=registry.refresh_in_flight,
    )
    sessions = PkceSessionRegistry(
        registry.pkce_fallback, redirect_uri=str(settings.canva.redirect_uri)
    )
    cookies = CookiePolicy()
    flow = AuthorizationFlowController(
        sessions=sessions,
        oauth_client=oauth_client,
        credential_store=credential_store,
        public_base_url=PUBLIC,
    )
    facade = CanvaSessionFacade(
        credential_store=credential_store, cookie_policy=cookies, public_base_url=PUBLIC
    )
    orchestrator = FakeOrchestrator()
    jwks_endpoint = FakeJWKSEndpoint([signing_key.public_jwk])
    jwks_cache = JWKSCache(settings.canva.jwks_url, transport=jwks_endpoint.transport)
    records = ArtifactRecordStore(str(tmp_path / "records.db"))

    app.dependency_overrides.update(
        {
            dependencies.get_sealed_codec: lambda: codec,
            dependencies.get_cookie_policy: lambda: cookies,
            dependencies.get_credential_store: lambda: credential_store,
            dependencies.get_authorization_flow: lambda: flow,
            dependencies.get_session_facade: lambda: facade,
            dependencies.get_job_orchestrator: lambda: orchestrator,
            dependencies.get_jwks_cache: lambda: jwks_cache,
            dependencies.get_artifact_record_store: lambda: records,
        }
    )

    yield SimpleNamespace(
        registry=registry,
        codec=codec,
        token_endpoint=token_endpoint,
        orchestrator=orchestrator,
        records=records,
        signing_key=signing_key,
    )

    app.dependency_overrides.clear()


def _client(**kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver", **kwargs
    )


def _set_cookie(response: httpx.Response, name: str) -> str | None:
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header
    return None


def _connected(bridge, *, cached: bool = True) -> dict[str, str]:
    if cached:
        bridge.registry.access_cache.store(
            CredentialPair(
                access_token="at-cached",
                refresh_token="rt-cached",
                expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            )
        )
        return {"canva_tokens": bridge.codec.seal({"refresh_token": "rt-cached"})}
    return {"canva_tokens": bridge.codec.seal({"refresh_token": "rt-stale"})}


@pytest.mark.anyio
async def test_healthcheck() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_sign_in_round_trip_sets_credentials_and_clears_pkce(bridge) -> None:
    async with _client() as client:
        start = await client.get("/api/canva/auth/start", params={"return_to": "/gallery"})
        assert start.status_code == 307
        authorize = parse_qs(urlsplit(start.headers["location"]).query)
        assert _set_cookie(start, "canva_pkce") is not None

        callback = await client.get(
            "/api/canva/auth/callback",
            params={"code": "code-1", "state": authorize["state"][0]},
        )

    assert callback.status_code == 307
    assert callback.headers["location"] == f"{PUBLIC}/gallery"

    exchange = bridge.token_endpoint.forms[-1]
    assert exchange["code"] == "code-1"
    assert code_challenge_s256(exchange["code_verifier"]) == authorize["code_challenge"][0]

    pkce_cookie = _set_cookie(callback, "canva_pkce")
    assert pkce_cookie is not None and "Max-Age=0" in pkce_cookie
    credential_cookie = _set_cookie(callback, "canva_tokens")
    assert credential_cookie is not None and "HttpOnly" in credential_cookie
    sealed = credential_cookie.split(";", 1)[0].split("=", 1)[1]
    assert bridge.codec.unseal(sealed) == {
        "refresh_token": "rt-1",
        "scope": "asset:read asset:write",
    }
    assert len(bridge.registry.pkce_fallback) == 0
    assert bridge.registry.access_cache.get("rt-1") == "at-1"


@pytest.mark.anyio
async def test_parallel_sign_ins_keep_the_other_pending_session(bridge) -> None:
    async with _client() as client:
        first = await client.get("/api/canva/auth/start")
        second = await client.get("/api/canva/auth/start")
        first_state = parse_qs(urlsplit(first.headers["location"]).query)["state"][0]
        second_state = parse_qs(urlsplit(second.headers["location"]).query)["state"][0]

        callback = await client.get(
            "/api/canva/auth/callback", params={"code": "code-1", "state": first_state}
        )

    assert callback.status_code == 307
    assert callback.headers["location"] == f"{PUBLIC}/"
    pkce_cookie = _set_cookie(callback, "canva_pkce")
    sealed = pkce_cookie.split(";", 1)[0].split("=", 1)[1]
    assert set(bridge.codec.unseal(sealed)) == {second_state}


@pytest.mark.anyio
async def test_sign_in_completes_from_server_fallback_without_cookie(bridge) -> None:
    async with _client() as client:
        start = await client.get("/api/canva/auth/start")
    state = parse_qs(urlsplit(start.headers["location"]).query)["state"][0]

    async with _client() as cookieless:
        callback = await cookieless.get(
            "/api/canva/auth/callback", params={"code": "code-1", "state": state}
        )

    assert callback.status_code == 307
    assert _set_cookie(callback, "canva_pkce") is None
    assert len(bridge.registry.pkce_fallback) == 0


@pytest.mark.anyio
async def test_open_redirect_targets_are_replaced(bridge) -> None:
    async with _client() as client:
        start = await client.get(
            "/api/canva/auth/start", params={"return_to": "https://evil.example.com"}
        )
        state = parse_qs(urlsplit(start.headers["location"]).query)["state"][0]
        callback = await client.get(
            "/api/canva/auth/callback", params={"code": "code-1", "state": state}
        )

    assert callback.headers["location"] == f"{PUBLIC}/"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("params", "expected"),
    [
        (
            {"error": "access_denied", "error_description": "User declined"},
            {"error": "User declined", "code": "access_denied"},
        ),
        ({"state": "s"}, {"error": "Missing authorization code"}),
        ({"code": "c"}, {"error": "Missing OAuth state. Please restart Canva sign-in."}),
        (
            {"code": "c", "state": "unknown"},
            {"error": "Missing PKCE verifier. Please restart Canva sign-in."},
        ),
    ],
)
async def test_callback_failures_are_json_400(bridge, params, expected) -> None:
    async with _client() as client:
        response = await client.get("/api/canva/auth/callback", params=params)

    assert response.status_code == 400
    assert response.json() == expected
    assert bridge.token_endpoint.forms == []


@pytest.mark.anyio
async def test_rejected_code_exchange_is_a_server_error(bridge) -> None:
    async with _client() as client:
        start = await client.get("/api/canva/auth/start")
        state = parse_qs(urlsplit(start.headers["location"]).query)["state"][0]
        response = await client.get(
            "/api/canva/auth/callback", params={"code": "bad-code", "state": state}
        )

    assert response.status_code == 500
    assert response.json()["code"] == "invalid_grant"
    assert _set_cookie(response, "canva_tokens") is None


@pytest.mark.anyio
async def test_launch_without_credentials_points_at_sign_in(bridge) -> None:
    async with _client() as client:
        response = await client.post(
            "/api/canva/launch",
            json={"imageUrl": "https://img.example.com/a.png", "return_to": "/gallery"},
        )

    assert response.status_code == 401
    assert response.json() == {
        "error": "Canva not connected",
        "authStartUrl": f"{PUBLIC}/api/canva/auth/start?return_to=%2Fgallery",
    }
    assert bridge.orchestrator.launch_calls == []


@pytest.mark.anyio
async def test_launch_requires_image_url(bridge) -> None:
    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post("/api/canva/launch", json={"title": "x"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing imageUrl"}


@pytest.mark.anyio
async def test_launch_uses_cached_access_token(bridge) -> None:
    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post(
            "/api/canva/launch",
            json={"imageUrl": "https://img.example.com/a.png", "correlation_state": "c-1"},
        )

    assert response.status_code == 200
    assert response.json() == {
        "editUrl": "https://www.canva.com/design/DAF1/edit",
        "designId": "DAF1",
        "assetId": "asset-1",
    }
    access_token, kwargs = bridge.orchestrator.launch_calls[0]
    assert access_token == "at-cached"
    assert kwargs["image_url"] == "https://img.example.com/a.png"
    assert kwargs["correlation_state"] == "c-1"
    assert _set_cookie(response, "canva_tokens") is None
    assert bridge.token_endpoint.forms == []


@pytest.mark.anyio
async def test_launch_refreshes_and_rewrites_credential_cookie(bridge) -> None:
    async with _client(cookies=_connected(bridge, cached=False)) as client:
        response = await client.post(
            "/api/canva/launch", json={"imageUrl": "https://img.example.com/a.png"}
        )

    assert response.status_code == 200
    assert bridge.orchestrator.launch_calls[0][0] == "at-refreshed"
    assert bridge.token_endpoint.forms[0]["refresh_token"] == "rt-stale"
    credential_cookie = _set_cookie(response, "canva_tokens")
    sealed = credential_cookie.split(";", 1)[0].split("=", 1)[1]
    assert bridge.codec.unseal(sealed)["refresh_token"] == "rt-rotated"


@pytest.mark.anyio
async def test_launch_reauth_error_carries_sign_in_url(bridge) -> None:
    bridge.orchestrator.launch_error = ReauthRequired(
        "Token revoked", code="revoked_access_token"
    )

    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post(
            "/api/canva/launch", json={"imageUrl": "https://img.example.com/a.png"}
        )

    assert response.status_code == 401
    assert response.json() == {
        "error": "Token revoked",
        "code": "revoked_access_token",
        "authStartUrl": f"{PUBLIC}/api/canva/auth/start?return_to=%2F",
    }


@pytest.mark.anyio
async def test_return_navigation_get_redirects_to_ui_page(bridge) -> None:
    async with _client() as client:
        response = await client.get(
            "/api/canva/return", params={"correlation_jwt": "abc", "return_to": "/x"}
        )

    assert response.status_code == 307
    assert response.headers["location"] == (
        f"{PUBLIC}/canva/return?correlation_jwt=abc&return_to=%2Fx"
    )


@pytest.mark.anyio
async def test_return_exports_design_and_records_artifact(bridge) -> None:
    token = bridge.signing_key.sign(return_claims())

    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post(
            "/api/canva/return",
            json={"correlation_jwt": token, "width": 1024, "height": 768, "imageFormat": "png"},
        )

    assert response.status_code == 200
    assert response.json() == {
        "url": f"{PUBLIC}/artifacts/canva-export-1.png",
        "designId": "DAF-design-1",
        "correlation_state": "corr-1",
    }
    access_token, kwargs = bridge.orchestrator.export_calls[0]
    assert access_token == "at-cached"
    assert kwargs["design_id"] == "DAF-design-1"
    assert (kwargs["image_format"], kwargs["width"], kwargs["height"]) == ("png", 1024, 768)
    [record] = bridge.records.list_for_design("DAF-design-1")
    assert record["correlation_state"] == "corr-1"
    assert record["image_format"] == "png"


@pytest.mark.anyio
async def test_return_without_credentials_defaults_to_return_page(bridge) -> None:
    async with _client() as client:
        response = await client.post(
            "/api/canva/return", json={"correlation_jwt": "anything"}
        )

    assert response.status_code == 401
    assert response.json()["authStartUrl"] == (
        f"{PUBLIC}/api/canva/auth/start?return_to=%2Fcanva%2Freturn"
    )


@pytest.mark.anyio
async def test_return_rejects_token_for_another_audience(bridge) -> None:
    token = bridge.signing_key.sign(return_claims(aud="another-app"))

    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post("/api/canva/return", json={"correlation_jwt": token})

    assert response.status_code == 400
    assert "error" in response.json()
    assert bridge.orchestrator.export_calls == []


@pytest.mark.anyio
async def test_return_rejects_non_positive_dimensions(bridge) -> None:
    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post(
            "/api/canva/return", json={"correlation_jwt": "t", "width": 0, "height": 10}
        )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid width")


def _sealed_refresh_token(bridge, response: httpx.Response) -> str | None:
    credential_cookie = _set_cookie(response, "canva_tokens")
    if credential_cookie is None:
        return None
    sealed = credential_cookie.split(";", 1)[0].split("=", 1)[1]
    return bridge.codec.unseal(sealed)["refresh_token"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("error", "status"),
    [
        (UpstreamJobError("boom"), 500),
        (JobTimeout("slow", code="timeout"), 504),
        (ReauthRequired("Token revoked", code="revoked_access_token"), 401),
    ],
)
async def test_failed_launch_after_refresh_keeps_rotated_refresh_token(
    bridge, error, status
) -> None:
    bridge.orchestrator.launch_error = error

    async with _client(cookies=_connected(bridge, cached=False)) as client:
        response = await client.post(
            "/api/canva/launch", json={"imageUrl": "https://img.example.com/a.png"}
        )

    assert response.status_code == status
    assert bridge.token_endpoint.forms == [
        {"grant_type": "refresh_token", "refresh_token": "rt-stale"}
    ]
    assert _sealed_refresh_token(bridge, response) == "rt-rotated"


@pytest.mark.anyio
async def test_failed_launch_without_refresh_leaves_cookie_alone(bridge) -> None:
    bridge.orchestrator.launch_error = UpstreamJobError("boom")

    async with _client(cookies=_connected(bridge)) as client:
        response = await client.post(
            "/api/canva/launch", json={"imageUrl": "https://img.example.com/a.png"}
        )

    assert response.status_code == 500
    assert response.json() == {"error": "boom"}
    assert _set_cookie(response, "canva_tokens") is None


@pytest.mark.anyio
async def test_rejected_return_token_after_refresh_keeps_rotated_refresh_token(bridge) -> None:
    token = bridge.signing_key.sign(return_claims(aud="another-app"))

    async with _client(cookies=_connected(bridge, cached=False)) as client:
        response = await client.post("/api/canva/return", json={"correlation_jwt": token})

    assert response.status_code == 400
    assert bridge.orchestrator.export_calls == []
    assert _sealed_refresh_token(bridge, response) == "rt-rotated"
