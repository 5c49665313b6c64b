try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from canva_bridge.clients.canva_auth import CanvaOAuthClient
from canva_bridge.core.config import CanvaSettings
from canva_bridge.core.errors import UpstreamAuthError


class TokenEndpointRecorder:
    def __init__(self, status_code: int = 200, body: dict | None = None) -> None:
        self.status_code = status_code
        self.body = body or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def form(self, index: int = -1) -> dict[str, str]:
        parsed = parse_qs(self.requests[index].content.decode())
        return {key: values[0] for key, values in parsed.items()}


def _client(recorder: TokenEndpointRecorder) -> CanvaOAuthClient:
    return CanvaOAuthClient(CanvaSettings(), transport=httpx.MockTransport(recorder))


def test_authorization_url_carries_pkce_parameters() -> None:
    client = _client(TokenEndpointRecorder())

    url = client.build_authorization_url(state="state-1", code_challenge="challenge")

    parts = urlsplit(url)
    params = {key: values[0] for key, values in parse_qs(parts.query).items()}
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
        "https://www.canva.com/api/oauth/authorize"
    )
    assert params["code_challenge"] == "challenge"
    assert params["code_challenge_method"] == "s256"
    assert params["response_type"] == "code"
    assert params["client_id"] == "test-client-id"
    assert params["state"] == "state-1"
    assert params["redirect_uri"] == "https://bridge.example.com/api/canva/auth/callback"
    assert set(params["scope"].split()) >= {
        "design:content:write",
        "design:content:read",
        "asset:write",
        "asset:read",
    }


@pytest.mark.anyio
async def test_exchange_posts_code_and_verifier_with_basic_auth() -> None:
    recorder = TokenEndpointRecorder(
        body={
            "access_token": "at",
            "refresh_token": "rt",
            "expires_in": 3600,
            "scope": "asset:read",
            "token_type": "Bearer",
        }
    )
    client = _client(recorder)

    credentials = await client.exchange_authorization_code(
        code="code-1", code_verifier="verifier-1", redirect_uri="https://x.test/cb"
    )

    request = recorder.requests[0]
    assert str(request.url) == "https://api.canva.com/rest/v1/oauth/token"
    expected_auth = base64.b64encode(b"test-client-id:test-client-secret").decode()
    assert request.headers["authorization"] == f"Basic {expected_auth}"
    assert recorder.form() == {
        "grant_type": "authorization_code",
        "code": "code-1",
        "code_verifier": "verifier-1",
        "redirect_uri": "https://x.test/cb",
    }
    assert credentials.access_token == "at"
    assert credentials.refresh_token == "rt"
    expected_expiry = datetime.now(timezone.utc) + timedelta(seconds=3600)
    assert abs((credentials.expires_at - expected_expiry).total_seconds()) < 5


@pytest.mark.anyio
async def test_exchange_failure_raises_upstream_auth_error() -> None:
    recorder = TokenEndpointRecorder(
        status_code=400, body={"error": "invalid_grant", "error_description": "Code expired"}
    )

    with pytest.raises(UpstreamAuthError) as excinfo:
        await _client(recorder).exchange_authorization_code(code="c", code_verifier="v")

    assert excinfo.value.message == "Code expired"
    assert excinfo.value.code == "invalid_grant"


@pytest.mark.anyio
async def test_exchange_requires_both_tokens() -> None:
    recorder = TokenEndpointRecorder(body={"access_token": "at", "expires_in": 10})

    with pytest.raises(UpstreamAuthError):
        await _client(recorder).exchange_authorization_code(code="c", code_verifier="v")


@pytest.mark.anyio
async def test_refresh_keeps_refresh_token_when_not_rotated() -> None:
    recorder = TokenEndpointRecorder(body={"access_token": "at-2", "expires_in": 3600})

    credentials = await _client(recorder).refresh_access_token(
        refresh_token="rt-1", scope="asset:read"
    )

    assert recorder.form() == {
        "grant_type": "refresh_token",
        "refresh_token": "rt-1",
        "scope": "asset:read",
    }
    assert credentials.access_token == "at-2"
    assert credentials.refresh_token == "rt-1"


@pytest.mark.anyio
async def test_refresh_adopts_rotated_refresh_token() -> None:
    recorder = TokenEndpointRecorder(
        body={"access_token": "at-2", "refresh_token": "rt-2", "expires_in": 3600}
    )

    credentials = await _client(recorder).refresh_access_token(refresh_token="rt-1")

    assert "scope" not in recorder.form()
    assert credentials.refresh_token == "rt-2"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "body",
    [
        {"access_token": "at-2", "expires_in": 10**20},
        {"access_token": "at-2", "expires_in": 3600, "scope": ["asset:read"]},
        {"access_token": ["at-2"], "expires_in": 3600},
    ],
)
async def test_unusable_refresh_payload_raises_upstream_auth_error(body) -> None:
    recorder = TokenEndpointRecorder(body=body)

    with pytest.raises(UpstreamAuthError):
        await _client(recorder).refresh_access_token(refresh_token="rt-1")
