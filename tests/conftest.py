"""Shared test fixtures: a fake identity provider, a controllable clock and stores."""

import httpx
import pytest
from jose import jwt

from aws_oidc_console.auth.capabilities import RecordingNavigator
from aws_oidc_console.auth.models import OAuthConfig
from aws_oidc_console.auth.oidc import OAuth2Client
from aws_oidc_console.auth.session import InMemoryKeyValueStore

AUTHORITY = "https://idp.example.com"
CLIENT_ID = "client-123"
SCOPE = "openid profile email"
REDIRECT_URI = "http://localhost:8000/callback"
NOW_MS = 1_700_000_000_000  # 2023-11-14T22:13:20Z

DISCOVERY = {
    "issuer": AUTHORITY,
    "authorization_endpoint": f"{AUTHORITY}/authorize",
    "token_endpoint": f"{AUTHORITY}/token",
    "userinfo_endpoint": f"{AUTHORITY}/userinfo",
    "end_session_endpoint": f"{AUTHORITY}/logout",
    "scopes_supported": ["openid", "profile", "email"],
    "code_challenge_methods_supported": ["S256"],
}

ID_TOKEN = jwt.encode(
    {"iss": AUTHORITY, "sub": "user-1", "aud": CLIENT_ID, "exp": NOW_MS // 1000 + 3600},
    "test-secret",
    algorithm="HS256",
)


class FakeClock:
    """Clock returning a settable epoch-millisecond value."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeProvider:
    """In-process OIDC provider and AWS federation endpoint behind httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.discovery_status = 200
        self.discovery_body: dict | None = dict(DISCOVERY)
        self.token_status = 200
        self.token_body = {
            "access_token": "access-token-123",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "refresh-token-456",
            "id_token": ID_TOKEN,
            "scope": SCOPE,
        }
        self.userinfo_status = 200
        self.userinfo_body = {
            "sub": "user-1",
            "email": "dev@example.com",
            "name": "Dev User",
            "login": "devuser",
            "team": "platform",
        }
        self.federation_status = 200
        self.federation_body = {"SigninToken": "signin-token-789"}
        self.fail_with: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with

        if request.url.host == "signin.aws.amazon.com" or request.url.host == "proxy.example.com":
            return httpx.Response(self.federation_status, json=self.federation_body)

        path = request.url.path
        if path == "/.well-known/openid-configuration":
            if self.discovery_body is None:
                return httpx.Response(self.discovery_status, content=b"<html>not json</html>")
            return httpx.Response(self.discovery_status, json=self.discovery_body)
        if path == "/token":
            return httpx.Response(self.token_status, json=self.token_body)
        if path == "/userinfo":
            return httpx.Response(self.userinfo_status, json=self.userinfo_body)
        return httpx.Response(404)

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def navigator():
    return RecordingNavigator("http://localhost:8000/")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def http_client(provider):
    return provider.client()


@pytest.fixture
def oauth_config():
    return OAuthConfig(
        authority=AUTHORITY,
        client_id=CLIENT_ID,
        scope=SCOPE,
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def oauth_client(store, navigator, http_client, clock):
    return OAuth2Client(store, navigator, http_client=http_client, clock=clock)
