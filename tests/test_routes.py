"""Tests for the FastAPI surface: login redirect, callback, console and roles."""

from types import SimpleNamespace
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from aws_oidc_console.auth.middleware import get_http_client
from aws_oidc_console.aws.federation import AWSFederationService
from aws_oidc_console.aws.models import AWSConfig
from aws_oidc_console.aws.routes import get_federation_service
from aws_oidc_console.config import Settings
from aws_oidc_console.main import create_app
from aws_oidc_console.storage import get_store

from conftest import AUTHORITY, CLIENT_ID
from test_federation import ROLE_ARN, client_error, sts_response


@pytest.fixture
def settings():
    return Settings(
        oauth_authority=AUTHORITY,
        oauth_client_id=CLIENT_ID,
        redirect_uri="http://testserver/callback",
        storage_backend="memory",
    )


@pytest.fixture
def sts_client():
    client = MagicMock()
    client.assume_role_with_web_identity.return_value = sts_response()
    return client


@pytest.fixture
def api_client(settings, store, http_client, sts_client):
    app = create_app(settings)
    federation = AWSFederationService(
        AWSConfig(issuer="http://testserver"), sts_client=sts_client, http_client=http_client
    )
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_federation_service] = lambda: federation
    return TestClient(app)


def login(api_client: TestClient) -> None:
    resp = api_client.get("/auth/login", follow_redirects=False)
    state = parse_qs(urlsplit(resp.headers["location"]).query)["state"][0]
    resp = api_client.get(f"/callback?code=xyz&state={state}", follow_redirects=False)
    assert resp.status_code == 302


class TestHealth:
    def test_health(self, api_client):
        assert api_client.get("/health").json()["status"] == "healthy"

    def test_root_reports_auth_status(self, api_client):
        assert api_client.get("/").json()["authenticated"] is False
        login(api_client)
        body = api_client.get("/").json()
        assert body["authenticated"] is True
        assert body["user"] == "Dev User"


class TestAuthRoutes:
    def test_login_redirects_to_provider(self, api_client):
        resp = api_client.get("/auth/login", follow_redirects=False)

        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith(f"{AUTHORITY}/authorize?")
        params = parse_qs(urlsplit(location).query)
        assert params["redirect_uri"] == ["http://testserver/callback"]
        assert params["code_challenge_method"] == ["S256"]

    def test_callback_creates_session(self, api_client):
        login(api_client)

        me = api_client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "dev@example.com"

        token = api_client.get("/auth/token").json()
        assert token["access_token"] == "access-token-123"
        assert token["token_type"] == "Bearer"

        status = api_client.get("/auth/status").json()
        assert status["is_authenticated"] is True
        assert status["debug_info"]["has_id_token"] is True

    def test_callback_with_forged_state(self, api_client):
        api_client.get("/auth/login", follow_redirects=False)

        resp = api_client.get("/callback?code=xyz&state=forged", follow_redirects=False)

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_state"
        assert api_client.get("/auth/me").status_code == 401

    def test_callback_with_provider_error(self, api_client):
        resp = api_client.get(
            "/callback?error=access_denied&error_description=Denied+by+user",
            follow_redirects=False,
        )

        assert resp.status_code == 400
        assert resp.json() == {
            "error": "oauth_error",
            "message": "OAuth error: Denied by user",
            "provider_error": "access_denied",
        }

    def test_callback_without_params_goes_home(self, api_client):
        resp = api_client.get("/callback", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_token_exchange_failure(self, api_client, provider):
        provider.token_status = 400
        provider.token_body = {"error": "invalid_grant"}
        resp = api_client.get("/auth/login", follow_redirects=False)
        state = parse_qs(urlsplit(resp.headers["location"]).query)["state"][0]

        resp = api_client.get(f"/callback?code=xyz&state={state}", follow_redirects=False)

        assert resp.status_code == 400
        assert resp.json()["provider_error"] == "invalid_grant"

    def test_unauthenticated_requests(self, api_client):
        resp = api_client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert api_client.get("/auth/token").status_code == 401
        assert api_client.get("/auth/status").json()["is_authenticated"] is False

    def test_logout(self, api_client):
        login(api_client)

        resp = api_client.get("/auth/logout", follow_redirects=False)

        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert api_client.get("/auth/me").status_code == 401

    def test_logout_at_provider(self, api_client):
        login(api_client)

        resp = api_client.get("/auth/logout?provider=true", follow_redirects=False)

        assert resp.headers["location"].startswith(f"{AUTHORITY}/logout?")
        assert "post_logout_redirect_uri=http%3A%2F%2Ftestserver%2Fcallback" in resp.headers["location"]

    def test_discovery_failure(self, api_client, provider):
        provider.discovery_status = 500
        resp = api_client.get("/auth/login", follow_redirects=False)
        assert resp.status_code == 502
        assert resp.json()["error"] == "discovery_error"

    def test_missing_configuration(self, store, http_client):
        app = create_app(Settings(oauth_authority="", oauth_client_id="", storage_backend="memory"))
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_http_client] = lambda: http_client

        resp = TestClient(app).get("/auth/login", follow_redirects=False)

        assert resp.status_code == 500
        assert resp.json()["error"] == "configuration_error"


class TestConsoleRoutes:
    def test_requires_authentication(self, api_client, sts_client):
        resp = api_client.post("/aws/console", json={"role_arn": ROLE_ARN})
        assert resp.status_code == 401
        sts_client.assume_role_with_web_identity.assert_not_called()

    def test_open_console(self, api_client, sts_client):
        login(api_client)

        resp = api_client.post("/aws/console", json={"role_arn": ROLE_ARN})

        assert resp.status_code == 200
        body = resp.json()
        assert body["console_url"].startswith("https://signin.aws.amazon.com/federation?Action=login")
        assert body["session"]["role_arn"] == ROLE_ARN
        assert body["session"]["identity"]["email"] == "dev@example.com"
        assert "secret-key" not in resp.text
        assert "session-token" not in resp.text

        kwargs = sts_client.assume_role_with_web_identity.call_args.kwargs
        assert kwargs["RoleSessionName"].startswith("oidc-devuser-")

        roles = api_client.get("/aws/roles").json()
        assert [r["arn"] for r in roles] == [ROLE_ARN]

    def test_invalid_role_arn(self, api_client, sts_client):
        login(api_client)

        resp = api_client.post("/aws/console", json={"role_arn": "not-an-arn"})

        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidRoleArnError"
        sts_client.assume_role_with_web_identity.assert_not_called()

    @pytest.mark.parametrize(
        "aws_code, status_code",
        [
            ("AccessDenied", 403),
            ("InvalidIdentityToken", 401),
            ("ExpiredTokenException", 401),
            ("ValidationError", 400),
            ("InternalFailure", 502),
        ],
    )
    def test_sts_errors(self, api_client, sts_client, aws_code, status_code):
        login(api_client)
        sts_client.assume_role_with_web_identity.side_effect = client_error(aws_code)

        resp = api_client.post("/aws/console", json={"role_arn": ROLE_ARN})

        assert resp.status_code == status_code
        assert resp.json()["message"]


class TestRoleRoutes:
    def test_manage_history(self, api_client):
        other = "arn:aws:iam::123456789012:role/Other"
        payload = {
            "roles": [
                {"arn": ROLE_ARN, "name": "ConsoleAccess", "accountId": "123456789012",
                 "lastUsed": 1, "useCount": 3},
                {"arn": other, "name": "Other", "accountId": "123456789012",
                 "lastUsed": 2, "useCount": 1},
            ],
        }

        resp = api_client.post("/aws/roles/import", json=payload)
        assert resp.json() == {"total_roles": 2}

        stats = api_client.get("/aws/roles/stats").json()
        assert stats["total_roles"] == 2
        assert stats["most_used_role"]["arn"] == ROLE_ARN

        exported = api_client.get("/aws/roles/export").json()
        assert [r["arn"] for r in exported["roles"]] == [other, ROLE_ARN]

        assert api_client.delete("/aws/roles", params={"arn": other}).json() == {"removed": True}
        assert [r["arn"] for r in api_client.get("/aws/roles").json()] == [ROLE_ARN]

    def test_bad_import(self, api_client):
        resp = api_client.post("/aws/roles/import", content=b'{"roles": [{"arn": "bad"}]}')
        assert resp.status_code == 422
        assert resp.json()["error"] == "RoleHistoryImportError"

    def test_import_with_non_string_arn(self, api_client):
        resp = api_client.post("/aws/roles/import", json={"roles": [{"arn": 5}]})
        assert resp.status_code == 422
        assert resp.json()["error"] == "RoleHistoryImportError"


def test_federation_service_is_per_app():
    first = create_app(Settings(federation_issuer="https://one.example.com", storage_backend="memory"))
    second = create_app(Settings(federation_issuer="https://two.example.com", storage_backend="memory"))

    def service_for(app):
        settings = app.state.settings
        return get_federation_service(SimpleNamespace(app=app), settings, None)

    assert service_for(first).config.issuer == "https://one.example.com"
    assert service_for(second).config.issuer == "https://two.example.com"
    assert service_for(first) is service_for(first)
