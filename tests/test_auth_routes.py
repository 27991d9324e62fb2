from urllib.parse import parse_qs, urlparse

from fastapi import status

from src.api.auth.oauth import OAuthFlow, OAuthSettings
from src.api.dependencies import get_oauth_flow
from src.api.main import app


def start_login(client):
    response = client.get("/auth/github/login", follow_redirects=False)
    assert response.status_code == status.HTTP_302_FOUND
    location = urlparse(response.headers["location"])
    return location, parse_qs(location.query)


def test_me_without_session(client):
    response = client.get("/api/me")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"authenticated": False, "user": None}


def test_me_with_session(auth_client):
    data = auth_client.get("/api/me").json()
    assert data["authenticated"] is True
    assert data["user"]["username"] == "octocat"
    assert data["user"]["provider"] == "github"


def test_login_redirects_to_github(client):
    location, query = start_login(client)

    assert location.netloc == "github.com"
    assert location.path == "/login/oauth/authorize"
    assert query["client_id"] == ["test-client-id"]
    assert query["scope"] == ["read:user"]
    assert query["redirect_uri"] == ["http://testserver/auth/github/callback"]
    assert query["state"][0]


def test_authorize_alias(client):
    response = client.get("/auth/github/authorize", follow_redirects=False)
    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"].startswith("https://github.com/login/oauth/authorize")


def test_full_login_flow(client, fake_github, session_store):
    _, query = start_login(client)
    state = query["state"][0]

    response = client.get(
        f"/auth/github/callback?code=abc123&state={state}", follow_redirects=False
    )

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "/"
    cookie = response.headers["set-cookie"]
    assert "sid=" in cookie
    assert "HttpOnly" in cookie
    assert "samesite=lax" in cookie.lower()

    me = client.get("/api/me").json()
    assert me["authenticated"] is True
    assert me["user"]["username"] == "Octocat"
    assert me["user"]["id"] == "583231"

    token_request = fake_github.requests[0]
    assert b"code=abc123" in token_request.content
    assert token_request.headers["user-agent"] == "Portfolio-Site/1.0"
    assert fake_github.requests[1].headers["authorization"] == "Bearer gho_test_token"


def test_replayed_state_never_creates_session(client, session_store):
    _, query = start_login(client)
    state = query["state"][0]
    client.get(f"/auth/github/callback?code=abc&state={state}", follow_redirects=False)
    assert len(session_store._sessions) == 1

    response = client.get(
        f"/auth/github/callback?code=abc&state={state}", follow_redirects=False
    )

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "/login?error=invalid_state"
    assert len(session_store._sessions) == 1


def test_unissued_state_is_rejected(client, session_store, fake_github):
    response = client.get(
        "/auth/github/callback?code=abc&state=forged", follow_redirects=False
    )
    assert response.headers["location"] == "/login?error=invalid_state"
    assert session_store._sessions == {}
    assert fake_github.requests == []


def test_missing_state_is_rejected(client, session_store):
    response = client.get("/auth/github/callback?code=abc", follow_redirects=False)
    assert response.headers["location"] == "/login?error=invalid_state"
    assert session_store._sessions == {}


def test_state_is_consumed_when_provider_denies(client, session_store):
    _, query = start_login(client)
    state = query["state"][0]

    response = client.get(
        f"/auth/github/callback?error=access_denied&state={state}", follow_redirects=False
    )
    assert response.headers["location"] == "/login?error=access_denied"
    assert session_store._states == {}


def test_missing_code(client):
    _, query = start_login(client)
    response = client.get(
        f"/auth/github/callback?state={query['state'][0]}", follow_redirects=False
    )
    assert response.headers["location"] == "/login?error=missing_code"


def test_token_exchange_failure(client, fake_github, session_store):
    fake_github.token_payload = {"error": "bad_verification_code"}
    _, query = start_login(client)

    response = client.get(
        f"/auth/github/callback?code=bad&state={query['state'][0]}", follow_redirects=False
    )

    assert response.headers["location"] == "/login?error=token_exchange"
    assert session_store._sessions == {}


def test_profile_without_login(client, fake_github, session_store):
    fake_github.user_payload = {"id": 1}
    _, query = start_login(client)

    response = client.get(
        f"/auth/github/callback?code=abc&state={query['state'][0]}", follow_redirects=False
    )

    assert response.headers["location"] == "/login?error=profile"
    assert session_store._sessions == {}


def test_user_not_on_allow_list(client, fake_github, session_store):
    fake_github.user_payload = {"login": "mallory", "id": 2}
    _, query = start_login(client)

    response = client.get(
        f"/auth/github/callback?code=abc&state={query['state'][0]}", follow_redirects=False
    )

    assert response.headers["location"] == "/login?error=unauthorized"
    assert session_store._sessions == {}


def test_unconfigured_provider(client, session_store):
    app.dependency_overrides[get_oauth_flow] = lambda: OAuthFlow(OAuthSettings(), session_store)

    response = client.get("/auth/github/login", follow_redirects=False)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert "GITHUB_CLIENT_ID" in response.json()["detail"]
    assert session_store._states == {}


def test_unknown_provider(client):
    response = client.get("/auth/gitlab/login", follow_redirects=False)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_logout_get_redirects_and_destroys_session(auth_client, session_store):
    response = auth_client.get("/logout", follow_redirects=False)

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "/"
    assert session_store._sessions == {}


def test_logout_post(auth_client, session_store):
    response = auth_client.post("/logout")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True}
    assert session_store._sessions == {}
    assert auth_client.get("/api/me").json()["authenticated"] is False
