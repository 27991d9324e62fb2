import asyncio
import os
import sys
import tempfile

import httpx
import pytest
from fastapi.testclient import TestClient

# Test environment, set before the app and its config are imported
_tmp_root = tempfile.mkdtemp(prefix="portfolio-tests-")
os.environ["APP_ENV"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_DIR"] = os.path.join(_tmp_root, "logs")
os.environ["PROJECTS_FILE"] = os.path.join(_tmp_root, "projects.json")
os.environ["PUBLIC_DIR"] = os.path.join(_tmp_root, "public")
os.environ["PORTFOLIO_CONFIG"] = os.path.join(_tmp_root, "missing-config.yaml")

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.api.auth.oauth import OAuthFlow, OAuthSettings
from src.api.dependencies import (
    SESSION_COOKIE,
    get_metrics_store,
    get_oauth_flow,
    get_project_store,
    get_public_dir,
    get_session_store,
)
from src.api.main import app
from src.api.services.metrics_service import MemoryMetricsStore
from src.api.services.project_store import JsonProjectStore
from src.api.services.session_store import MemorySessionStore, SessionUser


class FakeGitHub:
    """Stands in for github.com and api.github.com via httpx.MockTransport."""

    def __init__(self):
        self.token_payload = {"access_token": "gho_test_token", "token_type": "bearer"}
        self.user_payload = {
            "login": "Octocat",
            "id": 583231,
            "avatar_url": "https://avatars.githubusercontent.com/u/583231",
        }
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json=self.token_payload)
        if request.url.path == "/user":
            return httpx.Response(200, json=self.user_payload)
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def project_store(tmp_path):
    return JsonProjectStore(str(tmp_path / "projects.json"))


@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def metrics_store():
    return MemoryMetricsStore()


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def oauth_settings():
    return OAuthSettings(
        client_id="test-client-id",
        client_secret="test-client-secret",
        admin_users=["octocat"],
        session_ttl_seconds=3600,
    )


@pytest.fixture
def oauth_flow(oauth_settings, session_store, fake_github):
    return OAuthFlow(
        oauth_settings, session_store, transport=httpx.MockTransport(fake_github.handler)
    )


@pytest.fixture
def public_dir(tmp_path):
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text("<html><body>portfolio home</body></html>", encoding="utf-8")
    (root / "style.css").write_text("body { color: #222; }", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("outside the public root", encoding="utf-8")
    return str(root)


@pytest.fixture
def client(project_store, session_store, metrics_store, oauth_flow, public_dir):
    app.dependency_overrides[get_project_store] = lambda: project_store
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_metrics_store] = lambda: metrics_store
    app.dependency_overrides[get_oauth_flow] = lambda: oauth_flow
    app.dependency_overrides[get_public_dir] = lambda: public_dir
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def test_user():
    return SessionUser(provider="github", username="octocat", id="583231", avatar=None)


@pytest.fixture
def auth_client(client, session_store, test_user):
    """The same client, carrying a valid session cookie."""
    sid = asyncio.run(session_store.create(test_user, 3600))
    client.cookies.set(SESSION_COOKIE, sid)
    return client
