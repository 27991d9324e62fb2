"""
FastAPI dependency functions

Services are built once at startup and stored on ``app.state``; handlers
reach them only through these functions, which tests replace with
``app.dependency_overrides``.
"""
from typing import Optional

from fastapi import Depends, Request

from src.api.auth.oauth import OAuthFlow
from src.api.exceptions import AuthenticationError
from src.api.services.metrics_service import MetricsStore
from src.api.services.project_store import ProjectStore
from src.api.services.session_store import SessionData, SessionStore
from src.config import config

SESSION_COOKIE = config.get("session", "cookie_name", "sid")
VISITOR_COOKIE = config.get("session", "visitor_cookie_name", "vid")


def get_project_store(request: Request) -> ProjectStore:
    return request.app.state.services.projects


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.services.sessions


def get_metrics_store(request: Request) -> MetricsStore:
    return request.app.state.services.metrics


def get_oauth_flow(request: Request) -> OAuthFlow:
    return request.app.state.services.oauth


def get_public_dir() -> str:
    return config.get("server", "public_dir")


async def get_current_session(
    request: Request, sessions: SessionStore = Depends(get_session_store)
) -> Optional[SessionData]:
    """
    Session bound to the request's cookie, or None.

    Expired or unknown session ids are treated exactly like a missing cookie.
    """
    return await sessions.get(request.cookies.get(SESSION_COOKIE))


async def require_session(
    session: Optional[SessionData] = Depends(get_current_session),
) -> SessionData:
    """Guard for mutating endpoints."""
    if session is None:
        raise AuthenticationError()
    return session
