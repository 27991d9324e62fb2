"""
Login, logout and session introspection routes
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from src.api.auth.oauth import OAuthFlow
from src.api.dependencies import (
    SESSION_COOKIE,
    get_current_session,
    get_oauth_flow,
    get_session_store,
)
from src.api.exceptions import OAuthFlowError
from src.api.limiter import LOGIN_LIMIT, limiter
from src.api.services.session_store import SessionData, SessionStore
from src.config import config

router = APIRouter(tags=["Authentication"])
logger = logging.getLogger(__name__)

LOGIN_PAGE = "/login"


def login_error_redirect(tag: str) -> RedirectResponse:
    return RedirectResponse(f"{LOGIN_PAGE}?error={tag}", status_code=status.HTTP_302_FOUND)


def check_provider(provider: str, flow: OAuthFlow) -> None:
    if provider.lower() != flow.provider.name:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown OAuth provider: {provider}"
        )


@router.get("/api/me", summary="Current session")
async def me(session: Optional[SessionData] = Depends(get_current_session)):
    """Whether the request carries a valid session, and for whom."""
    if session is None:
        return {"authenticated": False, "user": None}
    return {"authenticated": True, "user": session.user.model_dump()}


@router.get("/auth/{provider}/login", summary="Start OAuth login")
@router.get("/auth/{provider}/authorize", include_in_schema=False)
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, provider: str, flow: OAuthFlow = Depends(get_oauth_flow)):
    """Redirect to the provider's authorize page with a fresh one-time state."""
    check_provider(provider, flow)
    callback = str(request.url_for("oauth_callback", provider=flow.provider.name))
    return RedirectResponse(await flow.start(callback), status_code=status.HTTP_302_FOUND)


@router.get("/auth/{provider}/callback", name="oauth_callback", summary="Finish OAuth login")
async def callback(
    request: Request,
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    flow: OAuthFlow = Depends(get_oauth_flow),
):
    check_provider(provider, flow)
    callback_url = str(request.url_for("oauth_callback", provider=flow.provider.name))
    try:
        sid = await flow.complete(callback_url, code, state, error)
    except OAuthFlowError as e:
        logger.info(f"OAuth login failed: {e.tag}")
        return login_error_redirect(e.tag)

    response = RedirectResponse("/", status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        SESSION_COOKIE,
        sid,
        max_age=flow.settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=config.is_production,
    )
    return response


@router.api_route("/logout", methods=["GET", "POST"], summary="End the session")
async def logout(request: Request, sessions: SessionStore = Depends(get_session_store)):
    """GET redirects home (link-friendly); POST answers with JSON."""
    await sessions.destroy(request.cookies.get(SESSION_COOKIE))
    if request.method == "GET":
        response = RedirectResponse("/", status_code=status.HTTP_302_FOUND)
    else:
        response = JSONResponse({"ok": True})
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax")
    return response
