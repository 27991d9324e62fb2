"""
GitHub OAuth authorization-code flow
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from src.api.exceptions import OAuthConfigurationError, OAuthFlowError
from src.api.services.session_store import SessionStore, SessionUser

logger = logging.getLogger(__name__)

# Error tags carried back to the login page
ERROR_INVALID_STATE = "invalid_state"
ERROR_ACCESS_DENIED = "access_denied"
ERROR_MISSING_CODE = "missing_code"
ERROR_TOKEN = "token_exchange"
ERROR_PROFILE = "profile"
ERROR_UNAUTHORIZED = "unauthorized"


@dataclass
class ProviderEndpoints:
    name: str
    authorize_url: str
    token_url: str
    user_url: str
    scopes: List[str] = field(default_factory=list)


GITHUB = ProviderEndpoints(
    name="github",
    authorize_url="https://github.com/login/oauth/authorize",
    token_url="https://github.com/login/oauth/access_token",
    user_url="https://api.github.com/user",
    scopes=["read:user"],
)

PROVIDERS = {GITHUB.name: GITHUB}


@dataclass
class OAuthSettings:
    client_id: str = ""
    client_secret: str = ""
    admin_users: List[str] = field(default_factory=list)
    callback_url: str = ""
    base_url: str = ""
    user_agent: str = "Portfolio-Site/1.0"
    state_ttl_seconds: int = 600
    session_ttl_seconds: int = 28800

    @classmethod
    def from_config(cls, config) -> "OAuthSettings":
        return cls(
            client_id=config.get("oauth", "github_client_id", ""),
            client_secret=config.get("oauth", "github_client_secret", ""),
            admin_users=list(config.get("oauth", "admin_users", []) or []),
            callback_url=config.get("oauth", "callback_url", ""),
            base_url=config.get("server", "base_url", ""),
            user_agent=config.get("oauth", "user_agent", "Portfolio-Site/1.0"),
            state_ttl_seconds=int(config.get("oauth", "state_ttl_seconds", 600)),
            session_ttl_seconds=int(config.get("session", "ttl_seconds", 28800)),
        )


class OAuthFlow:
    """
    Drives login for one provider.

    ``start`` issues a one-time state token and builds the authorize URL.
    ``complete`` consumes the state, exchanges the code, loads the profile,
    checks the admin allow-list and creates a session. Every failure raises
    OAuthFlowError with a tag for the login page.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        store: SessionStore,
        provider: ProviderEndpoints = GITHUB,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.store = store
        self.provider = provider
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.settings.client_id and self.settings.client_secret)

    def ensure_configured(self) -> None:
        if not self.configured:
            raise OAuthConfigurationError(
                detail=(
                    f"{self.provider.name} OAuth is not configured: set "
                    "GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET."
                )
            )

    def redirect_uri(self, request_callback_url: str) -> str:
        if self.settings.callback_url:
            return self.settings.callback_url
        if self.settings.base_url:
            return f"{self.settings.base_url.rstrip('/')}/auth/{self.provider.name}/callback"
        return request_callback_url

    async def start(self, request_callback_url: str) -> str:
        self.ensure_configured()
        state = await self.store.issue_state(self.settings.state_ttl_seconds)
        query = urlencode(
            {
                "client_id": self.settings.client_id,
                "redirect_uri": self.redirect_uri(request_callback_url),
                "scope": " ".join(self.provider.scopes),
                "state": state,
            }
        )
        return f"{self.provider.authorize_url}?{query}"

    def is_allowed(self, username: str) -> bool:
        allowed = [u.strip().lower() for u in self.settings.admin_users if u.strip()]
        if not allowed:
            return True
        return username.lower() in allowed

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            headers={"User-Agent": self.settings.user_agent, "Accept": "application/json"},
        )

    async def exchange_code(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> str:
        try:
            response = await client.post(
                self.provider.token_url,
                data={
                    "client_id": self.settings.client_id,
                    "client_secret": self.settings.client_secret,
                    "code": code,
                    "redirect_uri": redirect_uri,
                },
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Token exchange with {self.provider.name} failed: {e}")
            raise OAuthFlowError(ERROR_TOKEN, str(e)) from e

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            error = payload.get("error") if isinstance(payload, dict) else None
            logger.warning(f"{self.provider.name} returned no access token (error={error})")
            raise OAuthFlowError(ERROR_TOKEN, "no access token returned")
        return token

    async def fetch_user(self, client: httpx.AsyncClient, token: str) -> SessionUser:
        try:
            response = await client.get(
                self.provider.user_url, headers={"Authorization": f"Bearer {token}"}
            )
            profile = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Profile request to {self.provider.name} failed: {e}")
            raise OAuthFlowError(ERROR_PROFILE, str(e)) from e

        login = profile.get("login") if isinstance(profile, dict) else None
        if not login:
            raise OAuthFlowError(ERROR_PROFILE, "profile has no login")
        user_id = profile.get("id")
        return SessionUser(
            provider=self.provider.name,
            username=login,
            id=str(user_id) if user_id is not None else None,
            avatar=profile.get("avatar_url"),
        )

    async def complete(
        self,
        request_callback_url: str,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> str:
        """Finish the callback and return the new session id."""
        self.ensure_configured()

        # consumed before anything else so a state can never be replayed
        if not await self.store.consume_state(state):
            logger.warning("OAuth callback with missing, unknown or reused state")
            raise OAuthFlowError(ERROR_INVALID_STATE)
        if error:
            raise OAuthFlowError(ERROR_ACCESS_DENIED, error)
        if not code:
            raise OAuthFlowError(ERROR_MISSING_CODE)

        async with self._client() as client:
            token = await self.exchange_code(client, code, self.redirect_uri(request_callback_url))
            user = await self.fetch_user(client, token)

        if not self.is_allowed(user.username):
            logger.warning(f"Rejected login for {user.username}: not on the admin allow-list")
            raise OAuthFlowError(ERROR_UNAUTHORIZED)

        sid = await self.store.create(user, self.settings.session_ttl_seconds)
        logger.info(f"{user.username} logged in via {self.provider.name}")
        return sid
