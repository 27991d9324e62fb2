"""
Server-side sessions and pending OAuth state tokens.

``MemorySessionStore`` keeps everything in process memory and is lost on
restart. ``RedisSessionStore`` is used when ``REDIS_URL`` is set, so several
processes can share logins.
"""

import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis
from pydantic import BaseModel

logger = logging.getLogger(__name__)

SID_BYTES = 32  # 64 hex chars
STATE_BYTES = 24


class SessionUser(BaseModel):
    provider: str
    username: str
    id: Optional[str] = None
    avatar: Optional[str] = None


class SessionData(BaseModel):
    user: SessionUser
    exp: float  # unix timestamp

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) > self.exp


def new_session_id() -> str:
    return secrets.token_hex(SID_BYTES)


def new_state_token() -> str:
    return secrets.token_urlsafe(STATE_BYTES)


class SessionStore(ABC):
    """Contract shared by the memory and Redis backends."""

    @abstractmethod
    async def create(self, user: SessionUser, ttl_seconds: int) -> str:
        pass

    @abstractmethod
    async def get(self, sid: Optional[str]) -> Optional[SessionData]:
        """Session for ``sid`` or None when unknown or past ``exp``."""

    @abstractmethod
    async def destroy(self, sid: Optional[str]) -> None:
        pass

    @abstractmethod
    async def issue_state(self, ttl_seconds: int) -> str:
        pass

    @abstractmethod
    async def consume_state(self, state: Optional[str]) -> bool:
        """
        True only the first time a pending, unexpired state is presented.
        The token is removed whatever the outcome.
        """

    async def close(self) -> None:
        pass


class MemorySessionStore(SessionStore):
    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._sessions: Dict[str, SessionData] = {}
        self._states: Dict[str, float] = {}

    async def create(self, user: SessionUser, ttl_seconds: int) -> str:
        sid = new_session_id()
        self._sessions[sid] = SessionData(user=user, exp=self._clock() + ttl_seconds)
        return sid

    async def get(self, sid: Optional[str]) -> Optional[SessionData]:
        if not sid:
            return None
        session = self._sessions.get(sid)
        # expired entries stay in the map until logout or restart
        if session is None or session.is_expired(self._clock()):
            return None
        return session

    async def destroy(self, sid: Optional[str]) -> None:
        if sid:
            self._sessions.pop(sid, None)

    async def issue_state(self, ttl_seconds: int) -> str:
        state = new_state_token()
        self._states[state] = self._clock() + ttl_seconds
        return state

    async def consume_state(self, state: Optional[str]) -> bool:
        if not state:
            return False
        expires_at = self._states.pop(state, None)
        return expires_at is not None and self._clock() <= expires_at


class RedisSessionStore(SessionStore):
    SESSION_PREFIX = "portfolio:session:"
    STATE_PREFIX = "portfolio:oauth-state:"

    def __init__(self, client) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionStore":
        return cls(redis.from_url(url, encoding="utf8", decode_responses=True))

    async def create(self, user: SessionUser, ttl_seconds: int) -> str:
        sid = new_session_id()
        session = SessionData(user=user, exp=time.time() + ttl_seconds)
        await self._redis.set(self.SESSION_PREFIX + sid, session.model_dump_json(), ex=ttl_seconds)
        return sid

    async def get(self, sid: Optional[str]) -> Optional[SessionData]:
        if not sid:
            return None
        raw = await self._redis.get(self.SESSION_PREFIX + sid)
        if raw is None:
            return None
        try:
            session = SessionData.model_validate(json.loads(raw))
        except ValueError as e:
            logger.warning(f"Discarding unreadable session record: {e}")
            return None
        if session.is_expired():
            return None
        return session

    async def destroy(self, sid: Optional[str]) -> None:
        if sid:
            await self._redis.delete(self.SESSION_PREFIX + sid)

    async def issue_state(self, ttl_seconds: int) -> str:
        state = new_state_token()
        await self._redis.set(self.STATE_PREFIX + state, "1", ex=ttl_seconds)
        return state

    async def consume_state(self, state: Optional[str]) -> bool:
        if not state:
            return False
        # GETDEL is atomic, so a replayed state cannot win a race
        return await self._redis.getdel(self.STATE_PREFIX + state) is not None

    async def close(self) -> None:
        await self._redis.aclose()
