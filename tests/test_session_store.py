import asyncio
import json

import pytest
from redis.asyncio import Redis

from src.api.services.session_store import (
    MemorySessionStore,
    RedisSessionStore,
    SessionData,
    SessionUser,
)


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeRedis:
    """The handful of redis.asyncio commands the session store uses."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.closed = False

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        self.data.pop(key, None)

    async def getdel(self, key):
        return self.data.pop(key, None)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def user():
    return SessionUser(provider="github", username="octocat", id="1")


def test_session_lifecycle(user):
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)

    sid = asyncio.run(store.create(user, 60))

    assert len(sid) == 64
    int(sid, 16)
    session = asyncio.run(store.get(sid))
    assert session.user.username == "octocat"
    assert session.exp == clock.now + 60

    clock.now += 61
    assert asyncio.run(store.get(sid)) is None


def test_destroy_session(user):
    store = MemorySessionStore()
    sid = asyncio.run(store.create(user, 60))

    asyncio.run(store.destroy(sid))

    assert asyncio.run(store.get(sid)) is None
    # destroying twice or with no cookie is harmless
    asyncio.run(store.destroy(sid))
    asyncio.run(store.destroy(None))


def test_unknown_or_missing_sid():
    store = MemorySessionStore()
    assert asyncio.run(store.get(None)) is None
    assert asyncio.run(store.get("")) is None
    assert asyncio.run(store.get("0" * 64)) is None


def test_state_is_single_use():
    store = MemorySessionStore()
    state = asyncio.run(store.issue_state(600))

    assert asyncio.run(store.consume_state(state)) is True
    assert asyncio.run(store.consume_state(state)) is False


def test_state_expires():
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)
    state = asyncio.run(store.issue_state(600))

    clock.now += 601

    assert asyncio.run(store.consume_state(state)) is False
    assert store._states == {}


def test_unissued_state():
    store = MemorySessionStore()
    assert asyncio.run(store.consume_state("never-issued")) is False
    assert asyncio.run(store.consume_state(None)) is False


def test_redis_session_round_trip(user):
    redis = FakeRedis()
    store = RedisSessionStore(redis)

    sid = asyncio.run(store.create(user, 120))

    key = RedisSessionStore.SESSION_PREFIX + sid
    assert redis.expiry[key] == 120
    assert json.loads(redis.data[key])["user"]["username"] == "octocat"
    assert asyncio.run(store.get(sid)).user == user

    asyncio.run(store.destroy(sid))
    assert key not in redis.data


def test_redis_expired_record_is_ignored(user):
    redis = FakeRedis()
    store = RedisSessionStore(redis)
    redis.data[RedisSessionStore.SESSION_PREFIX + "old"] = SessionData(
        user=user, exp=0
    ).model_dump_json()

    assert asyncio.run(store.get("old")) is None


def test_redis_unreadable_record_is_ignored():
    redis = FakeRedis()
    store = RedisSessionStore(redis)
    redis.data[RedisSessionStore.SESSION_PREFIX + "bad"] = "not json"

    assert asyncio.run(store.get("bad")) is None


def test_redis_state_is_single_use():
    redis = FakeRedis()
    store = RedisSessionStore(redis)

    state = asyncio.run(store.issue_state(600))

    assert redis.expiry[RedisSessionStore.STATE_PREFIX + state] == 600
    assert asyncio.run(store.consume_state(state)) is True
    assert asyncio.run(store.consume_state(state)) is False


def test_redis_close():
    redis = FakeRedis()
    asyncio.run(RedisSessionStore(redis).close())
    assert redis.closed


def test_redis_store_from_url():
    store = RedisSessionStore.from_url("redis://localhost:6379/0")
    assert isinstance(store._redis, Redis)
