"""Tests for the Redis client registry."""

import fakeredis
import pytest

from plantlife import redis as redis_clients
from plantlife.config import Settings
from plantlife.redis import PUSH, STORAGE, close_redis, get_redis, init_redis, redis_roles


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def connect(monkeypatch):
    """Route from_url to fakeredis and record what each client was asked for."""
    server = fakeredis.FakeServer()
    calls = []

    def fake_from_url(url, **kwargs):
        calls.append((url, kwargs))
        return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)

    monkeypatch.setattr(redis_clients.aioredis, "from_url", fake_from_url)
    return calls


class TestRoles:
    """Which clients the configured backends need."""

    def test_memory_and_local_push_need_none(self):
        assert redis_roles(_settings()) == ()

    def test_document_store_and_redis_push(self):
        settings = _settings(storage_backend="document", push_backend="redis")
        assert redis_roles(settings) == (STORAGE, PUSH)

    def test_sql_store_with_redis_push(self):
        assert redis_roles(_settings(storage_backend="sql", push_backend="redis")) == (PUSH,)


class TestLifecycle:
    """init_redis / get_redis / close_redis."""

    @pytest.mark.asyncio
    async def test_separate_clients_per_role(self, connect):
        settings = _settings(
            storage_backend="document",
            push_backend="redis",
            redis_url="redis://:secret@cache.internal:6380/2",
        )
        try:
            clients = await init_redis(settings)

            assert set(clients) == {STORAGE, PUSH}
            assert get_redis(STORAGE) is clients[STORAGE]
            assert get_redis(PUSH) is clients[PUSH]
            assert clients[STORAGE] is not clients[PUSH]
            assert [kwargs["client_name"] for _, kwargs in connect] == [
                "plantlife-storage",
                "plantlife-push",
            ]
            assert all(kwargs["decode_responses"] for _, kwargs in connect)
        finally:
            await close_redis()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_redis(STORAGE)

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, connect):
        settings = _settings(storage_backend="document")
        try:
            first = await init_redis(settings)
            second = await init_redis(settings)
            assert first[STORAGE] is second[STORAGE]
            assert len(connect) == 1
        finally:
            await close_redis()

    @pytest.mark.asyncio
    async def test_nothing_to_connect(self, connect):
        assert await init_redis(_settings()) == {}
        assert connect == []

    def test_get_before_init(self):
        with pytest.raises(RuntimeError, match="push client not initialized"):
            get_redis(PUSH)

    def test_credentials_are_not_logged(self):
        assert redis_clients._safe_url("redis://:secret@cache.internal:6380/2") == (
            "redis://cache.internal:6380/2"
        )
