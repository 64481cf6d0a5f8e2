"""Global pytest fixtures for PlantLife.

This module provides shared fixtures for testing including:
- A controllable clock
- Storage adapters (memory, SQLite via aiosqlite, Redis via fakeredis)
- Wired services and an HTTP client over the FastAPI app
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from plantlife.config import Settings
from plantlife.database import create_schema, make_session_factory
from plantlife.main import create_app
from plantlife.services import Services, build_services
from plantlife.storage import DocumentStorage, MemoryStorage, SqlStorage, Storage

# ===========================================
# CLOCK
# ===========================================


class FakeClock:
    """Deterministic clock: every read advances by ``step``.

    ``step=timedelta(0)`` freezes time so every record shares one timestamp.
    """

    def __init__(
        self,
        start: datetime = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ===========================================
# STORAGE FIXTURES
# ===========================================


async def _sql_storage() -> tuple[SqlStorage, object]:
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_schema(engine)
    return SqlStorage(make_session_factory(engine)), engine


@pytest_asyncio.fixture(params=["memory", "sql", "document"])
async def storage(request) -> AsyncGenerator[Storage, None]:
    """Every storage-backed test runs once per adapter."""
    if request.param == "memory":
        yield MemoryStorage()
    elif request.param == "sql":
        adapter, engine = await _sql_storage()
        yield adapter
        await engine.dispose()
    else:
        redis = fakeredis.FakeAsyncRedis(decode_responses=True)
        yield DocumentStorage(redis, prefix="test")
        await redis.flushall()
        await redis.aclose()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest_asyncio.fixture(params=["memory", "document"])
async def concurrent_storage(request) -> AsyncGenerator[Storage, None]:
    """Adapters that can serve interleaved coroutines; the SQLite fixture shares one connection."""
    if request.param == "memory":
        yield MemoryStorage()
    else:
        redis = fakeredis.FakeAsyncRedis(decode_responses=True)
        yield DocumentStorage(redis, prefix="test")
        await redis.flushall()
        await redis.aclose()


# ===========================================
# SERVICES + APP
# ===========================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        product_skin="twitter",
        storage_backend="memory",
        allow_dev_tokens=True,
        log_json=False,
        _env_file=None,
    )


@pytest.fixture
def services(storage: Storage, settings: Settings, clock: FakeClock) -> Services:
    return build_services(storage, settings, clock=clock)


@pytest.fixture
def memory_services(memory_storage: MemoryStorage, settings: Settings, clock: FakeClock) -> Services:
    """Services over the in-memory adapter only, for tests that exercise service rules."""
    return build_services(memory_storage, settings, clock=clock)


@pytest.fixture
def concurrent_services(concurrent_storage: Storage, settings: Settings, clock: FakeClock) -> Services:
    return build_services(concurrent_storage, settings, clock=clock)


@pytest_asyncio.fixture
async def client(memory_services: Services, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against an app wired to in-memory services."""
    app = create_app(settings, memory_services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
