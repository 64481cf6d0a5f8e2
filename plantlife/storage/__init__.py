"""Persistence adapters behind the ``Storage`` contract."""

from plantlife.config import Settings
from plantlife.database import get_session_factory
from plantlife.redis import STORAGE, get_redis
from plantlife.storage.base import EngagementKind, Storage
from plantlife.storage.document import DocumentStorage
from plantlife.storage.memory import MemoryStorage
from plantlife.storage.sql import SqlStorage

BACKENDS = ("sql", "document", "memory")


def create_storage(settings: Settings) -> Storage:
    """Build the adapter named by ``settings.storage_backend``.

    The SQL and document backends need ``init_db()`` / ``init_redis()`` to
    have run first.
    """
    backend = settings.storage_backend
    if backend == "sql":
        return SqlStorage(get_session_factory())
    if backend == "document":
        return DocumentStorage(get_redis(STORAGE), prefix=settings.redis_key_prefix)
    if backend == "memory":
        return MemoryStorage()
    raise ValueError(f"Unknown storage backend {backend!r}; expected one of {BACKENDS}")


__all__ = [
    "BACKENDS",
    "DocumentStorage",
    "EngagementKind",
    "MemoryStorage",
    "SqlStorage",
    "Storage",
    "create_storage",
]
