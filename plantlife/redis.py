"""Redis clients for the document store and the push channel.

Storage and push get separate clients. The push relay parks a connection in
SUBSCRIBE for the lifetime of the process, and storage commands must not
wait behind it in the same pool.
"""

from urllib.parse import urlsplit

import redis.asyncio as aioredis

from plantlife.config import Settings
from plantlife.logging_config import get_logger

logger = get_logger(__name__)

STORAGE = "storage"
PUSH = "push"

_clients: dict[str, aioredis.Redis] = {}


def redis_roles(settings: Settings) -> tuple[str, ...]:
    """Which clients the configured backends need, possibly none."""
    roles = []
    if settings.storage_backend == "document":
        roles.append(STORAGE)
    if settings.push_backend == "redis":
        roles.append(PUSH)
    return tuple(roles)


def _safe_url(url: str) -> str:
    """Host, port and database of a Redis URL, without credentials."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.hostname}:{parts.port or 6379}{parts.path}"


def get_redis(role: str = STORAGE) -> aioredis.Redis:
    """Client for ``role``. Must be initialized first via init_redis()."""
    try:
        return _clients[role]
    except KeyError:
        raise RuntimeError(f"Redis {role} client not initialized: app not started") from None


async def init_redis(settings: Settings) -> dict[str, aioredis.Redis]:
    """Connect one client per role the settings need and ping each."""
    for role in redis_roles(settings):
        if role in _clients:
            continue
        client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            client_name=f"{settings.service_name}-{role}",
        )
        await client.ping()
        _clients[role] = client
        logger.info("redis_connected", role=role, url=_safe_url(settings.redis_url))
    return dict(_clients)


async def close_redis() -> None:
    """Close every client opened by init_redis()."""
    while _clients:
        role, client = _clients.popitem()
        await client.aclose()
        logger.info("redis_closed", role=role)
