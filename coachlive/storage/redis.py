"""
Simple Redis client manager that creates and tracks clients per label.
"""

from loguru import logger
from redis.asyncio import Redis

from coachlive.config import config

from .mongo import hide_password


class RedisManager:
    """Create and cache ``redis.asyncio`` clients keyed by label (REDIS_URL_<LABEL>)."""

    def __init__(self):
        self._clients: dict[str, Redis] = {}

    def get_client(self, label: str = "default") -> Redis:
        client = self._clients.get(label)
        if client is None:
            url = config.get_redis_url(label)
            if not url:
                raise KeyError(f"Redis connection string for label '{label}' not configured")
            logger.info("Creating Redis client for label '{}': {}", label, hide_password(url))
            client = Redis.from_url(url, decode_responses=False)
            self._clients[label] = client
        return client

    async def close_all(self) -> None:
        for label, client in list(self._clients.items()):
            await client.aclose()
            logger.info("Closed Redis client for label '{}'", label)
        self._clients.clear()


_redis_manager: RedisManager | None = None


def get_redis_manager() -> RedisManager:
    global _redis_manager
    if _redis_manager is None:
        _redis_manager = RedisManager()
    return _redis_manager
