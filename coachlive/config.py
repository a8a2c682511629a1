"""
Process-wide environment settings.

Sources, lowest priority first:
1) `env.example` (committed defaults, no secrets)
2) `env.local` (developer overrides, never committed)
3) the process environment
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger

PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILES = ("env.example", "env.local")

MONGO_POOL_DEFAULT = 5
MONGO_POOL_RANGE = range(1, 101)


class EnvironConfig:
    """Merged view of the env files and ``os.environ``; one instance per process."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._values = instance._collect()
            cls._instance = instance
        return cls._instance

    @staticmethod
    def _collect() -> dict[str, str | None]:
        values: dict[str, str | None] = {}
        for name in ENV_FILES:
            path = PROJECT_ROOT / name
            if path.exists():
                values.update(dotenv_values(path))
                logger.info("Loaded settings from {}", path)
        values.update(os.environ)
        return values

    def __getitem__(self, key: str) -> str | None:
        try:
            return self._values[key]
        except KeyError:
            raise KeyError(f"Configuration key '{key}' not found") from None

    def get(self, key: str, default=None):
        value = self._values.get(key)
        return default if value is None else value

    def get_mongo_url(self, label: str = "default") -> str:
        """Connection URL for a Mongo label: MONGO_URL_<LABEL>, with a localhost default."""
        if label == "default":
            return self.get("MONGO_URL_DEFAULT") or self.get("MONGO_URL") or "mongodb://localhost:27017"
        return self.get(f"MONGO_URL_{label.upper()}", "")

    def get_redis_url(self, label: str = "default") -> str:
        if label == "default":
            return self.get("REDIS_URL_DEFAULT") or self.get("REDIS_URL") or "redis://localhost:6379"
        return self.get(f"REDIS_URL_{label.upper()}", "")

    def get_mongo_max_pool_size(self) -> int:
        raw = self.get("MONGO_MAX_POOL_SIZE", str(MONGO_POOL_DEFAULT))
        try:
            size = int(raw)
        except (TypeError, ValueError):
            logger.warning("MONGO_MAX_POOL_SIZE={!r} is not a number, using {}", raw, MONGO_POOL_DEFAULT)
            return MONGO_POOL_DEFAULT
        if size not in MONGO_POOL_RANGE:
            logger.warning("MONGO_MAX_POOL_SIZE={} outside 1-100, using {}", size, MONGO_POOL_DEFAULT)
            return MONGO_POOL_DEFAULT
        return size


config = EnvironConfig()
