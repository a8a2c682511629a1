from typing import Literal

from pydantic import BaseModel

from coachlive.config import config


def _flag(key: str, default: str) -> bool:
    return str(config.get(key, default)).strip().lower() == "true"


def _text(key: str, default: str = "") -> str:
    return str(config.get(key, default)).strip()


def _optional(key: str) -> str | None:
    return (config.get(key) or "").strip() or None


def _int(key: str, default: int) -> int:
    return int((config.get(key) or "").strip() or default)


class AppEnvironConfig(BaseModel):
    # Public demo switch: when enabled, external integrations use stubs and avoid network calls.
    DEMO_MODE: bool = _flag("DEMO_MODE", "true")
    DEBUG: bool = _flag("DEBUG", "false")

    # Logging
    LOG_LEVEL: str = _text("LOG_LEVEL", "INFO").upper()
    LOG_JSON: bool = _flag("LOG_JSON", "false")
    LOGFIRE_ENABLE: bool = _flag("LOGFIRE_ENABLE", "false")
    LOGFIRE_TOKEN: str | None = _optional("LOGFIRE_TOKEN")

    # HTTP server
    API_HOST: str = _text("API_HOST", "0.0.0.0")
    API_PORT: int = _int("API_PORT", 8000)
    API_WORKERS: int = _int("API_WORKERS", 1)
    API_CORS_ORIGINS: list[str] = [o.strip() for o in _text("API_CORS_ORIGINS", "*").split(",") if o.strip()]

    # Storage backends
    STORAGE_BACKEND: Literal["memory", "mongo"] = _text("STORAGE_BACKEND", "memory")  # type: ignore[assignment]
    MONGO_LABEL: str = _text("MONGO_LABEL", "primary")
    MONGO_DB_NAME: str = _text("MONGO_DB_NAME", "coachlive")
    EVENT_TRANSPORT: Literal["local", "redis"] = _text("EVENT_TRANSPORT", "local")  # type: ignore[assignment]
    REDIS_LABEL: str = _text("REDIS_LABEL", "events")
    SUBSCRIBER_QUEUE_SIZE: int = _int("SUBSCRIBER_QUEUE_SIZE", 256)

    # Session defaults
    DEFAULT_SESSION_CAPACITY: int = _int("DEFAULT_SESSION_CAPACITY", 10)
    MAX_SESSION_CAPACITY: int = _int("MAX_SESSION_CAPACITY", 100)

    # LiveKit configuration (video channel provisioning)
    LIVEKIT_URL: str | None = _optional("LIVEKIT_URL")
    LIVEKIT_API_KEY: str | None = _optional("LIVEKIT_API_KEY")
    LIVEKIT_API_SECRET: str | None = _optional("LIVEKIT_API_SECRET")
    LIVEKIT_EMPTY_TIMEOUT: int = _int("LIVEKIT_EMPTY_TIMEOUT", 300)

    # Payment provider configuration
    PAYMENT_API_BASE_URL: str = _text("PAYMENT_API_BASE_URL", "https://api.stripe.com")
    PAYMENT_API_KEY: str | None = _optional("PAYMENT_API_KEY")
    PAYMENT_WEBHOOK_SECRET: str | None = _optional("PAYMENT_WEBHOOK_SECRET")
    PAYMENT_CURRENCY: str = _text("PAYMENT_CURRENCY", "usd").lower()
    PAYMENT_TIMEOUT_SECONDS: int = _int("PAYMENT_TIMEOUT_SECONDS", 30)
    SESSION_PRICE_ID: str | None = _optional("SESSION_PRICE_ID")


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
