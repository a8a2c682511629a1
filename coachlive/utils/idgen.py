from datetime import datetime, timezone

from ulid import ULID


def new_ulid(prefix: str | None = None) -> str:
    value = str(ULID()).lower()
    return f"{prefix}{value}" if prefix else value


def new_session_id() -> str:
    return new_ulid("se_")


def new_feedback_id() -> str:
    return new_ulid("fb_")


def new_payment_id() -> str:
    return new_ulid("pa_")


def new_subscriber_id() -> str:
    return new_ulid("sub_")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
