"""Shared helpers for document validation."""

from datetime import datetime, timezone
from typing import Any


def as_utc_datetime(v: Any) -> Any:
    """Normalize datetimes read back from MongoDB.

    Accepts Extended JSON (``{'$date': '2024-11-01T08:00:00Z'}``) and attaches
    UTC to the naive datetimes the driver returns when the client is not
    tz-aware. Anything else is handed to pydantic unchanged.
    """
    if isinstance(v, dict) and "$date" in v:
        v = datetime.fromisoformat(v["$date"].replace("Z", "+00:00"))
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v
