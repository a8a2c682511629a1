"""Feedback ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator

from .schema_utils import as_utc_datetime


class Feedback(Document):
    """Post-session rating. Written once, never updated."""

    feedback_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    session_id: Indexed(str)  # type: ignore[valid-type]
    user_id: str
    rating: int = Field(ge=1, le=5)
    comment: str | None = None
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return as_utc_datetime(v)

    class Settings:
        name = "feedback"
