"""Participant ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import field_validator
from pymongo import IndexModel

from .schema_utils import as_utc_datetime
from .session_state import ParticipantRole


class Participant(Document):
    """A user's membership in one session; removed on leave or session end."""

    session_id: str
    user_id: str
    role: ParticipantRole = ParticipantRole.PARTICIPANT
    is_muted: bool = False
    joined_at: datetime

    @field_validator("joined_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return as_utc_datetime(v)

    class Settings:
        name = "participant"
        indexes = [
            IndexModel(
                [("session_id", 1), ("user_id", 1)],
                unique=True,
                name="session_id_user_id_unique",
            ),
            IndexModel(
                [("session_id", 1), ("joined_at", 1)],
                name="session_id_joined_at",
            ),
        ]
