"""Session ODM schema."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from beanie.odm.fields import ExpressionField
from beanie.odm.operators.update.general import Inc, Set
from loguru import logger
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

from .schema_utils import as_utc_datetime
from .session_state import SessionState


class VideoChannel(BaseModel):
    """Video channel handle attached to a session at creation."""

    provider: str = "livekit"
    room_name: str
    server_url: str | None = None
    max_participants: int | None = None
    created_at: datetime | None = None


class Session(Document):
    """Session document model.

    Every write goes through a filtered update so that concurrent API workers
    cannot overwrite each other: status changes compare-and-set on the current
    status, seats are reserved with a conditional ``$inc`` on
    ``participant_count``. ``version`` is bumped on every write.
    """

    session_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    coach_id: str

    # Session descriptor fields
    title: str | None = None
    description: str | None = None
    scheduled_start: datetime | None = None

    # Lifecycle and roster bookkeeping
    status: SessionState = SessionState.SCHEDULED
    capacity: int
    participant_count: int = 0

    # Enrichment from external collaborators
    payment_link: str | None = None
    video_channel: VideoChannel | None = None

    # Timestamps
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    version: int = Field(default=1)

    @field_validator("created_at", "updated_at", "started_at", "ended_at", "scheduled_start", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return as_utc_datetime(v)

    @classmethod
    async def compare_and_set_status(
        cls,
        session_id: str,
        expected: SessionState,
        updates: Mapping[ExpressionField, Any],
    ) -> "Session | None":
        """Apply ``updates`` only while the stored status still equals ``expected``.

        Args:
            session_id: Session identifier
            expected: Status the caller validated against
            updates: Mapping of Session field expressions to values.
                Example: {Session.status: SessionState.ACTIVE}

        Returns:
            The updated document, or None when the status moved on in between.
        """
        result = await cls.find(
            cls.session_id == session_id,
            cls.status == expected,
        ).update(Set(dict(updates)), Inc({cls.version: 1}))  # type: ignore[arg-type]
        if not result or result.modified_count == 0:
            logger.warning(f"Session {session_id} status is no longer {expected}, update skipped")
            return None
        return await cls.find_one(cls.session_id == session_id)

    @classmethod
    async def set_fields(cls, session_id: str, updates: Mapping[ExpressionField, Any]) -> "Session | None":
        """Unconditionally set fields that do not take part in coordination."""
        result = await cls.find(cls.session_id == session_id).update(
            Set(dict(updates)), Inc({cls.version: 1})  # type: ignore[arg-type]
        )
        if not result or result.modified_count == 0:
            return None
        return await cls.find_one(cls.session_id == session_id)

    @classmethod
    async def reserve_seat(cls, session_id: str) -> bool:
        """Increment participant_count if the session is open and below capacity."""
        result = await cls.get_pymongo_collection().update_one(
            {
                "session_id": session_id,
                "status": {"$in": [s.value for s in SessionState.open_states()]},
                "$expr": {"$lt": ["$participant_count", "$capacity"]},
            },
            {"$inc": {"participant_count": 1, "version": 1}},
        )
        return result.modified_count > 0

    @classmethod
    async def release_seats(cls, session_id: str, count: int = 1) -> None:
        if count <= 0:
            return
        await cls.get_pymongo_collection().update_one(
            {"session_id": session_id},
            {"$inc": {"participant_count": -count, "version": 1}},
        )

    class Settings:
        name = "session"
        indexes = [
            [("session_id", 1)],  # unique handled by Indexed
            IndexModel(
                [("coach_id", 1), ("created_at", -1)],
                name="coach_id_created_at",
            ),
            IndexModel(
                [("status", 1)],
                partialFilterExpression={"status": {"$in": ["scheduled", "active"]}},
                name="status_open_partial",
            ),
        ]
