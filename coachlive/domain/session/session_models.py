"""Session domain models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from coachlive.schemas import ParticipantRole, PaymentStatus, SessionState, VideoChannel


class SessionResponse(BaseModel):
    """Session response model."""

    session_id: str
    coach_id: str

    title: str | None = None
    description: str | None = None
    scheduled_start: datetime | None = None

    status: SessionState
    capacity: int

    # Enrichment from external collaborators; None when the call failed
    payment_link: str | None = None
    video_channel: VideoChannel | None = None

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    version: int = 1


class ParticipantResponse(BaseModel):
    session_id: str
    user_id: str
    role: ParticipantRole
    is_muted: bool = False
    joined_at: datetime


class MessageResponse(BaseModel):
    """A chat message; broadcast only, never stored."""

    session_id: str
    user_id: str
    message: str
    timestamp: datetime


class FeedbackResponse(BaseModel):
    feedback_id: str
    session_id: str
    user_id: str
    rating: int
    comment: str | None = None
    created_at: datetime


class PaymentResponse(BaseModel):
    payment_id: str
    session_id: str
    user_id: str
    amount: int
    currency: str
    status: PaymentStatus
    provider_payment_id: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentIntent(BaseModel):
    """Result of the payment provider's create-intent call."""

    id: str
    client_secret: str


class PaymentIntentResponse(BaseModel):
    payment: PaymentResponse
    client_secret: str


class VideoTokenResponse(BaseModel):
    session_id: str
    user_id: str
    room_name: str
    server_url: str | None = None
    token: str


class SessionCreateParams(BaseModel):
    """Parameters for creating a session."""

    coach_id: str
    capacity: int = Field(gt=0)
    title: str | None = None
    description: str | None = None
    scheduled_start: datetime | None = None


class FeedbackCreateParams(BaseModel):
    session_id: str
    user_id: str
    rating: int = Field(ge=1, le=5)
    comment: str | None = None


def to_payload(model: BaseModel, **extra: Any) -> dict[str, Any]:
    """JSON-safe dict for event payloads."""
    payload = model.model_dump(mode="json")
    payload.update(extra)
    return payload
