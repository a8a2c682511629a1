from datetime import datetime

from pydantic import BaseModel, Field

from coachlive.domain.session.session_models import ParticipantResponse
from coachlive.schemas import ParticipantRole


class CreateSessionIn(BaseModel):
    capacity: int | None = Field(
        default=None,
        gt=0,
        description="Maximum number of participants, coach included. Defaults to DEFAULT_SESSION_CAPACITY",
    )
    title: str | None = Field(default=None, max_length=200, description="Title of the session")
    description: str | None = Field(default=None, max_length=2000, description="Description of the session")
    scheduled_start: datetime | None = Field(default=None, description="Planned start time (UTC)")


class SessionIdIn(BaseModel):
    session_id: str = Field(description="Session ID")


class JoinSessionIn(SessionIdIn):
    role: ParticipantRole = Field(
        default=ParticipantRole.PARTICIPANT,
        description="Role of the joining user in the session",
    )


class LeaveSessionOut(BaseModel):
    session_id: str
    user_id: str


class ToggleMuteIn(SessionIdIn):
    user_id: str = Field(description="Participant whose mute flag is toggled")


class SendMessageIn(SessionIdIn):
    message: str = Field(min_length=1, max_length=4000, description="Chat message body")


class ListParticipantsOut(BaseModel):
    session_id: str
    participants: list[ParticipantResponse]
