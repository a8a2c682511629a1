"""Common enums used across schemas."""

from enum import Enum


class SessionState(str, Enum):
    """Session lifecycle states.

    State Transition Flow:

    SCHEDULED → ACTIVE → ENDED
        ↓                  ↑
        └──────────────────┘

    State Descriptions:
    - SCHEDULED: Session created by the coach; participants may already join (lobby).
    - ACTIVE: Coach started the session.
    - ENDED: Coach ended the session. Terminal: roster is cleared, feedback opens.
    """

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def open_states(cls) -> list["SessionState"]:
        """States that still accept roster and message mutations."""
        return [SessionState.SCHEDULED, SessionState.ACTIVE]


class ParticipantRole(str, Enum):
    COACH = "coach"
    PARTICIPANT = "participant"

    def __str__(self) -> str:
        return self.value


class PaymentStatus(str, Enum):
    """Payment status as reported by the payment provider callbacks."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    def __str__(self) -> str:
        return self.value


__all__ = ["ParticipantRole", "PaymentStatus", "SessionState"]
