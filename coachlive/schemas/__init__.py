"""Beanie ODM schemas for MongoDB collections."""

from .feedback import Feedback
from .init import DOCUMENT_MODELS, init_beanie_odm
from .participant import Participant
from .payment import Payment
from .session import Session, VideoChannel
from .session_state import ParticipantRole, PaymentStatus, SessionState

__all__ = [
    "DOCUMENT_MODELS",
    "Feedback",
    "Participant",
    "ParticipantRole",
    "Payment",
    "PaymentStatus",
    "Session",
    "SessionState",
    "VideoChannel",
    "init_beanie_odm",
]
