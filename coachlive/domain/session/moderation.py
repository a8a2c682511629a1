"""Mute authorization rules."""

from loguru import logger

from coachlive.schemas import ParticipantRole
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .session_models import ParticipantResponse, SessionResponse


class ModerationAuthority:
    """Decides whether an actor may toggle another participant's mute flag.

    A coach-role target can only be muted by the session's coach; any other
    target can be muted by any actor, including a peer participant.
    """

    @staticmethod
    def can_mute(actor_id: str, session: SessionResponse, target: ParticipantResponse) -> bool:
        return session.coach_id == actor_id or target.role != ParticipantRole.COACH

    @classmethod
    def ensure_can_mute(
        cls,
        actor_id: str,
        session: SessionResponse,
        target: ParticipantResponse,
    ) -> None:
        if not cls.can_mute(actor_id, session, target):
            logger.info(
                f"Mute denied: actor={actor_id} target={target.user_id} session={session.session_id}"
            )
            raise AppError(
                errcode=AppErrorCode.E_FORBIDDEN,
                errmesg="Only coaches can mute users",
                status_code=HttpStatusCode.FORBIDDEN,
            )
