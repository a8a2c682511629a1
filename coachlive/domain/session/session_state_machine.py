"""Session state machine for managing lifecycle transitions."""

from coachlive.schemas import SessionState
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .session_models import SessionResponse


class SessionStateMachine:
    """State machine for managing session state transitions.

    State flow with triggers:
    - SCHEDULED (session created by the coach) -> ACTIVE (start) | ENDED (end before start)
    - ACTIVE -> ENDED (end)
    - ENDED is terminal

    Only the session's coach may trigger a transition. Roster, moderation and
    messaging operations are accepted in every non-terminal state, so users
    can join a scheduled session before the coach starts it.
    """

    # State transition map defining valid state flows
    TRANSITIONS: dict[SessionState, set[SessionState]] = {
        SessionState.SCHEDULED: {SessionState.ACTIVE, SessionState.ENDED},
        SessionState.ACTIVE: {SessionState.ENDED},
        SessionState.ENDED: set(),
    }

    # Terminal states that cannot transition further
    TERMINAL_STATES: set[SessionState] = {SessionState.ENDED}

    @classmethod
    def can_transition(cls, current: SessionState, new: SessionState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current session state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: SessionState) -> bool:
        """Check if a state is terminal (no further transitions allowed)."""
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: SessionState) -> set[SessionState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: SessionState) -> set[SessionState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}

    @classmethod
    def ensure_coach(cls, session: SessionResponse, actor_id: str) -> None:
        """Raise E_UNAUTHORIZED unless ``actor_id`` is the session's coach."""
        if session.coach_id != actor_id:
            raise AppError(
                errcode=AppErrorCode.E_UNAUTHORIZED,
                errmesg=f"Only the coach of session {session.session_id} can change its state",
                status_code=HttpStatusCode.FORBIDDEN,
            )

    @classmethod
    def ensure_transition(cls, session: SessionResponse, target: SessionState) -> None:
        """Raise E_INVALID_TRANSITION if ``session`` cannot move to ``target``."""
        if not cls.can_transition(session.status, target):
            raise AppError(
                errcode=AppErrorCode.E_INVALID_TRANSITION,
                errmesg=f"Invalid state transition: {session.status} -> {target}",
                status_code=HttpStatusCode.CONFLICT,
            )

    @classmethod
    def ensure_open(cls, session: SessionResponse) -> None:
        """Raise E_SESSION_ENDED once the session reached a terminal state."""
        if cls.is_terminal(session.status):
            raise AppError(
                errcode=AppErrorCode.E_SESSION_ENDED,
                errmesg=f"Session has ended: {session.session_id}",
                status_code=HttpStatusCode.CONFLICT,
            )

    @classmethod
    def ensure_ended(cls, session: SessionResponse) -> None:
        """Raise E_SESSION_NOT_ENDED unless the session is terminal (feedback gate)."""
        if not cls.is_terminal(session.status):
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_ENDED,
                errmesg=f"Cannot give feedback before session ends: {session.session_id}",
                status_code=HttpStatusCode.CONFLICT,
            )
