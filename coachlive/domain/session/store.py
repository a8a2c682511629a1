"""Durable store for sessions, feedback and payments.

``InMemorySessionStore`` backs tests and single-process demo runs;
``MongoSessionStore`` persists through the Beanie documents in
``coachlive.schemas``.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from loguru import logger
from pymongo.errors import DuplicateKeyError

from coachlive.schemas import Feedback, Payment, PaymentStatus, Session, SessionState, VideoChannel
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .session_models import FeedbackResponse, PaymentResponse, SessionResponse


class SessionStore(ABC):
    """CRUD for the entities the coordinator owns besides the roster."""

    @abstractmethod
    async def insert_session(self, session: SessionResponse) -> None: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> SessionResponse | None: ...

    @abstractmethod
    async def transition_status(
        self,
        session_id: str,
        expected: SessionState,
        new_state: SessionState,
        at: datetime,
    ) -> SessionResponse | None:
        """Compare-and-set the status; returns None when ``expected`` no longer holds.

        Also stamps ``updated_at`` and ``started_at``/``ended_at``.
        """

    @abstractmethod
    async def attach_enrichment(
        self,
        session_id: str,
        *,
        payment_link: str | None = None,
        video_channel: VideoChannel | None = None,
        at: datetime,
    ) -> SessionResponse | None:
        """Store the given collaborator results; None values leave the field untouched."""

    @abstractmethod
    async def insert_feedback(self, feedback: FeedbackResponse) -> None: ...

    @abstractmethod
    async def list_feedback(self, session_id: str) -> list[FeedbackResponse]: ...

    @abstractmethod
    async def insert_payment(self, payment: PaymentResponse) -> None: ...

    @abstractmethod
    async def get_payment(self, payment_id: str) -> PaymentResponse | None: ...

    @abstractmethod
    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        at: datetime,
    ) -> PaymentResponse | None: ...


def _lifecycle_stamp(new_state: SessionState) -> str | None:
    if new_state == SessionState.ACTIVE:
        return "started_at"
    if new_state == SessionState.ENDED:
        return "ended_at"
    return None


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Reads return copies so callers never share state.

    No method awaits between reading and writing, which makes every
    operation atomic on the event loop.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionResponse] = {}
        self._feedback: dict[str, list[FeedbackResponse]] = {}
        self._payments: dict[str, PaymentResponse] = {}

    async def insert_session(self, session: SessionResponse) -> None:
        if session.session_id in self._sessions:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Session already exists: {session.session_id}",
                status_code=HttpStatusCode.CONFLICT,
            )
        self._sessions[session.session_id] = session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> SessionResponse | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def transition_status(
        self,
        session_id: str,
        expected: SessionState,
        new_state: SessionState,
        at: datetime,
    ) -> SessionResponse | None:
        session = self._sessions.get(session_id)
        if session is None or session.status != expected:
            return None
        updates: dict = {"status": new_state, "updated_at": at, "version": session.version + 1}
        stamp = _lifecycle_stamp(new_state)
        if stamp:
            updates[stamp] = at
        updated = session.model_copy(update=updates)
        self._sessions[session_id] = updated
        return updated.model_copy(deep=True)

    async def attach_enrichment(
        self,
        session_id: str,
        *,
        payment_link: str | None = None,
        video_channel: VideoChannel | None = None,
        at: datetime,
    ) -> SessionResponse | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        updates: dict = {"updated_at": at, "version": session.version + 1}
        if payment_link is not None:
            updates["payment_link"] = payment_link
        if video_channel is not None:
            updates["video_channel"] = video_channel
        updated = session.model_copy(update=updates)
        self._sessions[session_id] = updated
        return updated.model_copy(deep=True)

    async def insert_feedback(self, feedback: FeedbackResponse) -> None:
        self._feedback.setdefault(feedback.session_id, []).append(feedback.model_copy())

    async def list_feedback(self, session_id: str) -> list[FeedbackResponse]:
        return [f.model_copy() for f in self._feedback.get(session_id, [])]

    async def insert_payment(self, payment: PaymentResponse) -> None:
        self._payments[payment.payment_id] = payment.model_copy()

    async def get_payment(self, payment_id: str) -> PaymentResponse | None:
        payment = self._payments.get(payment_id)
        return payment.model_copy() if payment else None

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        at: datetime,
    ) -> PaymentResponse | None:
        payment = self._payments.get(payment_id)
        if payment is None:
            return None
        updated = payment.model_copy(update={"status": status, "updated_at": at})
        self._payments[payment_id] = updated
        return updated.model_copy()


class MongoSessionStore(SessionStore):
    """Beanie-backed store. Requires ``init_beanie_odm`` to have run."""

    @staticmethod
    def _to_response(session: Session) -> SessionResponse:
        return SessionResponse(**session.model_dump(exclude={"id"}, mode="json"))

    async def insert_session(self, session: SessionResponse) -> None:
        document = Session(**session.model_dump())
        try:
            await document.insert()
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error creating session {session.session_id}: {e}")
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Session already exists: {session.session_id}",
                status_code=HttpStatusCode.CONFLICT,
            ) from e

    async def get_session(self, session_id: str) -> SessionResponse | None:
        session = await Session.find_one(Session.session_id == session_id)
        return self._to_response(session) if session else None

    async def transition_status(
        self,
        session_id: str,
        expected: SessionState,
        new_state: SessionState,
        at: datetime,
    ) -> SessionResponse | None:
        updates = {Session.status: new_state, Session.updated_at: at}
        if new_state == SessionState.ACTIVE:
            updates[Session.started_at] = at
        elif new_state == SessionState.ENDED:
            updates[Session.ended_at] = at
        session = await Session.compare_and_set_status(session_id, expected, updates)
        return self._to_response(session) if session else None

    async def attach_enrichment(
        self,
        session_id: str,
        *,
        payment_link: str | None = None,
        video_channel: VideoChannel | None = None,
        at: datetime,
    ) -> SessionResponse | None:
        updates: dict = {Session.updated_at: at}
        if payment_link is not None:
            updates[Session.payment_link] = payment_link
        if video_channel is not None:
            updates[Session.video_channel] = video_channel.model_dump()
        session = await Session.set_fields(session_id, updates)
        return self._to_response(session) if session else None

    async def insert_feedback(self, feedback: FeedbackResponse) -> None:
        await Feedback(**feedback.model_dump()).insert()

    async def list_feedback(self, session_id: str) -> list[FeedbackResponse]:
        documents = await Feedback.find(Feedback.session_id == session_id).sort("+created_at").to_list()
        return [FeedbackResponse(**d.model_dump(exclude={"id"}, mode="json")) for d in documents]

    async def insert_payment(self, payment: PaymentResponse) -> None:
        await Payment(**payment.model_dump()).insert()

    async def get_payment(self, payment_id: str) -> PaymentResponse | None:
        payment = await Payment.find_one(Payment.payment_id == payment_id)
        return PaymentResponse(**payment.model_dump(exclude={"id"}, mode="json")) if payment else None

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        at: datetime,
    ) -> PaymentResponse | None:
        payment = await Payment.find_one(Payment.payment_id == payment_id)
        if payment is None:
            return None
        await payment.set({Payment.status: status, Payment.updated_at: at})
        return PaymentResponse(**payment.model_dump(exclude={"id"}, mode="json"))
