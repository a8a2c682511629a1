"""Session coordinator: the one entry point for session operations.

Each mutating operation holds the session's lock for the whole
check -> commit -> publish sequence, so subscribers see events in commit
order. Calls to the payment provider and the video provisioner happen
outside the lock.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from loguru import logger

from coachlive.schemas import ParticipantRole, PaymentStatus, SessionState, VideoChannel
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode
from coachlive.utils.idgen import new_feedback_id, new_payment_id, new_session_id, utc_now

from .broadcaster import EventBroadcaster, SessionEventType
from .moderation import ModerationAuthority
from .roster import RosterStore
from .session_models import (
    FeedbackCreateParams,
    FeedbackResponse,
    MessageResponse,
    ParticipantResponse,
    PaymentIntent,
    PaymentIntentResponse,
    PaymentResponse,
    SessionCreateParams,
    SessionResponse,
    VideoTokenResponse,
    to_payload,
)
from .session_state_machine import SessionStateMachine
from .store import SessionStore


class PaymentProvider(Protocol):
    async def create_payment_link(self, session_id: str) -> str: ...

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, Any],
    ) -> PaymentIntent: ...


class VideoProvisioner(Protocol):
    async def create_channel(self, session_id: str, max_participants: int | None = None) -> VideoChannel: ...

    def create_access_token(
        self,
        identity: str,
        room: str,
        name: str | None = None,
        room_admin: bool = False,
        can_publish: bool = True,
    ) -> str: ...


class SessionCoordinator:
    """Composes roster, state machine, moderation and broadcaster.

    Built once by the application lifespan and shared by every request.
    """

    def __init__(
        self,
        store: SessionStore,
        roster: RosterStore,
        broadcaster: EventBroadcaster,
        payment_provider: PaymentProvider,
        video_provisioner: VideoProvisioner,
        max_capacity: int = 100,
        default_currency: str = "usd",
    ):
        self.store = store
        self.roster = roster
        self.broadcaster = broadcaster
        self.payment_provider = payment_provider
        self.video_provisioner = video_provisioner
        self.max_capacity = max_capacity
        self.default_currency = default_currency
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        async with lock:
            yield

    async def _require_session(self, session_id: str) -> SessionResponse:
        session = await self.store.get_session(session_id)
        if session is None:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_FOUND,
                errmesg=f"Session not found: {session_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return session

    async def _require_open_session(self, session_id: str) -> SessionResponse:
        session = await self._require_session(session_id)
        SessionStateMachine.ensure_open(session)
        return session

    # Sessions

    async def create_session(self, params: SessionCreateParams) -> SessionResponse:
        """Store a scheduled session, then attach payment link and video channel.

        Enrichment is best-effort: a failing collaborator leaves its field
        None and the session is still returned.
        """
        if params.capacity > self.max_capacity:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Capacity {params.capacity} exceeds the maximum of {self.max_capacity}",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        now = utc_now()
        session = SessionResponse(
            session_id=new_session_id(),
            coach_id=params.coach_id,
            title=params.title,
            description=params.description,
            scheduled_start=params.scheduled_start,
            status=SessionState.SCHEDULED,
            capacity=params.capacity,
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_session(session)
        await self.roster.open_roster(session.session_id, session.capacity)
        logger.info(f"Created session {session.session_id} for coach {session.coach_id} (capacity {session.capacity})")

        return await self._enrich(session)

    async def _enrich(self, session: SessionResponse) -> SessionResponse:
        want_link = session.payment_link is None
        want_channel = session.video_channel is None
        if not want_link and not want_channel:
            return session

        async def _skip() -> None:
            return None

        link_result, channel_result = await asyncio.gather(
            self.payment_provider.create_payment_link(session.session_id) if want_link else _skip(),
            self.video_provisioner.create_channel(session.session_id, session.capacity)
            if want_channel
            else _skip(),
            return_exceptions=True,
        )

        payment_link = None
        if isinstance(link_result, BaseException):
            logger.opt(exception=link_result).error(
                f"Payment link enrichment failed for session {session.session_id}"
            )
        else:
            payment_link = link_result

        video_channel = None
        if isinstance(channel_result, BaseException):
            logger.opt(exception=channel_result).error(
                f"Video channel enrichment failed for session {session.session_id}"
            )
        else:
            video_channel = channel_result

        if payment_link is None and video_channel is None:
            return session

        updated = await self.store.attach_enrichment(
            session.session_id,
            payment_link=payment_link,
            video_channel=video_channel,
            at=utc_now(),
        )
        return updated or session

    async def refresh_session_enrichment(self, session_id: str, actor_id: str) -> SessionResponse:
        """Retry whichever of payment link / video channel is still missing."""
        session = await self._require_session(session_id)
        SessionStateMachine.ensure_coach(session, actor_id)
        SessionStateMachine.ensure_open(session)
        return await self._enrich(session)

    async def get_session(self, session_id: str) -> SessionResponse:
        return await self._require_session(session_id)

    async def _transition(
        self,
        session_id: str,
        actor_id: str,
        target: SessionState,
        event: SessionEventType,
    ) -> SessionResponse:
        async with self._session_lock(session_id):
            session = await self._require_session(session_id)
            SessionStateMachine.ensure_coach(session, actor_id)
            SessionStateMachine.ensure_transition(session, target)

            updated = await self.store.transition_status(session_id, session.status, target, utc_now())
            if updated is None:
                # Another process moved the session since it was read
                current = await self._require_session(session_id)
                SessionStateMachine.ensure_transition(current, target)
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_TRANSITION,
                    errmesg=f"Invalid state transition: {current.status} -> {target}",
                    status_code=HttpStatusCode.CONFLICT,
                )

            extra: dict[str, Any] = {}
            if target == SessionState.ENDED:
                extra["participants_removed"] = await self.roster.close_roster(session_id)

            logger.info(f"Session {session_id}: {session.status} -> {target} by {actor_id}")
            await self.broadcaster.publish(session_id, event, to_payload(updated, **extra))
            if target == SessionState.ENDED:
                self.broadcaster.release_session(session_id)
            return updated

    async def start_session(self, session_id: str, actor_id: str) -> SessionResponse:
        return await self._transition(session_id, actor_id, SessionState.ACTIVE, SessionEventType.SESSION_STARTED)

    async def end_session(self, session_id: str, actor_id: str) -> SessionResponse:
        """End the session and drop its roster."""
        return await self._transition(session_id, actor_id, SessionState.ENDED, SessionEventType.SESSION_ENDED)

    # Roster

    async def join_session(
        self,
        session_id: str,
        user_id: str,
        role: ParticipantRole = ParticipantRole.PARTICIPANT,
    ) -> ParticipantResponse:
        async with self._session_lock(session_id):
            session = await self._require_open_session(session_id)
            if role == ParticipantRole.COACH and user_id != session.coach_id:
                raise AppError(
                    errcode=AppErrorCode.E_FORBIDDEN,
                    errmesg=f"Only the coach of session {session_id} can join as coach",
                    status_code=HttpStatusCode.FORBIDDEN,
                )
            participant = await self.roster.add_participant(session_id, user_id, role)
            await self.broadcaster.publish(session_id, SessionEventType.USER_JOINED, to_payload(participant))
            return participant

    async def leave_session(self, session_id: str, user_id: str) -> None:
        async with self._session_lock(session_id):
            await self._require_open_session(session_id)
            await self.roster.remove_participant(session_id, user_id)
            await self.broadcaster.publish(
                session_id,
                SessionEventType.USER_LEFT,
                {"session_id": session_id, "user_id": user_id},
            )

    async def list_participants(self, session_id: str) -> list[ParticipantResponse]:
        await self._require_session(session_id)
        return await self.roster.list_participants(session_id)

    async def toggle_mute(self, session_id: str, user_id: str, muted_by: str) -> ParticipantResponse:
        """Flip ``user_id``'s mute flag on behalf of ``muted_by``."""
        async with self._session_lock(session_id):
            session = await self._require_open_session(session_id)
            target = await self.roster.get_participant(session_id, user_id)
            if target is None:
                raise AppError(
                    errcode=AppErrorCode.E_NOT_A_MEMBER,
                    errmesg=f"User not found: {user_id} in session {session_id}",
                    status_code=HttpStatusCode.NOT_FOUND,
                )
            ModerationAuthority.ensure_can_mute(muted_by, session, target)

            updated = await self.roster.set_muted(session_id, user_id, not target.is_muted)
            await self.broadcaster.publish(
                session_id,
                SessionEventType.USER_UPDATED,
                to_payload(updated, muted_by=muted_by),
            )
            return updated

    async def send_message(self, session_id: str, user_id: str, message: str) -> MessageResponse:
        async with self._session_lock(session_id):
            await self._require_open_session(session_id)
            participant = await self.roster.get_participant(session_id, user_id)
            if participant is None:
                raise AppError(
                    errcode=AppErrorCode.E_NOT_IN_SESSION,
                    errmesg=f"User {user_id} is not in session {session_id}",
                    status_code=HttpStatusCode.FORBIDDEN,
                )
            if participant.is_muted:
                raise AppError(
                    errcode=AppErrorCode.E_MUTED,
                    errmesg=f"User {user_id} is muted in session {session_id}",
                    status_code=HttpStatusCode.FORBIDDEN,
                )

            chat_message = MessageResponse(
                session_id=session_id,
                user_id=user_id,
                message=message,
                timestamp=utc_now(),
            )
            await self.broadcaster.publish(session_id, SessionEventType.NEW_MESSAGE, to_payload(chat_message))
            return chat_message

    async def issue_video_token(self, session_id: str, user_id: str) -> VideoTokenResponse:
        """Mint a room token for a current participant; muted users cannot publish."""
        session = await self._require_open_session(session_id)
        participant = await self.roster.get_participant(session_id, user_id)
        if participant is None:
            raise AppError(
                errcode=AppErrorCode.E_NOT_IN_SESSION,
                errmesg=f"User {user_id} is not in session {session_id}",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        if session.video_channel is None:
            raise AppError(
                errcode=AppErrorCode.E_VIDEO_PROVIDER,
                errmesg=f"Session {session_id} has no video channel yet",
                status_code=HttpStatusCode.BAD_GATEWAY,
            )

        channel = session.video_channel
        token = self.video_provisioner.create_access_token(
            identity=user_id,
            room=channel.room_name,
            room_admin=user_id == session.coach_id,
            can_publish=not participant.is_muted,
        )
        return VideoTokenResponse(
            session_id=session_id,
            user_id=user_id,
            room_name=channel.room_name,
            server_url=channel.server_url,
            token=token,
        )

    # Feedback

    async def submit_feedback(self, params: FeedbackCreateParams) -> FeedbackResponse:
        session = await self._require_session(params.session_id)
        SessionStateMachine.ensure_ended(session)

        feedback = FeedbackResponse(
            feedback_id=new_feedback_id(),
            session_id=params.session_id,
            user_id=params.user_id,
            rating=params.rating,
            comment=params.comment,
            created_at=utc_now(),
        )
        await self.store.insert_feedback(feedback)
        logger.info(f"Feedback {feedback.feedback_id} ({feedback.rating}/5) for session {params.session_id}")
        return feedback

    async def get_session_feedback(self, session_id: str) -> list[FeedbackResponse]:
        await self._require_session(session_id)
        return await self.store.list_feedback(session_id)

    # Payments

    async def process_payment(
        self,
        user_id: str,
        session_id: str,
        amount: int,
        currency: str | None = None,
    ) -> PaymentIntentResponse:
        """Create a provider payment intent and a pending payment record."""
        await self._require_open_session(session_id)
        if amount <= 0:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Payment amount must be positive, got {amount}",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        currency = (currency or self.default_currency).lower()
        payment_id = new_payment_id()
        intent = await self.payment_provider.create_payment_intent(
            amount,
            currency,
            {"session_id": session_id, "user_id": user_id, "payment_id": payment_id},
        )

        now = utc_now()
        payment = PaymentResponse(
            payment_id=payment_id,
            session_id=session_id,
            user_id=user_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            provider_payment_id=intent.id,
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_payment(payment)
        logger.info(f"Payment {payment_id} pending for {user_id} in session {session_id} (intent {intent.id})")
        return PaymentIntentResponse(payment=payment, client_secret=intent.client_secret)

    async def confirm_payment(self, payment_id: str, status: PaymentStatus) -> PaymentResponse:
        updated = await self.store.update_payment_status(payment_id, status, utc_now())
        if updated is None:
            raise AppError(
                errcode=AppErrorCode.E_PAYMENT_NOT_FOUND,
                errmesg=f"Payment not found: {payment_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        logger.info(f"Payment {payment_id} -> {status}")
        return updated
