"""Mongo-backed session and roster stores against a real MongoDB."""

import asyncio

import pytest

from coachlive.domain.session.roster import MongoRosterStore
from coachlive.domain.session.session_models import FeedbackResponse, PaymentResponse, SessionResponse
from coachlive.domain.session.store import MongoSessionStore
from coachlive.schemas import ParticipantRole, PaymentStatus, SessionState, VideoChannel
from coachlive.utils.app_errors import AppError, AppErrorCode
from coachlive.utils.idgen import new_feedback_id, new_payment_id, new_session_id, utc_now

pytestmark = [pytest.mark.mongo, pytest.mark.usefixtures("clean_beanie_db")]


def make_session(capacity: int = 3) -> SessionResponse:
    now = utc_now()
    return SessionResponse(
        session_id=new_session_id(),
        coach_id="coach_1",
        status=SessionState.SCHEDULED,
        capacity=capacity,
        created_at=now,
        updated_at=now,
    )


class TestMongoSessionStore:
    async def test_insert_and_get(self):
        store = MongoSessionStore()
        session = make_session()

        await store.insert_session(session)
        loaded = await store.get_session(session.session_id)

        assert loaded is not None
        assert loaded.session_id == session.session_id
        assert loaded.status == SessionState.SCHEDULED
        assert await store.get_session("se_missing") is None

    async def test_duplicate_insert_rejected(self):
        store = MongoSessionStore()
        session = make_session()
        await store.insert_session(session)

        with pytest.raises(AppError) as exc_info:
            await store.insert_session(session)

        assert exc_info.value.status_code == 409

    async def test_transition_is_compare_and_set(self):
        store = MongoSessionStore()
        session = make_session()
        await store.insert_session(session)
        at = utc_now()

        started = await store.transition_status(session.session_id, SessionState.SCHEDULED, SessionState.ACTIVE, at)
        stale = await store.transition_status(session.session_id, SessionState.SCHEDULED, SessionState.ACTIVE, at)

        assert started is not None
        assert started.status == SessionState.ACTIVE
        assert started.started_at is not None
        assert stale is None

    async def test_attach_enrichment(self):
        store = MongoSessionStore()
        session = make_session()
        await store.insert_session(session)
        channel = VideoChannel(room_name=f"coach-{session.session_id}", max_participants=3)

        updated = await store.attach_enrichment(
            session.session_id,
            payment_link="https://pay.test/link",
            video_channel=channel,
            at=utc_now(),
        )

        assert updated is not None
        assert updated.payment_link == "https://pay.test/link"
        assert updated.video_channel.room_name == channel.room_name

    async def test_feedback_and_payments(self):
        store = MongoSessionStore()
        session = make_session()
        await store.insert_session(session)
        now = utc_now()

        await store.insert_feedback(
            FeedbackResponse(
                feedback_id=new_feedback_id(),
                session_id=session.session_id,
                user_id="p1",
                rating=4,
                created_at=now,
            )
        )
        payment = PaymentResponse(
            payment_id=new_payment_id(),
            session_id=session.session_id,
            user_id="p1",
            amount=1500,
            currency="usd",
            status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        await store.insert_payment(payment)

        feedback = await store.list_feedback(session.session_id)
        assert [(f.user_id, f.rating) for f in feedback] == [("p1", 4)]

        updated = await store.update_payment_status(payment.payment_id, PaymentStatus.SUCCEEDED, utc_now())
        assert updated.status == PaymentStatus.SUCCEEDED
        assert (await store.get_payment(payment.payment_id)).status == PaymentStatus.SUCCEEDED
        assert await store.update_payment_status("pa_missing", PaymentStatus.FAILED, utc_now()) is None


class TestMongoRosterStore:
    async def _open(self, capacity: int) -> tuple[MongoSessionStore, MongoRosterStore, str]:
        store = MongoSessionStore()
        roster = MongoRosterStore()
        session = make_session(capacity)
        await store.insert_session(session)
        await roster.open_roster(session.session_id, capacity)
        return store, roster, session.session_id

    async def test_join_leave_mute(self):
        _, roster, session_id = await self._open(3)

        await roster.add_participant(session_id, "u1", ParticipantRole.PARTICIPANT)
        muted = await roster.set_muted(session_id, "u1", True)
        assert muted.is_muted is True

        with pytest.raises(AppError) as exc_info:
            await roster.add_participant(session_id, "u1", ParticipantRole.PARTICIPANT)
        assert exc_info.value.errcode == AppErrorCode.E_ALREADY_MEMBER

        await roster.remove_participant(session_id, "u1")
        with pytest.raises(AppError) as exc_info:
            await roster.remove_participant(session_id, "u1")
        assert exc_info.value.errcode == AppErrorCode.E_NOT_A_MEMBER

    async def test_concurrent_joins_admit_exactly_capacity(self):
        _, roster, session_id = await self._open(3)

        results = await asyncio.gather(
            *(roster.add_participant(session_id, f"u{i}", ParticipantRole.PARTICIPANT) for i in range(8)),
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, AppError)]
        assert len(results) - len(rejected) == 3
        assert all(e.errcode == AppErrorCode.E_CAPACITY_EXCEEDED for e in rejected)
        assert len(await roster.list_participants(session_id)) == 3

    async def test_close_roster(self):
        _, roster, session_id = await self._open(3)
        await roster.add_participant(session_id, "u1", ParticipantRole.COACH)
        await roster.add_participant(session_id, "u2", ParticipantRole.PARTICIPANT)

        assert await roster.close_roster(session_id) == 2
        assert await roster.list_participants(session_id) == []
