"""Roster store: who is in which session, with capacity enforcement."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from loguru import logger
from pymongo.errors import DuplicateKeyError

from coachlive.schemas import Participant, ParticipantRole, Session, SessionState
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode
from coachlive.utils.idgen import utc_now

from .session_models import ParticipantResponse


def _capacity_exceeded(session_id: str, capacity: int | None = None) -> AppError:
    detail = f" (capacity {capacity})" if capacity is not None else ""
    return AppError(
        errcode=AppErrorCode.E_CAPACITY_EXCEEDED,
        errmesg=f"Session is full: {session_id}{detail}",
        status_code=HttpStatusCode.CONFLICT,
    )


def _already_member(session_id: str, user_id: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_ALREADY_MEMBER,
        errmesg=f"User {user_id} already joined session {session_id}",
        status_code=HttpStatusCode.CONFLICT,
    )


def _not_a_member(session_id: str, user_id: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_NOT_A_MEMBER,
        errmesg=f"User not found: {user_id} in session {session_id}",
        status_code=HttpStatusCode.NOT_FOUND,
    )


def _roster_not_found(session_id: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_SESSION_NOT_FOUND,
        errmesg=f"Session not found: {session_id}",
        status_code=HttpStatusCode.NOT_FOUND,
    )


class RosterStore(ABC):
    """Mapping of session -> participants.

    Every mutation is visible to the next read of the same session. The
    capacity check and the insert in ``add_participant`` are one atomic step.
    """

    @abstractmethod
    async def open_roster(self, session_id: str, capacity: int) -> None:
        """Register a new session and its capacity."""

    @abstractmethod
    async def add_participant(
        self,
        session_id: str,
        user_id: str,
        role: ParticipantRole,
    ) -> ParticipantResponse:
        """Raises E_CAPACITY_EXCEEDED or E_ALREADY_MEMBER."""

    @abstractmethod
    async def remove_participant(self, session_id: str, user_id: str) -> None:
        """Raises E_NOT_A_MEMBER."""

    @abstractmethod
    async def set_muted(self, session_id: str, user_id: str, muted: bool) -> ParticipantResponse:
        """Raises E_NOT_A_MEMBER."""

    @abstractmethod
    async def get_participant(self, session_id: str, user_id: str) -> ParticipantResponse | None: ...

    @abstractmethod
    async def list_participants(self, session_id: str) -> list[ParticipantResponse]:
        """Participants ordered by join time."""

    @abstractmethod
    async def close_roster(self, session_id: str) -> int:
        """Drop every participant of the session; returns how many were removed."""


@dataclass
class _Roster:
    capacity: int
    # Insertion order is join order
    members: dict[str, ParticipantResponse] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class InMemoryRosterStore(RosterStore):
    """Process-local roster guarded by one ``asyncio.Lock`` per session."""

    def __init__(self) -> None:
        self._rosters: dict[str, _Roster] = {}

    def _get_roster(self, session_id: str) -> _Roster:
        roster = self._rosters.get(session_id)
        if roster is None:
            raise _roster_not_found(session_id)
        return roster

    async def open_roster(self, session_id: str, capacity: int) -> None:
        if session_id not in self._rosters:
            self._rosters[session_id] = _Roster(capacity=capacity)

    async def add_participant(
        self,
        session_id: str,
        user_id: str,
        role: ParticipantRole,
    ) -> ParticipantResponse:
        roster = self._get_roster(session_id)
        async with roster.lock:
            if user_id in roster.members:
                raise _already_member(session_id, user_id)
            if len(roster.members) >= roster.capacity:
                raise _capacity_exceeded(session_id, roster.capacity)
            participant = ParticipantResponse(
                session_id=session_id,
                user_id=user_id,
                role=role,
                is_muted=False,
                joined_at=utc_now(),
            )
            roster.members[user_id] = participant
            logger.debug(
                f"Roster {session_id}: added {user_id} as {role} ({len(roster.members)}/{roster.capacity})"
            )
            return participant.model_copy()

    async def remove_participant(self, session_id: str, user_id: str) -> None:
        roster = self._get_roster(session_id)
        async with roster.lock:
            if roster.members.pop(user_id, None) is None:
                raise _not_a_member(session_id, user_id)
            logger.debug(f"Roster {session_id}: removed {user_id}")

    async def set_muted(self, session_id: str, user_id: str, muted: bool) -> ParticipantResponse:
        roster = self._get_roster(session_id)
        async with roster.lock:
            participant = roster.members.get(user_id)
            if participant is None:
                raise _not_a_member(session_id, user_id)
            updated = participant.model_copy(update={"is_muted": muted})
            roster.members[user_id] = updated
            return updated.model_copy()

    async def get_participant(self, session_id: str, user_id: str) -> ParticipantResponse | None:
        roster = self._rosters.get(session_id)
        if roster is None:
            return None
        participant = roster.members.get(user_id)
        return participant.model_copy() if participant else None

    async def list_participants(self, session_id: str) -> list[ParticipantResponse]:
        roster = self._rosters.get(session_id)
        if roster is None:
            return []
        members = [p.model_copy() for p in roster.members.values()]
        return sorted(members, key=lambda p: p.joined_at)

    async def close_roster(self, session_id: str) -> int:
        roster = self._rosters.pop(session_id, None)
        if roster is None:
            return 0
        async with roster.lock:
            removed = len(roster.members)
            roster.members.clear()
        logger.debug(f"Roster {session_id}: closed, {removed} participant(s) removed")
        return removed


class MongoRosterStore(RosterStore):
    """Roster persisted as ``Participant`` documents.

    Capacity lives on the ``Session`` document: a seat is reserved with a
    conditional increment of ``participant_count`` before the participant is
    inserted, and released again if the insert loses a race on the unique
    ``(session_id, user_id)`` index.
    """

    @staticmethod
    def _to_response(participant: Participant) -> ParticipantResponse:
        return ParticipantResponse(**participant.model_dump(exclude={"id"}, mode="json"))

    async def open_roster(self, session_id: str, capacity: int) -> None:
        # Capacity is stored on the session document itself
        return None

    async def add_participant(
        self,
        session_id: str,
        user_id: str,
        role: ParticipantRole,
    ) -> ParticipantResponse:
        existing = await Participant.find_one(
            Participant.session_id == session_id,
            Participant.user_id == user_id,
        )
        if existing:
            raise _already_member(session_id, user_id)

        if not await Session.reserve_seat(session_id):
            session = await Session.find_one(Session.session_id == session_id)
            if session is None:
                raise _roster_not_found(session_id)
            if session.status == SessionState.ENDED:
                raise AppError(
                    errcode=AppErrorCode.E_SESSION_ENDED,
                    errmesg=f"Session has ended: {session_id}",
                    status_code=HttpStatusCode.CONFLICT,
                )
            raise _capacity_exceeded(session_id, session.capacity)

        participant = Participant(
            session_id=session_id,
            user_id=user_id,
            role=role,
            is_muted=False,
            joined_at=utc_now(),
        )
        try:
            await participant.insert()
        except DuplicateKeyError as e:
            await Session.release_seats(session_id, 1)
            logger.warning(f"Concurrent join for {user_id} in session {session_id}: {e}")
            raise _already_member(session_id, user_id) from e

        return self._to_response(participant)

    async def remove_participant(self, session_id: str, user_id: str) -> None:
        result = await Participant.find(
            Participant.session_id == session_id,
            Participant.user_id == user_id,
        ).delete()
        if not result or result.deleted_count == 0:
            raise _not_a_member(session_id, user_id)
        await Session.release_seats(session_id, result.deleted_count)

    async def set_muted(self, session_id: str, user_id: str, muted: bool) -> ParticipantResponse:
        participant = await Participant.find_one(
            Participant.session_id == session_id,
            Participant.user_id == user_id,
        )
        if participant is None:
            raise _not_a_member(session_id, user_id)
        await participant.set({Participant.is_muted: muted})
        return self._to_response(participant)

    async def get_participant(self, session_id: str, user_id: str) -> ParticipantResponse | None:
        participant = await Participant.find_one(
            Participant.session_id == session_id,
            Participant.user_id == user_id,
        )
        return self._to_response(participant) if participant else None

    async def list_participants(self, session_id: str) -> list[ParticipantResponse]:
        participants = (
            await Participant.find(Participant.session_id == session_id).sort("+joined_at").to_list()
        )
        return [self._to_response(p) for p in participants]

    async def close_roster(self, session_id: str) -> int:
        result = await Participant.find(Participant.session_id == session_id).delete()
        removed = result.deleted_count if result else 0
        await Session.release_seats(session_id, removed)
        return removed
