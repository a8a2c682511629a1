"""Ordered, best-effort fan-out of session events to live subscribers."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from coachlive.utils.idgen import new_subscriber_id, utc_now


class SessionEventType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    USER_UPDATED = "user_updated"
    NEW_MESSAGE = "new_message"

    def __str__(self) -> str:
        return self.value


class SessionEvent(BaseModel):
    """One broadcast event. ``seq`` increases by one per session."""

    session_id: str
    event: SessionEventType
    seq: int
    payload: dict[str, Any] = Field(default_factory=dict)
    published_at: datetime


class EventTransport(Protocol):
    """Pub/sub channel the broadcaster can sit in front of.

    When a transport is configured, published events travel through it and
    come back via ``EventBroadcaster.deliver`` on every process, including
    the one that published them.
    """

    async def publish(self, event: SessionEvent) -> None: ...


class Subscription:
    """A consumer's view of one session's event stream.

    Iterate with ``async for``; iteration stops once the subscription is
    closed (by ``unsubscribe`` or because the consumer fell behind).
    """

    _CLOSED = object()

    def __init__(self, session_id: str, subscriber_id: str, max_queue_size: int):
        self.session_id = session_id
        self.subscriber_id = subscriber_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue_size + 1)
        self._max_queue_size = max_queue_size
        self.closed = False

    def offer(self, event: SessionEvent) -> bool:
        """Enqueue without waiting; False when the consumer is gone or too slow."""
        if self.closed or self._queue.qsize() >= self._max_queue_size:
            return False
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # One slot is reserved so the sentinel always fits
        self._queue.put_nowait(self._CLOSED)

    async def get(self) -> SessionEvent | None:
        """Next event, or None once closed and drained."""
        item = await self._queue.get()
        if item is self._CLOSED:
            return None
        return item

    def pending(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> SessionEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBroadcaster:
    """Owns the subscription registry and delivers events in publish order.

    Local delivery is a non-blocking enqueue into each subscriber's bounded
    queue, so all subscribers of a session observe the same order and a
    stalled consumer never blocks ``publish``. A subscriber whose queue is
    full is dropped. No history is kept.
    """

    def __init__(self, max_queue_size: int = 256, transport: EventTransport | None = None):
        self._max_queue_size = max_queue_size
        self._transport = transport
        self._subscriptions: dict[str, dict[str, Subscription]] = defaultdict(dict)
        self._seq: dict[str, int] = defaultdict(int)

    @property
    def transport(self) -> EventTransport | None:
        return self._transport

    def subscribe(self, session_id: str, subscriber_id: str | None = None) -> Subscription:
        subscriber_id = subscriber_id or new_subscriber_id()
        subscription = Subscription(session_id, subscriber_id, self._max_queue_size)
        previous = self._subscriptions[session_id].get(subscriber_id)
        if previous is not None:
            previous.close()
        self._subscriptions[session_id][subscriber_id] = subscription
        logger.debug(f"Subscribed {subscriber_id} to session {session_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.session_id)
        if subscribers and subscribers.get(subscription.subscriber_id) is subscription:
            del subscribers[subscription.subscriber_id]
            if not subscribers:
                del self._subscriptions[subscription.session_id]
        subscription.close()
        logger.debug(f"Unsubscribed {subscription.subscriber_id} from session {subscription.session_id}")

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscriptions.get(session_id, {}))

    def _next_seq(self, session_id: str) -> int:
        self._seq[session_id] += 1
        return self._seq[session_id]

    async def publish(
        self,
        session_id: str,
        event: SessionEventType,
        payload: dict[str, Any] | None = None,
    ) -> SessionEvent:
        """Publish an event to every current subscriber of ``session_id``.

        Never raises because of a subscriber or the transport: a failed
        transport publish is logged and the event is lost.
        """
        session_event = SessionEvent(
            session_id=session_id,
            event=event,
            seq=self._next_seq(session_id),
            payload=payload or {},
            published_at=utc_now(),
        )

        if self._transport is None:
            self.deliver(session_event)
            return session_event

        try:
            await self._transport.publish(session_event)
        except Exception:
            logger.exception(
                f"Event transport publish failed: session={session_id} event={event} seq={session_event.seq}"
            )
        return session_event

    def deliver(self, event: SessionEvent) -> int:
        """Hand ``event`` to the local subscribers of its session; returns the delivered count."""
        subscribers = self._subscriptions.get(event.session_id)
        if not subscribers:
            return 0

        delivered = 0
        for subscription in list(subscribers.values()):
            if subscription.offer(event):
                delivered += 1
                continue
            logger.warning(
                f"Dropping subscriber {subscription.subscriber_id} of session {event.session_id}: "
                f"closed or {subscription.pending()} events behind"
            )
            self.unsubscribe(subscription)

        logger.debug(
            f"Delivered {event.event} seq={event.seq} for session {event.session_id} "
            f"to {delivered} subscriber(s)"
        )
        return delivered

    def release_session(self, session_id: str) -> None:
        """Forget the sequence counter of a finished session; open subscriptions drain on their own."""
        self._seq.pop(session_id, None)

    def tracked_sessions(self) -> int:
        return len(self._seq)

    def close_session(self, session_id: str) -> None:
        """Close every subscription of a session and forget its sequence counter."""
        for subscription in list(self._subscriptions.get(session_id, {}).values()):
            self.unsubscribe(subscription)
        self.release_session(session_id)

    def close_all(self) -> None:
        for session_id in list(self._subscriptions):
            self.close_session(session_id)
