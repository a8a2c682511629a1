"""Tests for EventBroadcaster fan-out and subscription lifecycle."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from coachlive.domain.session.broadcaster import EventBroadcaster, SessionEvent, SessionEventType


def drain(subscription) -> list[SessionEvent]:
    events = []
    while subscription.pending():
        item = subscription._queue.get_nowait()
        if isinstance(item, SessionEvent):
            events.append(item)
    return events


class TestPublish:
    async def test_every_subscriber_gets_same_order(self):
        broadcaster = EventBroadcaster()
        first = broadcaster.subscribe("se_1")
        second = broadcaster.subscribe("se_1")

        await broadcaster.publish("se_1", SessionEventType.USER_JOINED, {"user_id": "a"})
        await broadcaster.publish("se_1", SessionEventType.USER_JOINED, {"user_id": "b"})
        await broadcaster.publish("se_1", SessionEventType.USER_UPDATED, {"user_id": "a"})

        for subscription in (first, second):
            events = drain(subscription)
            assert [(e.event, e.payload["user_id"]) for e in events] == [
                (SessionEventType.USER_JOINED, "a"),
                (SessionEventType.USER_JOINED, "b"),
                (SessionEventType.USER_UPDATED, "a"),
            ]
            assert [e.seq for e in events] == [1, 2, 3]

    async def test_seq_is_per_session(self):
        broadcaster = EventBroadcaster()

        a1 = await broadcaster.publish("se_a", SessionEventType.NEW_MESSAGE)
        b1 = await broadcaster.publish("se_b", SessionEventType.NEW_MESSAGE)
        a2 = await broadcaster.publish("se_a", SessionEventType.NEW_MESSAGE)

        assert (a1.seq, b1.seq, a2.seq) == (1, 1, 2)

    async def test_no_history_for_late_subscribers(self):
        broadcaster = EventBroadcaster()
        await broadcaster.publish("se_1", SessionEventType.SESSION_STARTED)

        late = broadcaster.subscribe("se_1")
        await broadcaster.publish("se_1", SessionEventType.NEW_MESSAGE, {"message": "hi"})

        events = drain(late)
        assert [e.event for e in events] == [SessionEventType.NEW_MESSAGE]

    async def test_other_sessions_not_notified(self):
        broadcaster = EventBroadcaster()
        other = broadcaster.subscribe("se_other")

        await broadcaster.publish("se_1", SessionEventType.SESSION_STARTED)

        assert other.pending() == 0

    async def test_publish_without_subscribers(self):
        broadcaster = EventBroadcaster()

        event = await broadcaster.publish("se_1", SessionEventType.SESSION_ENDED, {"x": 1})

        assert event.session_id == "se_1"
        assert event.payload == {"x": 1}


class TestBestEffort:
    async def test_slow_subscriber_is_dropped_without_failing_publish(self):
        broadcaster = EventBroadcaster(max_queue_size=2)
        slow = broadcaster.subscribe("se_1")
        fast = broadcaster.subscribe("se_1")

        for _ in range(2):
            await broadcaster.publish("se_1", SessionEventType.NEW_MESSAGE)
        drain(fast)
        await broadcaster.publish("se_1", SessionEventType.NEW_MESSAGE)

        assert slow.closed is True
        assert broadcaster.subscriber_count("se_1") == 1
        assert [e.seq for e in drain(fast)] == [3]

    async def test_closed_subscriber_is_dropped(self):
        broadcaster = EventBroadcaster()
        gone = broadcaster.subscribe("se_1")
        gone.close()
        event = SessionEvent(
            session_id="se_1",
            event=SessionEventType.NEW_MESSAGE,
            seq=1,
            published_at=datetime.now(timezone.utc),
        )

        assert broadcaster.deliver(event) == 0
        assert broadcaster.subscriber_count("se_1") == 0

    async def test_transport_failure_is_logged_not_raised(self):
        transport = AsyncMock()
        transport.publish.side_effect = ConnectionError("redis down")
        broadcaster = EventBroadcaster(transport=transport)

        event = await broadcaster.publish("se_1", SessionEventType.USER_LEFT, {"user_id": "u1"})

        assert event.seq == 1
        transport.publish.assert_awaited_once()

    async def test_transport_receives_event_instead_of_local_delivery(self):
        transport = AsyncMock()
        broadcaster = EventBroadcaster(transport=transport)
        subscription = broadcaster.subscribe("se_1")

        event = await broadcaster.publish("se_1", SessionEventType.USER_LEFT)

        transport.publish.assert_awaited_once_with(event)
        # Local delivery happens when the relay hands the event back
        assert subscription.pending() == 0
        assert broadcaster.deliver(event) == 1


class TestSubscriptions:
    async def test_async_iteration_stops_on_unsubscribe(self):
        broadcaster = EventBroadcaster()
        subscription = broadcaster.subscribe("se_1")

        await broadcaster.publish("se_1", SessionEventType.SESSION_STARTED)
        await broadcaster.publish("se_1", SessionEventType.SESSION_ENDED)
        broadcaster.unsubscribe(subscription)

        received = [event.event async for event in subscription]

        assert received == [SessionEventType.SESSION_STARTED, SessionEventType.SESSION_ENDED]
        assert broadcaster.subscriber_count("se_1") == 0

    async def test_get_waits_for_next_event(self):
        broadcaster = EventBroadcaster()
        subscription = broadcaster.subscribe("se_1")

        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)
        await broadcaster.publish("se_1", SessionEventType.NEW_MESSAGE, {"message": "hello"})

        event = await asyncio.wait_for(waiter, timeout=1)
        assert event.payload == {"message": "hello"}

    async def test_resubscribe_with_same_id_replaces_previous(self):
        broadcaster = EventBroadcaster()
        old = broadcaster.subscribe("se_1", subscriber_id="sub_x")
        new = broadcaster.subscribe("se_1", subscriber_id="sub_x")

        assert old.closed is True
        assert new.closed is False
        assert broadcaster.subscriber_count("se_1") == 1

    async def test_close_session_closes_subscribers_and_resets_seq(self):
        broadcaster = EventBroadcaster()
        subscription = broadcaster.subscribe("se_1")
        await broadcaster.publish("se_1", SessionEventType.SESSION_STARTED)

        broadcaster.close_session("se_1")

        assert subscription.closed is True
        assert broadcaster.subscriber_count("se_1") == 0
        assert (await broadcaster.publish("se_1", SessionEventType.SESSION_STARTED)).seq == 1

    async def test_release_session_keeps_subscribers_draining(self):
        broadcaster = EventBroadcaster()
        subscription = broadcaster.subscribe("se_1")
        await broadcaster.publish("se_1", SessionEventType.USER_JOINED)
        await broadcaster.publish("se_1", SessionEventType.SESSION_ENDED)

        broadcaster.release_session("se_1")

        assert broadcaster.tracked_sessions() == 0
        assert subscription.closed is False
        assert broadcaster.subscriber_count("se_1") == 1
        assert [event.seq for event in drain(subscription)] == [1, 2]
