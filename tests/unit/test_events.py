"""
Session Event Bus Unit Tests
============================
"""

import asyncio

import pytest

from paceloop.core.events import Event, SessionEventBus, SessionEventType


@pytest.fixture
def bus():
    return SessionEventBus(max_history=5)


class TestSubscribe:
    def test_handler_receives_event(self, bus):
        received = []
        bus.subscribe(SessionEventType.SESSION_STARTED, received.append)

        event = bus.publish(SessionEventType.SESSION_STARTED, data={"id": "s1"})

        assert received == [event]
        assert isinstance(event, Event)
        assert event.data == {"id": "s1"}
        assert event.source == "tracker"

    def test_other_types_not_delivered(self, bus):
        received = []
        bus.subscribe(SessionEventType.SESSION_STARTED, received.append)
        bus.publish(SessionEventType.SESSION_UPDATED)
        assert received == []

    def test_priority_order(self, bus):
        order = []
        bus.subscribe(SessionEventType.SPLIT_RECORDED, lambda e: order.append("late"), priority=200)
        bus.subscribe(SessionEventType.SPLIT_RECORDED, lambda e: order.append("early"), priority=10)
        bus.publish(SessionEventType.SPLIT_RECORDED)
        assert order == ["early", "late"]

    def test_once_handler_removed(self, bus):
        received = []
        bus.subscribe(SessionEventType.SESSION_PAUSED, received.append, once=True)
        bus.publish(SessionEventType.SESSION_PAUSED)
        bus.publish(SessionEventType.SESSION_PAUSED)
        assert len(received) == 1

    def test_decorator(self, bus):
        received = []

        @bus.on(SessionEventType.SESSION_COMPLETED)
        def handle(event):
            received.append(event.type)

        bus.publish(SessionEventType.SESSION_COMPLETED)
        assert received == [SessionEventType.SESSION_COMPLETED]

    def test_subscribe_all_and_unsubscribe_all(self, bus):
        received = []
        bus.subscribe_all(received.append)
        for event_type in SessionEventType:
            bus.publish(event_type)
        assert len(received) == len(SessionEventType)

        assert bus.unsubscribe_all(received.append) == len(SessionEventType)
        bus.publish(SessionEventType.SESSION_UPDATED)
        assert len(received) == len(SessionEventType)

    def test_unsubscribe_unknown(self, bus):
        assert bus.unsubscribe(SessionEventType.SESSION_UPDATED, print) is False


class TestErrorIsolation:
    def test_failing_handler_does_not_stop_others(self, bus):
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(SessionEventType.SESSION_UPDATED, broken, priority=1)
        bus.subscribe(SessionEventType.SESSION_UPDATED, received.append)

        bus.publish(SessionEventType.SESSION_UPDATED)

        assert len(received) == 1
        assert bus.get_stats()["handler_errors"] == 1

    @pytest.mark.asyncio
    async def test_async_handler_scheduled(self, bus):
        received = []

        async def handler(event):
            await asyncio.sleep(0)
            received.append(event.type)

        bus.subscribe(SessionEventType.SESSION_STARTED, handler)
        bus.publish(SessionEventType.SESSION_STARTED)
        await bus.drain()

        assert received == [SessionEventType.SESSION_STARTED]
        assert bus.get_stats()["pending_tasks"] == 0

    @pytest.mark.asyncio
    async def test_async_handler_error_counted(self, bus):
        async def handler(event):
            raise RuntimeError("boom")

        bus.subscribe(SessionEventType.SESSION_STARTED, handler)
        bus.publish(SessionEventType.SESSION_STARTED)
        await bus.drain()
        await asyncio.sleep(0)

        assert bus.get_stats()["handler_errors"] == 1

    def test_async_handler_without_loop_dropped(self, bus):
        async def handler(event):
            raise AssertionError("should never run")

        bus.subscribe(SessionEventType.SESSION_STARTED, handler)
        bus.publish(SessionEventType.SESSION_STARTED)
        assert bus.get_stats()["pending_tasks"] == 0


class TestHistory:
    def test_history_bounded(self, bus):
        for _ in range(8):
            bus.publish(SessionEventType.SESSION_UPDATED)
        assert len(bus.get_history()) == 5

    def test_history_filtered(self, bus):
        bus.publish(SessionEventType.SESSION_STARTED)
        bus.publish(SessionEventType.SESSION_UPDATED)
        history = bus.get_history(SessionEventType.SESSION_STARTED)
        assert [e.type for e in history] == [SessionEventType.SESSION_STARTED]

    def test_clear_history(self, bus):
        bus.publish(SessionEventType.SESSION_UPDATED)
        bus.clear_history()
        assert bus.get_history() == []
        assert bus.get_stats()["events_published"] == 1
