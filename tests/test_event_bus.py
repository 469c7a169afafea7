"""Tests for EventBus."""

import asyncio

import pytest

from conductor.models import BusEvent, Topic


def _event(topic: Topic = Topic.AGENT_OUTPUT, **payload) -> BusEvent:
    return BusEvent(topic=topic, payload=payload, source="test")


class TestEventBusSubscribe:
    """Tests for EventBus subscription."""

    @pytest.mark.asyncio
    async def test_subscribe_multiple_handlers(self, event_bus):
        """Test subscribing multiple handlers to same topic."""

        async def handler1(event: BusEvent):
            pass

        async def handler2(event: BusEvent):
            pass

        event_bus.subscribe(Topic.AGENT_OUTPUT, handler1)
        event_bus.subscribe(Topic.AGENT_OUTPUT, handler2)

        assert len(event_bus._subscribers[Topic.AGENT_OUTPUT]) == 2

    @pytest.mark.asyncio
    async def test_unsubscribe(self, event_bus):
        """Unsubscribed handlers no longer receive events."""
        calls = []

        async def handler(event: BusEvent):
            calls.append(event)

        event_bus.subscribe(Topic.AGENT_OUTPUT, handler)
        event_bus.unsubscribe(Topic.AGENT_OUTPUT, handler)
        event_bus.publish(_event())
        await event_bus.drain()

        assert calls == []

    @pytest.mark.asyncio
    async def test_subscribe_all(self, event_bus):
        """subscribe_all receives every topic."""
        topics = []

        async def handler(event: BusEvent):
            topics.append(event.topic)

        event_bus.subscribe_all(handler)
        event_bus.publish(_event(Topic.TOOL_EXECUTED))
        event_bus.publish(_event(Topic.STEP_COMPLETED))
        await event_bus.drain()

        assert topics == [Topic.TOOL_EXECUTED, Topic.STEP_COMPLETED]


class TestEventBusPublish:
    """Tests for EventBus publishing."""

    @pytest.mark.asyncio
    async def test_publish_does_not_run_handlers_inline(self, event_bus):
        """Publishing only enqueues; delivery happens on drain."""
        calls = []

        async def handler(event: BusEvent):
            calls.append(event)

        event_bus.subscribe(Topic.AGENT_OUTPUT, handler)
        event_bus.publish(_event(text="hello"))

        assert calls == []
        await event_bus.drain()
        assert len(calls) == 1
        assert calls[0].payload == {"text": "hello"}

    @pytest.mark.asyncio
    async def test_handler_error_isolation(self, event_bus):
        """A failing handler does not affect the others."""
        calls = []

        async def failing(event: BusEvent):
            raise RuntimeError("boom")

        async def working(event: BusEvent):
            calls.append(event)

        event_bus.subscribe(Topic.AGENT_OUTPUT, failing)
        event_bus.subscribe(Topic.AGENT_OUTPUT, working)
        event_bus.publish(_event())
        await event_bus.drain()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_dispatcher_delivers_in_order(self, event_bus):
        """The running dispatcher delivers events in publish order."""
        seen = []

        async def handler(event: BusEvent):
            await asyncio.sleep(0)
            seen.append(event.payload["n"])

        event_bus.subscribe(Topic.AGENT_OUTPUT, handler)
        await event_bus.start()
        try:
            for n in range(5):
                event_bus.publish(_event(n=n))
            await event_bus.drain()
        finally:
            await event_bus.stop()

        assert seen == [0, 1, 2, 3, 4]
        assert not event_bus.is_running

    @pytest.mark.asyncio
    async def test_stop_flushes_queue(self, event_bus):
        """stop() delivers queued events before stopping."""
        seen = []

        async def handler(event: BusEvent):
            seen.append(event)

        event_bus.subscribe(Topic.AGENT_OUTPUT, handler)
        await event_bus.start()
        event_bus.publish(_event())
        await event_bus.stop()

        assert len(seen) == 1
