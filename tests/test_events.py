"""
Unit tests for the in-process event bus.
"""
import asyncio

import pytest

from guru import events
from guru.events import GROWTH_DETECTED, EventBus, GrowthDetected, publish_growth


class TestPublish:

    def test_calls_in_registration_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe("ping", lambda p: seen.append(("a", p)))
        bus.subscribe("ping", lambda p: seen.append(("b", p)))
        bus.publish("ping", 1)
        assert seen == [("a", 1), ("b", 1)]

    def test_only_matching_event(self):
        bus = EventBus()
        seen = []
        bus.subscribe("ping", seen.append)
        bus.publish("pong", 1)
        assert seen == []

    def test_failing_subscriber_is_isolated(self):
        bus = EventBus()
        seen = []

        def boom(payload):
            raise ValueError("handler bug")

        bus.subscribe("ping", boom)
        bus.subscribe("ping", seen.append)
        ran = bus.publish("ping", "hello")
        assert seen == ["hello"]
        assert ran == 1

    def test_no_replay_for_late_subscribers(self):
        bus = EventBus()
        bus.publish("ping", 1)
        seen = []
        bus.subscribe("ping", seen.append)
        assert seen == []


class TestSubscribe:

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe("ping", seen.append)
        assert bus.subscriber_count("ping") == 1
        unsubscribe()
        unsubscribe()  # idempotent
        bus.publish("ping", 1)
        assert seen == []
        assert bus.subscriber_count("ping") == 0

    def test_unsubscribe_during_publish(self):
        bus = EventBus()
        seen = []
        holder = {}

        def once(payload):
            seen.append(payload)
            holder["unsub"]()

        holder["unsub"] = bus.subscribe("ping", once)
        bus.subscribe("ping", lambda p: seen.append("second"))
        bus.publish("ping", 1)
        bus.publish("ping", 2)
        assert seen == [1, "second", "second"]


class TestAsyncSubscribers:

    @pytest.mark.asyncio
    async def test_coroutine_handler_is_scheduled(self):
        bus = EventBus()
        done = asyncio.Event()

        async def handler(payload):
            done.set()

        bus.subscribe("ping", handler)
        bus.publish("ping", 1)
        await asyncio.wait_for(done.wait(), timeout=1)


class TestPublishGrowth:

    def test_publishes_non_empty(self):
        bus = EventBus()
        seen = []
        bus.subscribe(GROWTH_DETECTED, seen.append)
        assert publish_growth(bus, ["You met anger with patience", ""]) is True
        assert seen == [GrowthDetected(contradictions=("You met anger with patience",))]

    def test_skips_empty(self):
        bus = EventBus()
        seen = []
        bus.subscribe(GROWTH_DETECTED, seen.append)
        assert publish_growth(bus, []) is False
        assert publish_growth(bus, None) is False
        assert seen == []


class TestBackgroundTasks:

    @pytest.mark.asyncio
    async def test_coroutine_handler_task_held_until_done(self):
        bus = EventBus()
        gate = asyncio.Event()

        async def handler(payload):
            await gate.wait()

        bus.subscribe("ping", handler)
        before = len(events._background)
        bus.publish("ping", 1)
        assert len(events._background) == before + 1

        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert len(events._background) == before
