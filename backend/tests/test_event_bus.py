# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Event Bus Tests

Run with: pytest tests/test_event_bus.py -v
"""

import asyncio

from services.event_bus import EventBus


class TestEventBus:

    async def test_subscribers_receive_events(self):
        bus = EventBus()
        first = await bus.subscribe("task.events")
        second = await bus.subscribe("task.events")

        await bus.publish("task.events", {"type": "task.updated"})

        for queue in (first, second):
            event = queue.get_nowait()
            assert event["type"] == "task.updated"
            assert event["channel"] == "task.events"

    async def test_publish_without_subscribers_still_counts(self):
        bus = EventBus()

        delivered = await bus.publish("task.events", {"type": "task.created"})

        assert delivered["event_id"] == 1
        assert bus.get_stats()["events_published"] == 1

    async def test_sequence_numbers_are_per_channel(self):
        bus = EventBus()

        await bus.publish("a", {})
        await bus.publish("b", {})
        third = await bus.publish("a", {})

        assert third["sequence_number"] == 2
        assert third["event_id"] == 3

    async def test_full_queue_drops_instead_of_blocking(self):
        bus = EventBus()
        queue = await bus.subscribe("task.events", maxsize=1)

        await bus.publish("task.events", {"n": 1})
        await asyncio.wait_for(bus.publish("task.events", {"n": 2}), timeout=1)

        assert queue.qsize() == 1
        assert queue.get_nowait()["n"] == 1

    async def test_unsubscribe(self):
        bus = EventBus()
        queue = await bus.subscribe("task.events")

        await bus.unsubscribe("task.events", queue)
        await bus.publish("task.events", {"type": "task.updated"})

        assert queue.empty()
        assert bus.get_stats()["total_subscribers"] == 0
