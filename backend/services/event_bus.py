# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
In-memory event bus.

Stands in for a broker (Kafka/BullMQ) with asyncio.Queue fan-out inside a
single process. Task change notifications are published here on the
"task.events" channel.

Usage:
    from services.event_bus import EventBus

    # Publish events
    event_bus = EventBus()
    await event_bus.publish("task.events", {
        "type": "task.updated",
        "task": {"id": "t1", "version": 6}
    })

    # Subscribe to events
    queue = await event_bus.subscribe("task.events")
    event = await queue.get()
"""

import asyncio
import logging
from typing import Dict, List, Any
from collections import defaultdict
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class EventBus:
    """
    Lightweight in-memory event bus for a single-process service.

    Features:
    - Non-blocking publish (slow consumers get dropped events)
    - Per-channel sequence numbers for ordering and gap detection
    - Statistics for monitoring
    """

    def __init__(self):
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._event_count = 0
        self._channel_sequences: Dict[str, int] = defaultdict(int)

    async def subscribe(self, channel: str, maxsize: int = 500) -> asyncio.Queue:
        """
        Subscribe to channel. Returns queue for receiving events.

        Args:
            channel: Channel name (e.g., "task.events")
            maxsize: Max queue size

        Returns:
            asyncio.Queue that will receive events published to this channel
        """
        async with self._lock:
            queue = asyncio.Queue(maxsize=maxsize)
            self._subscribers[channel].append(queue)
            logger.info(f"Subscribed to '{channel}' (total subscribers: {len(self._subscribers[channel])})")
            return queue

    async def unsubscribe(self, channel: str, queue: asyncio.Queue):
        """
        Unsubscribe from channel.

        Args:
            channel: Channel name
            queue: Queue returned from subscribe()
        """
        async with self._lock:
            if queue in self._subscribers[channel]:
                self._subscribers[channel].remove(queue)
                logger.info(f"Unsubscribed from '{channel}' (remaining: {len(self._subscribers[channel])})")

                # Clean up empty channel lists
                if not self._subscribers[channel]:
                    del self._subscribers[channel]

    async def publish(self, channel: str, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Publish event to all channel subscribers.

        Non-blocking - slow consumers with full queues will have events dropped.
        This prevents one slow subscriber from blocking the request that
        produced the event.

        Args:
            channel: Channel name
            event: Event data (will be augmented with metadata)

        Returns:
            The event as delivered, including its metadata
        """
        async with self._lock:
            subscribers = list(self._subscribers.get(channel, []))
            self._event_count += 1
            self._channel_sequences[channel] += 1
            event_with_metadata = {
                **event,
                "event_id": self._event_count,
                "sequence_number": self._channel_sequences[channel],
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "channel": channel
            }

        dropped_count = 0
        for queue in subscribers:
            try:
                queue.put_nowait(event_with_metadata)
            except asyncio.QueueFull:
                dropped_count += 1

        if dropped_count > 0:
            logger.warning(
                f"Dropped {dropped_count}/{len(subscribers)} events on channel '{channel}'. "
                f"Slow consumer detected."
            )

        return event_with_metadata

    def get_stats(self) -> Dict[str, Any]:
        """
        Get event bus statistics.

        Returns:
            Dictionary with statistics:
            - total_channels: Number of active channels
            - total_subscribers: Total number of subscribers across all channels
            - events_published: Total events published since start
            - channels: Per-channel subscriber counts
        """
        return {
            "total_channels": len(self._subscribers),
            "total_subscribers": sum(len(subs) for subs in self._subscribers.values()),
            "events_published": self._event_count,
            "channels": {
                channel: len(subs)
                for channel, subs in self._subscribers.items()
            }
        }

