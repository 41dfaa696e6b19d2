# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Task change notifications.

The task core only knows the NotificationSink contract. The default sink
forwards events to the in-process EventBus; a broker-backed sink would
implement the same single method.
"""

import logging
from typing import Any, Dict, Protocol

from services.event_bus import EventBus

logger = logging.getLogger(__name__)

TASK_CREATED = "task.created"
TASK_UPDATED = "task.updated"


class NotificationSink(Protocol):
    """Fire-and-forget destination for change events."""

    async def publish(self, event: Dict[str, Any]) -> None:
        ...


class EventBusNotificationSink:
    """NotificationSink that publishes to an EventBus channel."""

    def __init__(self, event_bus: EventBus, topic: str = "task.events"):
        self.event_bus = event_bus
        self.topic = topic

    async def publish(self, event: Dict[str, Any]) -> None:
        delivered = await self.event_bus.publish(self.topic, event)
        logger.info(
            "EVENT_EMITTED",
            extra={
                "topic": self.topic,
                "event_id": delivered["event_id"],
                "payload": event
            }
        )


def build_task_event(event_type: str, task, user_id: str) -> Dict[str, Any]:
    """Build the notification payload for a task change."""
    return {
        "type": event_type,
        "task": {"id": task.id, "version": task.version},
        "workspace_id": task.workspace_id,
        "user_id": user_id
    }
