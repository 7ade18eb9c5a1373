"""Deployment events streamed to clients over Server-Sent Events."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from buildcart.models.deployment import Deployment
from buildcart.models.store import utcnow


@dataclass
class Event:
    """A deployment lifecycle event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def payload(self) -> str:
        """JSON body of the event, timestamp included."""
        return json.dumps({**self.data, "timestamp": self.timestamp.isoformat()})

    def to_sse(self) -> str:
        """Convert to SSE wire format."""
        return f"event: {self.event_type}\ndata: {self.payload()}\n\n"


class EventBus:
    """In-process fan-out of deployment events, keyed by store."""

    def __init__(self):
        self._subscribers: dict[str, list[asyncio.Queue[Event]]] = {}

    def subscribe(self, store_id: str) -> asyncio.Queue[Event]:
        """Open a new subscription to a store's events."""
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers.setdefault(store_id, []).append(queue)
        return queue

    def unsubscribe(self, store_id: str, queue: asyncio.Queue[Event]) -> None:
        """Close a subscription opened with ``subscribe``."""
        queues = self._subscribers.get(store_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(store_id, None)

    def subscriber_count(self, store_id: str) -> int:
        return len(self._subscribers.get(store_id, []))

    async def publish(self, store_id: str, event: Event) -> None:
        """Deliver an event to every subscriber of a store."""
        for queue in list(self._subscribers.get(store_id, [])):
            await queue.put(event)

    async def publish_deployment_started(self, deployment: Deployment) -> None:
        await self.publish(
            deployment.store_id,
            Event(
                event_type="deployment_started",
                data={
                    "deployment_id": str(deployment.id),
                    "version": deployment.version,
                    "environment": deployment.environment.value,
                },
            ),
        )

    async def publish_deployment_completed(self, deployment: Deployment) -> None:
        await self.publish(
            deployment.store_id,
            Event(
                event_type="deployment_completed",
                data={
                    "deployment_id": str(deployment.id),
                    "version": deployment.version,
                    "url": deployment.url,
                    "duration_seconds": deployment.duration_seconds,
                },
            ),
        )

    async def publish_deployment_failed(self, deployment: Deployment, error: str) -> None:
        await self.publish(
            deployment.store_id,
            Event(
                event_type="deployment_failed",
                data={
                    "deployment_id": str(deployment.id),
                    "version": deployment.version,
                    "error": error,
                },
            ),
        )


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
