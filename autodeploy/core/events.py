"""Deployment lifecycle events and Server-Sent Events fan-out."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from autodeploy.utils.logging import get_logger

logger = get_logger(__name__)

TERMINAL_EVENTS = ("success", "failed", "cancelled")


@dataclass
class Event:
    """A deployment lifecycle event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)


class Notifier(Protocol):
    """Receives lifecycle events (started, success, failed, warning)."""

    async def notify(self, deployment_id: int, event_type: str, data: dict[str, Any]) -> None: ...


class EventBus:
    """Logs lifecycle events and fans them out to per-deployment subscribers."""

    def __init__(self):
        self._subscribers: dict[int, list[asyncio.Queue[Event]]] = {}

    def subscribe(self, deployment_id: int) -> asyncio.Queue[Event]:
        """Subscribe to events for a deployment."""
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers.setdefault(deployment_id, []).append(queue)
        return queue

    def unsubscribe(self, deployment_id: int, queue: asyncio.Queue[Event]) -> None:
        """Drop one subscription."""
        queues = self._subscribers.get(deployment_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(deployment_id, None)

    async def publish(self, deployment_id: int, event: Event) -> None:
        """Publish an event for a deployment."""
        for queue in self._subscribers.get(deployment_id, []):
            await queue.put(event)

    async def notify(self, deployment_id: int, event_type: str, data: dict[str, Any]) -> None:
        """Record a lifecycle event and deliver it to subscribers."""
        log = logger.warning if event_type in ("failed", "warning") else logger.info
        fields = {k: v for k, v in data.items() if k not in ("deployment_id", "event")}
        log(f"deployment.{event_type}", deployment_id=deployment_id, **fields)
        await self.publish(deployment_id, Event(event_type=event_type, data=data))


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
