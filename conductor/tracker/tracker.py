"""Tracker: persists published events as TraceEvents."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import BusEvent, Topic, TraceEvent
from ..storage import IStorage

logger = get_logger(__name__)


class ITracker(Protocol):
    """Creating TraceEvents. Two channels: EventBus subscription + direct calls."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...

    async def start(self) -> None:
        """Subscribe to EventBus topics."""
        ...

    async def stop(self) -> None:
        """Stop receiving events."""
        ...


class Tracker:
    """Creates TraceEvents via EventBus subscription and direct track() calls."""

    def __init__(self, event_bus: IEventBus, storage: IStorage):
        self._event_bus = event_bus
        self._storage = storage
        self._subscribed = False

    async def start(self) -> None:
        """Subscribe to all EventBus topics."""
        if self._subscribed:
            return
        self._event_bus.subscribe_all(self._handle_event)
        self._subscribed = True

    async def stop(self) -> None:
        """Unsubscribe from all EventBus topics."""
        if not self._subscribed:
            return
        for topic in Topic:
            self._event_bus.unsubscribe(topic, self._handle_event)
        self._subscribed = False

    async def _handle_event(self, event: BusEvent) -> None:
        """Persist one bus event; approval outcomes also go to the decision log."""
        trace_event = TraceEvent(
            id=event.id,
            event_type=event.topic.value,
            actor=event.source,
            data=event.payload,
            timestamp=event.timestamp,
        )
        await self._storage.save_trace_event(trace_event)

        if event.topic == Topic.APPROVAL_RESOLVED:
            context = event.payload.get("context") or {}
            await self._storage.save_approval_decision(
                {
                    "request_id": event.payload.get("request_id"),
                    "tool_name": context.get("tool_name", ""),
                    "command": context.get("command", ""),
                    "agent_id": context.get("agent_id"),
                    "session_id": context.get("session_id"),
                    "approved": event.payload.get("approved", False),
                    "reason": event.payload.get("reason", ""),
                    "timestamp": event.timestamp,
                }
            )

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        await self._storage.save_trace_event(trace_event)
