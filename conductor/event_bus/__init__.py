"""Event notifier."""

from .event_bus import EventBus, EventHandler, IEventBus

__all__ = ["EventBus", "EventHandler", "IEventBus"]
