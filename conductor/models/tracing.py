"""Tracing and audit data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A persisted copy of a published event."""

    id: str
    event_type: str  # topic value
    actor: str  # event source
    data: dict
    timestamp: datetime
