"""SQLite storage for the audit trail."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import TraceEvent


class IStorage(Protocol):
    """Persistent audit storage (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Approval decisions
    async def save_approval_decision(self, decision: dict) -> None:
        """Save one approval decision."""
        ...

    async def get_approval_decisions(
        self,
        agent_id: str | None = None,
        session_id: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get approval decisions (newest first)."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        await self._conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await self._conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters (newest first)."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        conditions = []
        params: list = []

        if after:
            if after.tzinfo is None:
                after = after.replace(tzinfo=timezone.utc)
            conditions.append("timestamp > ?")
            params.append(after.isoformat())
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await self._conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=datetime.fromisoformat(row[4]),
            )
            for row in rows
        ]

    # Approval decisions
    async def save_approval_decision(self, decision: dict) -> None:
        """Save one approval decision."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        timestamp = decision.get("timestamp") or datetime.now(timezone.utc)
        await self._conn.execute(
            """
            INSERT INTO approval_decisions
            (id, request_id, tool_name, command, agent_id, session_id,
             approved, reason, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                decision.get("id") or str(uuid.uuid4()),
                decision.get("request_id"),
                decision["tool_name"],
                decision["command"],
                decision.get("agent_id"),
                decision.get("session_id"),
                1 if decision["approved"] else 0,
                decision["reason"],
                timestamp.isoformat() if isinstance(timestamp, datetime) else timestamp,
            ),
        )
        await self._conn.commit()

    async def get_approval_decisions(
        self,
        agent_id: str | None = None,
        session_id: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get approval decisions, optionally for one agent or session (newest first)."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        conditions = []
        params: list = []
        if agent_id:
            conditions.append("agent_id = ?")
            params.append(agent_id)
        if session_id:
            conditions.append("session_id = ?")
            params.append(session_id)
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        cursor = await self._conn.execute(
            f"""
            SELECT id, request_id, tool_name, command, agent_id, session_id,
                   approved, reason, timestamp
            FROM approval_decisions
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (*params, limit),
        )
        rows = await cursor.fetchall()

        return [
            {
                "id": row[0],
                "request_id": row[1],
                "tool_name": row[2],
                "command": row[3],
                "agent_id": row[4],
                "session_id": row[5],
                "approved": bool(row[6]),
                "reason": row[7],
                "timestamp": datetime.fromisoformat(row[8]),
            }
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        for table in ["trace_events", "approval_decisions"]:
            await self._conn.execute(f"DELETE FROM {table}")

        await self._conn.commit()
