"""Event Store — append-only audit log for pages and comments.

Every mutation of the page tree or of a comment thread emits an event:
  page_created, page_updated, page_moved, page_deleted, page_restored,
  comment_created, comment_resolved, etc.

Events are immutable (INSERT only, never UPDATE/DELETE).
Query by aggregate_id (page/comment id) for the full audit trail.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from ..db.migrations import get_db

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """Immutable event record."""

    id: str = ""
    event_type: str = ""
    aggregate_type: str = ""  # "page", "comment"
    aggregate_id: str = ""
    actor: str = ""  # user id or "system"
    payload: dict = field(default_factory=dict)
    timestamp: float = 0.0

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())
        if not self.timestamp:
            self.timestamp = time.time()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "actor": self.actor,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


# Event types
PAGE_CREATED = "page_created"
PAGE_UPDATED = "page_updated"
PAGE_STATE_UPDATED = "page_state_updated"
PAGE_MOVED = "page_moved"
PAGE_DELETED = "page_deleted"
PAGE_RESTORED = "page_restored"
PAGE_FORCE_DELETED = "page_force_deleted"
COMMENT_CREATED = "comment_created"
COMMENT_UPDATED = "comment_updated"
COMMENT_DELETED = "comment_deleted"
COMMENT_RESOLVED = "comment_resolved"
COMMENT_UNRESOLVED = "comment_unresolved"


def _row_to_event(row) -> Event:
    return Event(
        id=row["id"],
        event_type=row["event_type"],
        aggregate_type=row["aggregate_type"],
        aggregate_id=row["aggregate_id"],
        actor=row["actor"],
        payload=json.loads(row["payload"]) if row["payload"] else {},
        timestamp=row["timestamp"],
    )


def _where(**filters) -> tuple[str, list]:
    """WHERE clause for the non-empty filters (column = value, since → >=)."""
    conditions = []
    params: list = []
    for column, value in filters.items():
        if not value:
            continue
        if column == "since":
            conditions.append("timestamp >= ?")
        else:
            conditions.append(f"{column} = ?")
        params.append(value)
    return (f"WHERE {' AND '.join(conditions)}" if conditions else ""), params


class EventStore:
    """Append-only event store sharing the docwiki SQLite database."""

    def __init__(self, db_path: Path | str):
        self._db_path = Path(db_path)
        self._listeners: list = []

    def emit(self, event: Event) -> Event:
        """Append an event and notify listeners. Listener errors are logged only."""
        db = get_db(self._db_path)
        try:
            db.execute(
                "INSERT INTO events (id, event_type, aggregate_type, aggregate_id, actor, payload, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    event.id,
                    event.event_type,
                    event.aggregate_type,
                    event.aggregate_id,
                    event.actor,
                    json.dumps(event.payload, default=str),
                    event.timestamp,
                ),
            )
            db.commit()
        finally:
            db.close()

        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", event.event_type)
        return event

    def emit_simple(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        actor: str = "system",
        **payload,
    ) -> Event:
        return self.emit(
            Event(
                event_type=event_type,
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                actor=actor or "system",
                payload=payload,
            )
        )

    def query(
        self,
        aggregate_id: str | None = None,
        aggregate_type: str | None = None,
        event_type: str | None = None,
        actor: str | None = None,
        since: float | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Events matching all given filters, oldest first."""
        where, params = _where(
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            event_type=event_type,
            actor=actor,
            since=since,
        )
        db = get_db(self._db_path)
        try:
            rows = db.execute(
                f"SELECT * FROM events {where} ORDER BY timestamp ASC, rowid ASC LIMIT ?",
                (*params, limit),
            ).fetchall()
            return [_row_to_event(r) for r in rows]
        finally:
            db.close()

    def replay(self, aggregate_id: str) -> list[Event]:
        """Full audit trail of one page or comment."""
        return self.query(aggregate_id=aggregate_id, limit=10000)

    def count(
        self,
        aggregate_id: str | None = None,
        event_type: str | None = None,
        actor: str | None = None,
    ) -> int:
        where, params = _where(aggregate_id=aggregate_id, event_type=event_type, actor=actor)
        db = get_db(self._db_path)
        try:
            return db.execute(f"SELECT COUNT(*) FROM events {where}", params).fetchone()[0]
        finally:
            db.close()

    def on_event(self, listener) -> None:
        """Register a synchronous listener called after every emit."""
        self._listeners.append(listener)
