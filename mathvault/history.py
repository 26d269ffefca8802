"""
Append-only history log.

Events are never updated or deleted. Queries are owner-scoped and return
the most recent events first. The vault writes to the log as a side
effect; a failing log never fails the vault operation that triggered it.
"""

import json
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .types import format_timestamp, parse_utc_timestamp, utc_now

SCOPE_VAULT = "VAULT"
SCOPE_STUDIO = "STUDIO"

EVENT_CREATE = "CREATE"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
EVENT_SNAPSHOT = "SNAPSHOT"

DEFAULT_MAX_EVENTS = 200


@dataclass(frozen=True)
class HistoryEvent:
    """A single immutable log entry."""
    id: str
    owner_id: str
    scope: str
    entity_id: str
    type: str
    payload: Any = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "scope": self.scope,
            "entityId": self.entity_id,
            "type": self.type,
            "payload": self.payload,
            "createdAt": format_timestamp(self.created_at),
        }


def _clamp_limit(limit: int, max_events: int) -> int:
    return max(1, min(limit, max_events))


def _matches(value: str, wanted: Optional[str], *, casefold: bool) -> bool:
    if wanted is None or not wanted.strip():
        return True
    if casefold:
        return value.casefold() == wanted.strip().casefold()
    return value == wanted


class MemoryHistoryLog:
    """Process-local log; newest event at the front."""

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS):
        self._events: list[HistoryEvent] = []
        self._max_events = max_events
        self._lock = threading.Lock()

    def append(
        self,
        owner_id: str,
        scope: str,
        entity_id: str,
        type: str,
        payload: Any = None,
    ) -> HistoryEvent:
        event = HistoryEvent(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            scope=scope,
            entity_id=entity_id,
            type=type,
            payload=payload,
        )
        with self._lock:
            self._events.insert(0, event)
        return event

    def query(
        self,
        owner_id: str,
        *,
        scope: Optional[str] = None,
        entity_id: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 50,
    ) -> list[HistoryEvent]:
        """Owner's events, newest first; scope and type match case-insensitively."""
        limit = _clamp_limit(limit, self._max_events)
        with self._lock:
            events = list(self._events)
        result = []
        for ev in events:
            if ev.owner_id != owner_id:
                continue
            if not _matches(ev.scope, scope, casefold=True):
                continue
            if not _matches(ev.entity_id, entity_id, casefold=False):
                continue
            if not _matches(ev.type, type, casefold=True):
                continue
            result.append(ev)
            if len(result) >= limit:
                break
        return result

    def close(self) -> None:
        pass


class SqliteHistoryLog:
    """
    SQLite-backed log.

    Rows carry an autoincrement sequence so "most recent first" stays exact
    even when two events share a timestamp.
    """

    def __init__(self, log_path: Path, max_events: int = DEFAULT_MAX_EVENTS):
        """
        Args:
            log_path: Path to SQLite database file
            max_events: Upper bound for query limits
        """
        self._log_path = log_path
        self._max_events = max_events
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._log_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS history_events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                owner_id TEXT NOT NULL,
                scope TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                type TEXT NOT NULL,
                payload_json TEXT,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_history_owner
            ON history_events(owner_id, seq)
        """)
        self._conn.commit()

    def append(
        self,
        owner_id: str,
        scope: str,
        entity_id: str,
        type: str,
        payload: Any = None,
    ) -> HistoryEvent:
        event = HistoryEvent(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            scope=scope,
            entity_id=entity_id,
            type=type,
            payload=payload,
        )
        with self._lock:
            self._conn.execute("""
                INSERT INTO history_events
                (id, owner_id, scope, entity_id, type, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                event.id, owner_id, scope, entity_id, type,
                json.dumps(payload, ensure_ascii=False),
                format_timestamp(event.created_at),
            ))
            self._conn.commit()
        return event

    def query(
        self,
        owner_id: str,
        *,
        scope: Optional[str] = None,
        entity_id: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 50,
    ) -> list[HistoryEvent]:
        """Owner's events, newest first; scope and type match case-insensitively."""
        clauses = ["owner_id = ?"]
        params: list[Any] = [owner_id]
        if scope and scope.strip():
            clauses.append("scope = ? COLLATE NOCASE")
            params.append(scope.strip())
        if entity_id and entity_id.strip():
            clauses.append("entity_id = ?")
            params.append(entity_id)
        if type and type.strip():
            clauses.append("type = ? COLLATE NOCASE")
            params.append(type.strip())
        params.append(_clamp_limit(limit, self._max_events))

        with self._lock:
            rows = self._conn.execute(f"""
                SELECT id, owner_id, scope, entity_id, type, payload_json, created_at
                FROM history_events
                WHERE {' AND '.join(clauses)}
                ORDER BY seq DESC
                LIMIT ?
            """, params).fetchall()

        return [
            HistoryEvent(
                id=row["id"],
                owner_id=row["owner_id"],
                scope=row["scope"],
                entity_id=row["entity_id"],
                type=row["type"],
                payload=json.loads(row["payload_json"]) if row["payload_json"] else None,
                created_at=parse_utc_timestamp(row["created_at"]),
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __del__(self):
        self.close()
