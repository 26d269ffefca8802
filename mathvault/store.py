"""
Record stores for vault items.

Both backends partition strictly by owner: every call takes the owner id
and only ever reads or writes that owner's rows. Items are stored and
returned as snapshots, so mutating a returned item's content never leaks
back into the store.
"""

import copy
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import InvalidArgumentError
from .types import VaultItem, format_timestamp, parse_utc_timestamp


def _check_owner(owner_id: str, item: VaultItem) -> None:
    if item.owner_id != owner_id:
        raise InvalidArgumentError(
            f"Item {item.id} belongs to a different owner than the target partition"
        )


class MemoryRecordStore:
    """
    In-process store: owner_id -> (item_id -> item).

    A single lock guards the partitions. Items are deep-copied on the way
    in and out.
    """

    def __init__(self):
        self._partitions: dict[str, dict[str, VaultItem]] = {}
        self._lock = threading.Lock()

    def get(self, owner_id: str, id: str) -> Optional[VaultItem]:
        with self._lock:
            item = self._partitions.get(owner_id, {}).get(id)
        return copy.deepcopy(item) if item is not None else None

    def put(self, owner_id: str, item: VaultItem) -> None:
        _check_owner(owner_id, item)
        snapshot = copy.deepcopy(item)
        with self._lock:
            self._partitions.setdefault(owner_id, {})[item.id] = snapshot

    def delete(self, owner_id: str, id: str) -> bool:
        with self._lock:
            partition = self._partitions.get(owner_id)
            if partition is None:
                return False
            return partition.pop(id, None) is not None

    def list_by_owner(self, owner_id: str) -> list[VaultItem]:
        with self._lock:
            items = list(self._partitions.get(owner_id, {}).values())
        return copy.deepcopy(items)

    def count(self, owner_id: str) -> int:
        with self._lock:
            return len(self._partitions.get(owner_id, {}))

    def latest_updated_at(self, owner_id: str) -> Optional[datetime]:
        with self._lock:
            items = self._partitions.get(owner_id, {}).values()
            return max((it.updated_at for it in items), default=None)

    def close(self) -> None:
        pass


class SqliteRecordStore:
    """
    SQLite-backed store.

    One row per item keyed by (owner_id, id); the flat projection of the
    item is kept as JSON. WAL mode plus a busy timeout lets several
    processes share the file.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS vault_items (
                owner_id TEXT NOT NULL,
                id TEXT NOT NULL,
                type TEXT NOT NULL,
                data_json TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (owner_id, id)
            )
        """)

        # Index for recency listing within a partition
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_vault_items_updated
            ON vault_items(owner_id, updated_at)
        """)

        self._conn.commit()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> VaultItem:
        return VaultItem.from_dict(json.loads(row["data_json"]))

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, owner_id: str, item: VaultItem) -> None:
        """Insert or replace an item in the owner's partition."""
        _check_owner(owner_id, item)
        data_json = json.dumps(item.to_dict(), ensure_ascii=False)
        with self._lock:
            self._conn.execute("""
                INSERT OR REPLACE INTO vault_items
                (owner_id, id, type, data_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (owner_id, item.id, item.type, data_json,
                  format_timestamp(item.updated_at)))
            self._conn.commit()

    def delete(self, owner_id: str, id: str) -> bool:
        """
        Delete an item.

        Returns:
            True if the item existed in this owner's partition
        """
        with self._lock:
            cursor = self._conn.execute("""
                DELETE FROM vault_items
                WHERE owner_id = ? AND id = ?
            """, (owner_id, id))
            self._conn.commit()
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, owner_id: str, id: str) -> Optional[VaultItem]:
        with self._lock:
            row = self._conn.execute("""
                SELECT data_json FROM vault_items
                WHERE owner_id = ? AND id = ?
            """, (owner_id, id)).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def list_by_owner(self, owner_id: str) -> list[VaultItem]:
        with self._lock:
            rows = self._conn.execute("""
                SELECT data_json FROM vault_items
                WHERE owner_id = ?
                ORDER BY updated_at DESC, id
            """, (owner_id,)).fetchall()
        return [self._row_to_item(row) for row in rows]

    def count(self, owner_id: str) -> int:
        with self._lock:
            row = self._conn.execute("""
                SELECT COUNT(*) FROM vault_items
                WHERE owner_id = ?
            """, (owner_id,)).fetchone()
        return row[0]

    def latest_updated_at(self, owner_id: str) -> Optional[datetime]:
        with self._lock:
            row = self._conn.execute("""
                SELECT MAX(updated_at) FROM vault_items
                WHERE owner_id = ?
            """, (owner_id,)).fetchone()
        return parse_utc_timestamp(row[0]) if row[0] else None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
