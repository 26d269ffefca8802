"""
Protocol definitions for the vault's storage backends.

Defines the contracts the Vault depends on, so the backing implementation
(in-memory, SQLite, or an external service registered as a backend) can be
swapped without touching reconciliation:

- RecordStoreProtocol: owner-partitioned item storage
- HistoryLogProtocol: append-only event log
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from .history import HistoryEvent
from .types import VaultItem


@runtime_checkable
class RecordStoreProtocol(Protocol):
    """
    Owner-partitioned key/value storage of vault items.

    No operation may observe or mutate another owner's partition. Writes
    to the same key are last-write-wins; there is no version check.

    Implemented by:
    - MemoryRecordStore (process-local dict of dicts)
    - SqliteRecordStore (single SQLite file)
    """

    def get(self, owner_id: str, id: str) -> Optional[VaultItem]: ...

    def put(self, owner_id: str, item: VaultItem) -> None: ...

    def delete(self, owner_id: str, id: str) -> bool: ...

    def list_by_owner(self, owner_id: str) -> list[VaultItem]: ...

    def count(self, owner_id: str) -> int: ...

    def latest_updated_at(self, owner_id: str) -> Optional[datetime]:
        """Newest ``updated_at`` in the owner's partition, None when empty."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class HistoryLogProtocol(Protocol):
    """
    Append-only, most-recent-first event log.

    Implemented by:
    - MemoryHistoryLog
    - SqliteHistoryLog
    """

    def append(
        self,
        owner_id: str,
        scope: str,
        entity_id: str,
        type: str,
        payload: Any = None,
    ) -> HistoryEvent: ...

    def query(
        self,
        owner_id: str,
        *,
        scope: Optional[str] = None,
        entity_id: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 50,
    ) -> list[HistoryEvent]: ...

    def close(self) -> None: ...
