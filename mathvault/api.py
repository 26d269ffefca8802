"""
Core API for the math vault.

The Vault ties the pieces together:
- create/update/patch_*: reconcile payload against the previous item,
  then commit the complete result in one put()
- get_owned/delete: owner-scoped lookups
- list_full/list_summary: filter + recency order (+ optional cap)

The owner id is trusted as given; resolving it from a token is the
caller's job.
"""

import logging
import threading
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import InvalidArgumentError, NotFoundError
from .history import (
    EVENT_CREATE,
    EVENT_DELETE,
    EVENT_UPDATE,
    SCOPE_VAULT,
    HistoryEvent,
)
from .inputs import ItemPatch, MetaPatch, VaultUpsert, unwrap_content
from .protocol import HistoryLogProtocol, RecordStoreProtocol
from .query import filter_items
from .reconcile import (
    build_created,
    merge_content,
    merge_item_patch,
    merge_meta,
    merge_upsert,
)
from .types import VaultItem, VaultItemSummary, to_summary, utc_now

logger = logging.getLogger(__name__)


def _coerce(body: Any, cls: type) -> Any:
    """Accept either a parsed payload or its wire dict."""
    if isinstance(body, cls):
        return body
    if isinstance(body, Mapping):
        return cls.from_dict(body)
    if body is None:
        return cls()
    raise InvalidArgumentError(f"Expected a JSON object, got {type(body).__name__}")


class Vault:
    """
    Multi-tenant store of mathematical objects.

    Every mutation is computed in full before it is stored, so a rejected
    request leaves the store untouched. Concurrent writers to the same item
    are last-write-wins.
    """

    def __init__(
        self,
        record_store: RecordStoreProtocol,
        *,
        history: Optional[HistoryLogProtocol] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        max_results: Optional[int] = None,
    ):
        """
        Args:
            record_store: Owner-partitioned item storage
            history: Optional event log; failures there are logged, not raised
            clock: Source of aware UTC datetimes
            id_factory: Generates new item ids
            max_results: Default cap for listings (None = unlimited)
        """
        self._store = record_store
        self._history = history
        self._clock = clock
        self._new_id = id_factory
        self._max_results = max_results
        self._clock_lock = threading.Lock()
        self._last_now: Optional[datetime] = None
        self._ops_handler: Optional[logging.Handler] = None

    @classmethod
    def open(cls, store_path: Optional[Path] = None) -> "Vault":
        """Open (creating if needed) the configured store at ``store_path``."""
        from .backend import create_stores
        from .config import get_store_path, load_or_create_config
        from .logging_config import configure_ops_log

        path = Path(store_path) if store_path is not None else get_store_path()
        config = load_or_create_config(path)
        bundle = create_stores(config)
        vault = cls(
            bundle.record_store,
            history=bundle.history,
            max_results=config.max_results,
        )
        if bundle.is_local:
            vault._ops_handler = configure_ops_log(path)
        logger.debug("Opened vault at %s (backend=%s)", path, config.backend)
        return vault

    def _now(self) -> datetime:
        """Clock reading that never goes backwards within this vault."""
        with self._clock_lock:
            now = self._clock()
            if self._last_now is not None and now < self._last_now:
                now = self._last_now
            self._last_now = now
            return now

    def _record(self, owner_id: str, event_type: str, item_id: str, payload: Any) -> None:
        if self._history is None:
            return
        try:
            self._history.append(owner_id, SCOPE_VAULT, item_id, event_type, payload)
        except Exception as e:
            logger.warning("History append failed for %s %s: %s", event_type, item_id, e)

    def _commit(self, owner_id: str, item: VaultItem, event_type: str) -> VaultItem:
        self._store.put(owner_id, item)
        self._record(owner_id, event_type, item.id, item.to_dict())
        return item

    # -------------------------------------------------------------------------
    # Write operations
    # -------------------------------------------------------------------------

    def create(self, owner_id: str, body: VaultUpsert | Mapping[str, Any]) -> VaultItem:
        """
        Create a new item with a fresh id.

        Raises:
            InvalidArgumentError: type missing/unknown or a malformed field
        """
        payload = _coerce(body, VaultUpsert)
        now = self._now()
        # Another Vault on the same store may have written a later timestamp
        latest = self._store.latest_updated_at(owner_id)
        if latest is not None and latest > now:
            now = latest
        item = build_created(self._new_id(), owner_id, payload, now)
        self._commit(owner_id, item, EVENT_CREATE)
        logger.info("Created %s %s (owner=%s)", item.type, item.id, owner_id)
        return item

    def update(self, owner_id: str, id: str, body: VaultUpsert | Mapping[str, Any]) -> VaultItem:
        """Full replace; absent fields keep their previous values."""
        payload = _coerce(body, VaultUpsert)
        prev = self.get_owned(owner_id, id)
        item = merge_upsert(prev, payload, self._now())
        self._commit(owner_id, item, EVENT_UPDATE)
        logger.info("Updated %s (owner=%s)", id, owner_id)
        return item

    def patch_meta(self, owner_id: str, id: str, patch: MetaPatch | Mapping[str, Any]) -> VaultItem:
        """Edit title/tags, and formula for equations."""
        payload = _coerce(patch, MetaPatch)
        prev = self.get_owned(owner_id, id)
        item = merge_meta(prev, payload, self._now())
        self._commit(owner_id, item, EVENT_UPDATE)
        logger.info("Updated meta of %s (owner=%s)", id, owner_id)
        return item

    def patch_content(self, owner_id: str, id: str, body: Any) -> VaultItem:
        """Replace content (bare tree or ``{"content": tree}``) and re-sync previews."""
        content = unwrap_content(body)
        prev = self.get_owned(owner_id, id)
        item = merge_content(prev, content, self._now())
        self._commit(owner_id, item, EVENT_UPDATE)
        logger.info(
            "Updated content of %s (owner=%s, content=%s)",
            id, owner_id, type(content).__name__,
        )
        return item

    def patch_item(self, owner_id: str, id: str, patch: VaultUpsert | Mapping[str, Any]) -> VaultItem:
        """Partial update of any subset of item fields."""
        payload = patch if isinstance(patch, VaultUpsert) else _coerce(patch, ItemPatch)
        prev = self.get_owned(owner_id, id)
        item = merge_item_patch(prev, payload, self._now())
        self._commit(owner_id, item, EVENT_UPDATE)
        logger.info("Patched %s (owner=%s, type=%s)", id, owner_id, item.type)
        return item

    def delete(self, owner_id: str, id: str) -> bool:
        """Hard delete. Returns False (no error) when there was nothing to delete."""
        deleted = self._store.delete(owner_id, id)
        if deleted:
            self._record(owner_id, EVENT_DELETE, id, None)
            logger.info("Deleted %s (owner=%s)", id, owner_id)
        else:
            logger.debug("Delete of missing item %s (owner=%s)", id, owner_id)
        return deleted

    # -------------------------------------------------------------------------
    # Read operations
    # -------------------------------------------------------------------------

    def get_owned(self, owner_id: str, id: str) -> VaultItem:
        """
        Fetch one of the owner's items.

        Raises:
            NotFoundError: unknown id, or an id owned by someone else
        """
        item = self._store.get(owner_id, id)
        if item is None:
            logger.debug("Item %s not found for owner %s", id, owner_id)
            raise NotFoundError(id)
        return item

    def _cap(self, items: list, limit: Optional[int]) -> list:
        cap = limit if limit is not None else self._max_results
        if cap is not None and cap > 0:
            return items[:cap]
        return items

    def list_full(
        self,
        owner_id: str,
        tag: Optional[str] = None,
        q: Optional[str] = None,
        *,
        limit: Optional[int] = None,
    ) -> list[VaultItem]:
        """Owner's items matching ``tag`` / ``q``, most recently updated first."""
        items = filter_items(self._store.list_by_owner(owner_id), tag=tag, q=q)
        return self._cap(items, limit)

    def list_summary(
        self,
        owner_id: str,
        tag: Optional[str] = None,
        q: Optional[str] = None,
        *,
        limit: Optional[int] = None,
    ) -> list[VaultItemSummary]:
        """Like list_full, without content or links."""
        return [to_summary(it) for it in self.list_full(owner_id, tag, q, limit=limit)]

    def history(
        self,
        owner_id: str,
        *,
        scope: Optional[str] = None,
        entity_id: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 50,
    ) -> list[HistoryEvent]:
        """Owner's history events, newest first (empty when history is off)."""
        if self._history is None:
            return []
        return self._history.query(
            owner_id, scope=scope, entity_id=entity_id, type=type, limit=limit,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        self._store.close()
        if self._history is not None:
            self._history.close()
        if self._ops_handler is not None:
            logging.getLogger("mathvault").removeHandler(self._ops_handler)
            self._ops_handler.close()
            self._ops_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
