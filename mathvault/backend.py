"""
Pluggable storage backend factory.

Creates the record store and history log based on configuration. Built-in
backends are ``sqlite`` (files in the store directory) and ``memory``.
External backends register via the ``mathvault.backends`` entry point group.

External backend packages provide a factory function::

    def create_stores(config: StoreConfig) -> StoreBundle:
        ...

and register it in their pyproject.toml::

    [project.entry-points."mathvault.backends"]
    my-backend = "my_package.backend:create_stores"
"""

from typing import NamedTuple, Optional

from .config import StoreConfig
from .protocol import HistoryLogProtocol, RecordStoreProtocol


class StoreBundle(NamedTuple):
    """Collection of storage backends returned by the factory."""
    record_store: RecordStoreProtocol
    history: Optional[HistoryLogProtocol]  # None when history is disabled
    is_local: bool  # True for filesystem-backed stores


def create_stores(config: StoreConfig) -> StoreBundle:
    """
    Create storage backends from configuration.

    For other values than ``sqlite`` / ``memory``, loads the backend via the
    ``mathvault.backends`` entry point group.
    """
    if config.backend == "sqlite":
        return _create_sqlite_stores(config)
    if config.backend == "memory":
        return _create_memory_stores(config)
    return _load_backend(config.backend, config)


def _create_sqlite_stores(config: StoreConfig) -> StoreBundle:
    """Create the default file-backed stores."""
    from .history import SqliteHistoryLog
    from .store import SqliteRecordStore

    history = None
    if config.history_enabled:
        history = SqliteHistoryLog(config.path / "history.db", max_events=config.max_events)

    return StoreBundle(
        record_store=SqliteRecordStore(config.path / "vault.db"),
        history=history,
        is_local=True,
    )


def _create_memory_stores(config: StoreConfig) -> StoreBundle:
    from .history import MemoryHistoryLog
    from .store import MemoryRecordStore

    history = None
    if config.history_enabled:
        history = MemoryHistoryLog(max_events=config.max_events)

    return StoreBundle(
        record_store=MemoryRecordStore(),
        history=history,
        is_local=False,
    )


def _load_backend(name: str, config: StoreConfig) -> StoreBundle:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="mathvault.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Available: sqlite, memory, {', '.join(available)}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. Built-in backends are 'sqlite' and 'memory'."
    )
