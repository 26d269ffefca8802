"""
Configuration management for vault stores.

The configuration is stored as a TOML file in the store directory.
It selects the storage backend and the history/query limits.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w


CONFIG_FILENAME = "mathvault.toml"
CONFIG_VERSION = 1

DEFAULT_BACKEND = "sqlite"
DEFAULT_MAX_EVENTS = 200
DEFAULT_MAX_RESULTS = 500


def get_store_path() -> Path:
    """Store directory: MATHVAULT_STORE_PATH, else ~/.mathvault."""
    env = os.environ.get("MATHVAULT_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".mathvault"


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # "sqlite", "memory", or a name registered under mathvault.backends
    backend: str = DEFAULT_BACKEND

    history_enabled: bool = True
    max_events: int = DEFAULT_MAX_EVENTS

    # Listing cap applied by the boundary (None = unlimited)
    max_results: int | None = DEFAULT_MAX_RESULTS

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    history = data.get("history", {})
    query = data.get("query", {})

    # Validate version
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    max_events = history.get("max_events", DEFAULT_MAX_EVENTS)
    if not isinstance(max_events, int) or max_events < 1:
        raise ValueError(f"history.max_events must be a positive integer, got {max_events!r}")

    # 0 in the file means "no cap"
    max_results = query.get("max_results", DEFAULT_MAX_RESULTS)
    if not isinstance(max_results, int) or max_results < 0:
        raise ValueError(f"query.max_results must be a non-negative integer, got {max_results!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=store.get("backend", DEFAULT_BACKEND),
        history_enabled=bool(history.get("enabled", True)),
        max_events=max_events,
        max_results=max_results or None,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
        },
        "history": {
            "enabled": config.history_enabled,
            "max_events": config.max_events,
        },
        "query": {
            "max_results": config.max_results or 0,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
