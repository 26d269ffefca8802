"""
Error types and error logging for mathvault.

The core raises NotFoundError / InvalidArgumentError; the CLI turns them into
clean messages and logs anything unexpected with a full traceback.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class VaultError(Exception):
    """Base class for errors raised by the vault core."""


class NotFoundError(VaultError, LookupError):
    """Item id is unknown, or belongs to a different owner.

    The two cases are deliberately not distinguished.
    """

    def __init__(self, item_id: str):
        super().__init__(f"Vault item not found: {item_id}")
        self.item_id = item_id


class InvalidArgumentError(VaultError, ValueError):
    """Rejected input (bad type, malformed field). Raised before any mutation."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting MATHVAULT_STORE_PATH."""
    store = os.environ.get("MATHVAULT_STORE_PATH")
    if store:
        return Path(store) / "mathvault-errors.log"
    return Path.home() / ".mathvault" / "mathvault-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.write(traceback.format_exc())
    except OSError:
        pass  # Best effort; never crash over the error log
    return log_path
