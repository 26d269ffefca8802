"""
Logging configuration for mathvault.

Quiet by default; ``--verbose`` or MATHVAULT_VERBOSE=1 switches to debug
output on stderr. Stores opened from the CLI also keep an operations log.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "mathvault-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Keep library chatter out of CLI output.

    Args:
        quiet: If True, suppress warnings and drop the package logger to
            WARNING. If False, leave everything as it is.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("mathvault").setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("mathvault").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a vault store.

    Writes to {store_path}/mathvault-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    log_path = Path(store_path) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    vault_logger = logging.getLogger("mathvault")
    vault_logger.addHandler(handler)
    # Let INFO through to the file even in quiet mode
    if vault_logger.level == logging.NOTSET or vault_logger.level > logging.INFO:
        vault_logger.setLevel(logging.INFO)

    return handler
