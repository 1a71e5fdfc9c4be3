"""
Logging configuration for treekeep.

Library modules log through ``logging.getLogger(__name__)`` and stay quiet
unless the host configures handlers. The CLI turns on debug output with
--verbose, and every library instance keeps an operations log in its data
directory.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
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

    logging.getLogger("treekeep").setLevel(logging.DEBUG)


def configure_ops_log(data_dir):
    """Configure a persistent operations log for a data directory.

    Writes to {data_dir}/treekeep-ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so it can be removed on close().
    """
    log_path = Path(data_dir) / "treekeep-ops.log"
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

    treekeep_logger = logging.getLogger("treekeep")
    treekeep_logger.addHandler(handler)
    # Let INFO through even when nothing else configured the logger
    if treekeep_logger.level == logging.NOTSET or treekeep_logger.level > logging.INFO:
        treekeep_logger.setLevel(logging.INFO)

    return handler
