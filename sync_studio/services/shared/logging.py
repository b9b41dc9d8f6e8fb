"""Structured logging for Sync Studio.

Server routers and the participant-side sync client all log under the
"sync_studio" namespace, so one call controls the whole tree.
"""
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sync_studio.services.shared.config import Config

_ROOT = "sync_studio"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# httpx logs every request at INFO; a polling client would flood the console.
_NOISY_LIBRARIES = ("httpx", "httpcore")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """Configure the sync_studio root logger.

    Args:
        level: Log level string ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL").
        log_file: Optional path to a rotating file log.
        max_bytes: Max size before rotation (default 10 MB).
        backup_count: Number of backup files to keep.

    Raises:
        ValueError: If level is not a valid log level string.
    """
    upper = level.upper()
    if upper not in _VALID_LEVELS:
        raise ValueError(f"Invalid log level: {level!r}. Must be one of {_VALID_LEVELS}")

    numeric = getattr(logging, upper)
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger(_ROOT)
    root.setLevel(numeric)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(numeric)
    console.setFormatter(fmt)
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    root.propagate = False

    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))


def setup_logging_from_config(config: "Config") -> None:
    """Apply the ``logging`` section of the config.

    ``SYNC_STUDIO_LOG_LEVEL`` in the environment wins over the YAML level.
    """
    level = config.get_env("SYNC_STUDIO_LOG_LEVEL") or config.get("logging.level", "INFO")
    log_file = config.get("logging.file")
    setup_logging(level=level, log_file=log_file)


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the sync_studio namespace.

    Args:
        name: Sub-namespace, e.g. "sync.client" -> "sync_studio.sync.client".
              If the name already starts with "sync_studio", it is used as-is.
    """
    if name.startswith(_ROOT):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
