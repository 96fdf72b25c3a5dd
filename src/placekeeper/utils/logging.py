"""Logging setup shared by the desktop app and the settings surface."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging", "LOG_FILENAME"]

LOG_FILENAME = "placekeeper.log"
_DEFAULT_LOG_DIR = Path.home() / ".placekeeper" / "logs"
_LOG_DIR_ENV = "PLACEKEEPER_LOG_DIR"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "qasync")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_active_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Send records to a rotating ``placekeeper.log`` and, optionally, stderr.

    Calling again without ``force`` keeps the existing configuration and
    returns its log path. The directory comes from ``log_dir``, then
    ``PLACEKEEPER_LOG_DIR``, then ``~/.placekeeper/logs``.
    """

    global _active_log_path
    if _active_log_path is not None and not force:
        return _active_log_path

    directory = Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME

    formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    # asyncio/qasync chatter stays at WARNING even when debugging.
    noisy_level = max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    _active_log_path = log_path
    return log_path
