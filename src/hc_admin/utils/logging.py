"""Logging configuration."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from hc_admin import constants
from hc_admin.utils.pathing import ensure_runtime_directories


def setup_logging(level: int = logging.INFO, console_level: int = logging.WARNING) -> None:
    """Configure root logging with console + file handlers."""
    ensure_runtime_directories()
    log_file = constants.LOG_DIR / constants.LOG_FILE_NAME

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_level)

    file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=5)
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(min(level, console_level))
    root.handlers.clear()
    root.addHandler(console_handler)
    root.addHandler(file_handler)
