"""Logging configuration for the sessiongen service."""

from __future__ import annotations

import logging
from pathlib import Path

_logger: logging.Logger | None = None


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Configure the `sessiongen` logger once (console plus optional file)."""
    global _logger

    if _logger is not None:
        return _logger

    logger = logging.getLogger("sessiongen")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    # 2025-01-27 10:30:45 [INFO] sessiongen.coordinator: message
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    formatter.datefmt = "%Y-%m-%d %H:%M:%S"

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is not None:
        _logger.handlers.clear()
        _logger.propagate = True
        _logger = None
