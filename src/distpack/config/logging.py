"""Logging setup for the distpack command line."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Configure the root logger for build output.

    Stage and entry point progress is logged at INFO, staging details at DEBUG.
    Calling this again is a no-op unless ``force`` is set.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=force)


def parse_log_level(value: str) -> int:
    """Translate a level name such as ``debug`` into a ``logging`` constant."""

    level = logging.getLevelNamesMapping().get(value.strip().upper())
    if level is None:
        raise ValueError(f"Unknown log level: {value}")
    return level
