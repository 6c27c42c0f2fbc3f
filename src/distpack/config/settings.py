"""Runtime settings for build and watch runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var, optional_float_env_var
from .errors import ConfigurationError
from .logging import parse_log_level

DEFAULT_POLL_INTERVAL: Final[float] = 1.0


@dataclass(frozen=True, slots=True)
class BuildSettings:
    log_level: int = logging.INFO
    working_directory: Path | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL


def get_build_settings() -> BuildSettings:
    """Read ``DISTPACK_*`` environment variables into a ``BuildSettings``."""

    log_level = logging.INFO
    raw_level = optional_env_var("DISTPACK_LOG_LEVEL")
    if raw_level is not None:
        try:
            log_level = parse_log_level(raw_level)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    raw_working_dir = optional_env_var("DISTPACK_WORKING_DIRECTORY")
    working_directory = Path(raw_working_dir) if raw_working_dir else None

    poll_interval = optional_float_env_var("DISTPACK_POLL_INTERVAL")
    if poll_interval is None:
        poll_interval = DEFAULT_POLL_INTERVAL
    elif poll_interval <= 0:
        raise ConfigurationError("DISTPACK_POLL_INTERVAL must be greater than zero")

    return BuildSettings(
        log_level=log_level,
        working_directory=working_directory,
        poll_interval=poll_interval,
    )
