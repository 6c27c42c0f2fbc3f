"""Application configuration helpers.

The package loader lives in ``distpack.config.package``; it is not re-exported
here because it depends on the domain model, which itself uses these errors.
"""

from __future__ import annotations

from .env import optional_env_var, optional_float_env_var
from .errors import ConfigurationError, CyclicEntryPointError, MissingConfigurationError
from .logging import configure_logging, parse_log_level
from .settings import BuildSettings, get_build_settings

__all__ = [
    "BuildSettings",
    "ConfigurationError",
    "CyclicEntryPointError",
    "MissingConfigurationError",
    "configure_logging",
    "get_build_settings",
    "optional_env_var",
    "optional_float_env_var",
    "parse_log_level",
]
