"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values or files are absent or blank."""


class CyclicEntryPointError(ConfigurationError):
    """Raised when secondary entry points depend on each other in a cycle."""

    def __init__(self, cycle: tuple[str, ...]) -> None:
        self.cycle = cycle
        super().__init__(f"Cyclic dependency between entry points: {' -> '.join(cycle)}")
