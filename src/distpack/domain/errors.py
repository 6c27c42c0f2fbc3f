"""Error taxonomy of the build engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from distpack.config.errors import (
    ConfigurationError,
    CyclicEntryPointError,
    MissingConfigurationError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

__all__ = [
    "AmbiguousError",
    "BundleError",
    "CompileError",
    "ConfigurationError",
    "CyclicEntryPointError",
    "DependencyPolicyError",
    "Diagnostic",
    "DuplicateNodeError",
    "GraphError",
    "InvalidTransitionError",
    "MissingConfigurationError",
    "NotFoundError",
    "PreconditionError",
    "RenderError",
    "StageError",
]


class GraphError(RuntimeError):
    """Base class for build graph store violations."""


class DuplicateNodeError(GraphError):
    """Raised when inserting a node whose identifier is already taken."""


class NotFoundError(GraphError):
    """Raised when a lookup matches no node."""


class AmbiguousError(GraphError):
    """Raised when ``find`` matches more than one node."""


class InvalidTransitionError(GraphError):
    """Raised when a node's lifecycle tag would move backwards."""


class PreconditionError(RuntimeError):
    """A stage found no node in the lifecycle state it requires.

    This signals a mis-sequenced pipeline (a programming error), not a user error.
    """


class StageError(RuntimeError):
    """A named pipeline stage failed for one entry point.

    The underlying exception is available as ``cause`` and ``__cause__``.
    """

    def __init__(self, stage: str, module_id: str | None, cause: BaseException) -> None:
        self.stage = stage
        self.module_id = module_id
        self.cause = cause
        target = module_id or "<no entry point>"
        super().__init__(f"Stage '{stage}' failed for {target}: {cause}")

    @property
    def is_precondition_failure(self) -> bool:
        return isinstance(self.cause, PreconditionError)


class RenderError(RuntimeError):
    """A stylesheet or template could not be rendered."""


@dataclass(frozen=True, slots=True)
class Diagnostic:
    file: Path | None
    line: int | None
    column: int | None
    message: str

    def __str__(self) -> str:
        if self.file is None:
            return self.message
        location = str(self.file)
        if self.line is not None:
            location += f":{self.line}"
            if self.column is not None:
                location += f":{self.column}"
        return f"{location} - {self.message}"


class CompileError(RuntimeError):
    """The source compiler reported errors."""

    def __init__(self, message: str, diagnostics: Sequence[Diagnostic] = ()) -> None:
        self.diagnostics = tuple(diagnostics)
        details = "".join(f"\n  {diagnostic}" for diagnostic in self.diagnostics)
        super().__init__(f"{message}{details}")


class BundleError(RuntimeError):
    """A module-format variant could not be derived from the canonical output."""


class DependencyPolicyError(RuntimeError):
    """A non-peer dependency is not explicitly whitelisted."""

    def __init__(self, dependency: str, section: str = "dependencies") -> None:
        self.dependency = dependency
        self.section = section
        super().__init__(f"Dependency {dependency} must be explicitly whitelisted.")
