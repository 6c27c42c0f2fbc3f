"""The library package being built."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from distpack.config.errors import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

    from .entry_point import EntryPoint

DEFAULT_DEST = "dist"
DEFAULT_WORKING_DIRECTORY = ".distpack_build"


@dataclass(frozen=True, slots=True, kw_only=True)
class Package:
    """One library package: a primary entry point plus its secondaries.

    ``entry_points`` keeps declaration order with the primary first.
    """

    base_path: Path
    dest: Path
    working_directory: Path
    entry_points: tuple[EntryPoint, ...]
    whitelisted_non_peer_dependencies: tuple[str, ...] = ()
    keep_lifecycle_scripts: bool = False
    delete_dest_path: bool = True

    def __post_init__(self) -> None:
        if not self.entry_points:
            raise ConfigurationError(f"Package at {self.base_path} declares no entry points")
        primaries = [ep for ep in self.entry_points if not ep.is_secondary]
        if len(primaries) != 1:
            raise ConfigurationError(
                f"Package must have exactly one primary entry point, found {len(primaries)}"
            )
        if self.entry_points[0].is_secondary:
            raise ConfigurationError("The primary entry point must be declared first")

        seen: set[str] = set()
        for entry_point in self.entry_points:
            if entry_point.module_id in seen:
                raise ConfigurationError(
                    f"Duplicate entry point module id: {entry_point.module_id}"
                )
            seen.add(entry_point.module_id)

    @property
    def name(self) -> str:
        return self.primary.module_id

    @property
    def primary(self) -> EntryPoint:
        return self.entry_points[0]

    @property
    def secondaries(self) -> tuple[EntryPoint, ...]:
        return self.entry_points[1:]

    @property
    def module_ids(self) -> tuple[str, ...]:
        return tuple(ep.module_id for ep in self.entry_points)

    def entry_point(self, module_id: str) -> EntryPoint:
        for entry_point in self.entry_points:
            if entry_point.module_id == module_id:
                return entry_point
        raise KeyError(module_id)

    def stage_dir(self, entry_point: EntryPoint) -> Path:
        return self.working_directory / entry_point.flat_module_file / "stage"

    def out_dir(self, entry_point: EntryPoint) -> Path:
        return self.working_directory / entry_point.flat_module_file / "out"
