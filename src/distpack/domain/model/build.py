"""Payloads attached to graph nodes while a package is built.

Every payload is frozen; stages produce updated copies with ``evolve`` and hand
them back to the graph store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from .entry_point import bundle_relative_path
from .enums import Lifecycle, ModuleFormat

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from .entry_point import EntryPoint
    from .package import Package


@dataclass(frozen=True, slots=True, kw_only=True)
class EntryPointResult:
    module_id: str
    status: Lifecycle
    stage: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PackageData:
    """Payload of the package node; build results are appended by the orchestrator."""

    package: Package
    results: tuple[EntryPointResult, ...] = ()

    def with_result(self, result: EntryPointResult) -> PackageData:
        return PackageData(package=self.package, results=(*self.results, result))


@dataclass(frozen=True, slots=True, kw_only=True)
class EntryPointBuild:
    """Build state of one entry point, accumulated stage by stage."""

    entry_point: EntryPoint
    stage_dir: Path
    out_dir: Path
    source_files: frozenset[Path] = frozenset()
    stylesheets: Mapping[Path, Path] = field(default_factory=dict["Path", "Path"])
    templates: Mapping[Path, Path] = field(default_factory=dict["Path", "Path"])
    sources: tuple[Path, ...] = ()
    es2015: Path | None = None
    typings: Path | None = None
    metadata: Path | None = None
    bundles: Mapping[ModuleFormat, Path] = field(default_factory=dict[ModuleFormat, "Path"])
    source_maps: tuple[Path, ...] = ()

    @property
    def module_id(self) -> str:
        return self.entry_point.module_id

    def staged_bundle(self, module_format: ModuleFormat) -> Path:
        """Where the bundler writes ``module_format`` inside the staging directory."""

        flat = self.entry_point.flat_module_file
        return self.stage_dir / bundle_relative_path(flat, module_format)

    def evolve(self, **changes: Any) -> EntryPointBuild:
        return replace(self, **changes)


@dataclass(frozen=True, slots=True, kw_only=True)
class ArtefactSet:
    """Files published for one entry point once its pipeline has completed."""

    module_id: str
    bundles: Mapping[ModuleFormat, Path]
    typings: Path
    manifest: Path
    tarball: Path
    metadata: Path | None = None
    manifest_fields: Mapping[str, str] = field(default_factory=dict[str, str])

    @property
    def paths(self) -> tuple[Path, ...]:
        declared = [*self.bundles.values(), self.typings, self.manifest, self.tarball]
        if self.metadata is not None:
            declared.append(self.metadata)
        return tuple(declared)

    def missing_paths(self) -> tuple[Path, ...]:
        return tuple(path for path in self.paths if not path.exists())
