"""The write-package stage: publish one entry point into the destination.

Staged bundles, typings and metadata are copied into the distribution
directory, a ``package.json`` pointing at them is written next to the typings,
and the entry point directory is packed into a ``.tgz``.

The stage is transactional. Every file it writes is recorded, and when any
step fails (most commonly an unwhitelisted dependency) the recorded files are
deleted again so no half-written entry point is left behind.
"""

from __future__ import annotations

import copy
import os
import re
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

from distpack.domain.errors import DependencyPolicyError, PreconditionError
from distpack.domain.graph import EdgeKind, Node
from distpack.domain.model import BUNDLE_DIRECTORIES, ArtefactSet, ModuleFormat
from distpack.domain.pipeline import (
    WRITE_PACKAGE,
    SideEffect,
    Transform,
    require_entry_point_in_progress,
    require_package,
)

from .filesystem import copy_files, pack_tarball, prune_empty_dirs, remove_tree, write_json

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from distpack.domain.graph import BuildGraph
    from distpack.domain.model import EntryPoint, EntryPointBuild, Package

log = getLogger(__name__)

# manifest pointer -> module format it points at
_POINTER_FORMATS: dict[str, ModuleFormat] = {
    "main": ModuleFormat.UMD,
    "module": ModuleFormat.FESM5,
    "es2015": ModuleFormat.FESM2015,
}
_CONFIG_KEY = "distpack"


@dataclass(slots=True)
class WriteTransaction:
    """Record of files written by one stage run, undone by ``rollback``."""

    entry_point: EntryPoint
    preserved: tuple[Path, ...] = ()
    written: list[Path] = field(default_factory=list[Path])

    def record(self, paths: Iterable[Path]) -> None:
        self.written.extend(paths)

    def rollback(self) -> None:
        log.warning(
            "Rolling back %s written file(s) of %s", len(self.written), self.entry_point.module_id
        )
        for path in reversed(self.written):
            if path.is_file():
                path.unlink()
        package_root = self.entry_point.package_destination
        for directory in sorted({path.parent for path in self.written}, reverse=True):
            prune_empty_dirs(directory, package_root)

        destination = self.entry_point.destination_path
        if self.entry_point.is_secondary:
            remove_tree(destination, keep=self.preserved)
        else:
            prune_empty_dirs(destination, destination)
        self.written.clear()


def _posix_relative(path: Path, start: Path) -> str:
    return Path(os.path.relpath(path, start)).as_posix()


def manifest_pointers(build: EntryPointBuild) -> dict[str, str]:
    """Pointers merged into ``package.json``, relative to the entry point destination."""

    entry_point = build.entry_point
    files = entry_point.destination_files
    start = entry_point.destination_path
    pointers: dict[str, str] = {}
    for key, module_format in _POINTER_FORMATS.items():
        if module_format in build.bundles:
            pointers[key] = _posix_relative(files.bundle(module_format), start)
    pointers["typings"] = _posix_relative(files.declarations, start)
    if build.metadata is not None:
        pointers["metadata"] = _posix_relative(files.metadata, start)
    return pointers


def build_manifest(
    entry_point: EntryPoint,
    pointers: Mapping[str, str],
    *,
    keep_lifecycle_scripts: bool = False,
) -> dict[str, Any]:
    """Derive the published ``package.json`` of ``entry_point``.

    Keys of the source ``package.json`` keep their order; new keys are appended.
    """

    manifest: dict[str, Any] = copy.deepcopy(dict(entry_point.package_json))
    manifest.update(pointers)
    manifest["sideEffects"] = entry_point.side_effects

    if not keep_lifecycle_scripts:
        if "scripts" in manifest:
            log.info(
                "Removing scripts section of %s; lifecycle scripts are not published",
                entry_point.module_id,
            )
        manifest.pop("scripts", None)
    else:
        log.warning(
            "keepLifecycleScripts is enabled: the scripts section of %s will be published",
            entry_point.module_id,
        )

    manifest.pop(_CONFIG_KEY, None)
    manifest["name"] = entry_point.module_id
    return manifest


def check_non_peer_dependencies(
    manifest: Mapping[str, Any], whitelist: Iterable[str], section: str = "dependencies"
) -> None:
    """Raise ``DependencyPolicyError`` for the first dependency no whitelist pattern matches."""

    dependencies = manifest.get(section)
    if not isinstance(dependencies, dict):
        return
    patterns = [re.compile(value) for value in whitelist]
    for dependency in dependencies:  # pyright: ignore[reportUnknownVariableType]
        name = str(dependency)  # pyright: ignore[reportUnknownArgumentType]
        if any(pattern.search(name) for pattern in patterns):
            log.debug("Dependency %s is whitelisted in '%s'", name, section)
            continue
        log.warning(
            "Distributing packages with '%s' is not recommended; move %s to 'peerDependencies' "
            "or add it to whitelistedNonPeerDependencies",
            section,
            name,
        )
        raise DependencyPolicyError(name, section)


def tarball_path(entry_point: EntryPoint) -> Path:
    destination = entry_point.destination_path
    return destination.with_name(f"{destination.name}.tgz")


def nested_outputs(entry_point: EntryPoint, package: Package) -> tuple[Path, ...]:
    """Destination directories and tarballs of entry points published inside ``entry_point``."""

    destination = entry_point.destination_path
    nested: list[Path] = []
    for other in package.entry_points:
        other_destination = other.destination_path
        if other_destination != destination and other_destination.is_relative_to(destination):
            nested.extend((other_destination, tarball_path(other)))
    return tuple(nested)


def foreign_bundles(entry_point: EntryPoint, package: Package) -> tuple[Path, ...]:
    """Bundles and source maps of the other entry points of ``package``."""

    paths: list[Path] = []
    for other in package.entry_points:
        if other.module_id == entry_point.module_id:
            continue
        files = other.destination_files
        for module_format in ModuleFormat:
            bundle = files.bundle(module_format)
            paths.extend((bundle, bundle.with_name(f"{bundle.name}.map")))
    return tuple(paths)


def _write_package(graph: BuildGraph) -> BuildGraph:
    node = require_entry_point_in_progress(graph, WRITE_PACKAGE)
    package: Package = require_package(graph, WRITE_PACKAGE).data.package
    build = node.data
    entry_point = build.entry_point
    if build.typings is None:
        raise PreconditionError(f"No type declarations were compiled for {entry_point.module_id}")

    transaction = WriteTransaction(entry_point, preserved=nested_outputs(entry_point, package))
    try:
        artefacts = _publish(build, package, transaction)
    except BaseException:
        transaction.rollback()
        raise

    artefact_node = Node.for_artefacts(artefacts)
    graph.insert(artefact_node)
    graph.connect(node.id, artefact_node.id, EdgeKind.PRODUCES)
    log.info("Built %s", entry_point.module_id)
    return graph


def _publish(
    build: EntryPointBuild, package: Package, transaction: WriteTransaction
) -> ArtefactSet:
    entry_point = build.entry_point
    files = entry_point.destination_files

    log.info("Copying staged files of %s", entry_point.module_id)
    copy_files(entry_point.source_root, ["**/*.d.ts"], build.out_dir)
    for directory in BUNDLE_DIRECTORIES:
        transaction.record(
            copy_files(
                build.stage_dir / directory,
                ["**/*.js", "**/*.js.map"],
                entry_point.package_destination / directory,
            )
        )
    transaction.record(
        copy_files(build.out_dir, ["**/*.d.ts", "**/*.metadata.json"], entry_point.destination_path)
    )

    log.info("Writing package metadata of %s", entry_point.module_id)
    pointers = manifest_pointers(build)
    manifest = build_manifest(
        entry_point, pointers, keep_lifecycle_scripts=package.keep_lifecycle_scripts
    )
    check_non_peer_dependencies(manifest, package.whitelisted_non_peer_dependencies)
    manifest_path = entry_point.destination_path / "package.json"
    transaction.record([write_json(manifest_path, manifest)])

    log.info("Creating package .tgz of %s", entry_point.module_id)
    tarball = tarball_path(entry_point)
    excluded = (*nested_outputs(entry_point, package), *foreign_bundles(entry_point, package))
    transaction.record([pack_tarball(entry_point.destination_path, tarball, exclude=excluded)])

    artefacts = ArtefactSet(
        module_id=entry_point.module_id,
        bundles={fmt: files.bundle(fmt) for fmt in ModuleFormat if fmt in build.bundles},
        typings=files.declarations,
        manifest=manifest_path,
        tarball=tarball,
        metadata=files.metadata if build.metadata is not None else None,
        manifest_fields=pointers,
    )
    missing = artefacts.missing_paths()
    if missing:
        raise FileNotFoundError(
            f"Artefacts of {entry_point.module_id} were not written: "
            + ", ".join(str(path) for path in missing)
        )
    return artefacts


def write_package_transform() -> Transform:
    return Transform(
        name=WRITE_PACKAGE,
        fn=_write_package,
        side_effects=frozenset({SideEffect.FILESYSTEM}),
    )
