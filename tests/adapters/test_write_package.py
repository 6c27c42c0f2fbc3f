from __future__ import annotations

import asyncio
import json
import logging
import tarfile
from typing import TYPE_CHECKING

import pytest

from distpack.adapters import write_package_transform
from distpack.adapters.write_package import build_manifest, check_non_peer_dependencies
from distpack.domain.errors import DependencyPolicyError, PreconditionError
from distpack.domain.graph import BuildGraph, EdgeKind, Node
from distpack.domain.model import (
    EntryPoint,
    EntryPointBuild,
    Lifecycle,
    ModuleFormat,
    Package,
    PackageData,
)

from tests.support.builds import make_package

if TYPE_CHECKING:
    from pathlib import Path


def _staged_build(
    package: Package, index: int = 0, formats: tuple[ModuleFormat, ...] = tuple(ModuleFormat)
) -> EntryPointBuild:
    """Lay out compiler output and bundles as the earlier stages would."""

    entry_point = package.entry_points[index]
    build = EntryPointBuild(
        entry_point=entry_point,
        stage_dir=package.stage_dir(entry_point),
        out_dir=package.out_dir(entry_point),
    )
    flat = entry_point.flat_module_file
    build.out_dir.mkdir(parents=True)
    typings = build.out_dir / f"{flat}.d.ts"
    typings.write_text("export declare const core: number;\n")
    bundles: dict[ModuleFormat, Path] = {}
    for module_format in formats:
        bundle = build.staged_bundle(module_format)
        bundle.parent.mkdir(parents=True, exist_ok=True)
        bundle.write_text(f"/* {module_format} */\n")
        bundles[module_format] = bundle
    return build.evolve(typings=typings, bundles=bundles)


def _graph(package: Package, build: EntryPointBuild) -> BuildGraph:
    graph = BuildGraph()
    graph.insert(Node.for_package(PackageData(package), Lifecycle.IN_PROGRESS))
    graph.insert(Node.for_entry_point(build, Lifecycle.IN_PROGRESS))
    return graph


def test_write_package_publishes_primary(project_root: Path) -> None:
    package = make_package(
        project_root,
        package_json={"version": "1.2.0", "scripts": {"postinstall": "x"}, "distpack": {}},
    )
    build = _staged_build(package)
    graph = _graph(package, build)

    asyncio.run(write_package_transform()(graph))

    dest = project_root / "dist"
    manifest = json.loads((dest / "package.json").read_text())
    assert manifest == {
        "name": "@acme/widgets",
        "version": "1.2.0",
        "main": "bundles/acme-widgets.umd.js",
        "module": "esm5/acme-widgets.js",
        "es2015": "esm2015/acme-widgets.js",
        "typings": "acme-widgets.d.ts",
        "sideEffects": False,
    }
    assert (dest / "bundles" / "acme-widgets.umd.min.js").is_file()
    assert (dest / "acme-widgets.d.ts").is_file()
    assert (project_root / "dist.tgz").is_file()

    artefacts = graph.get("artefacts://@acme/widgets")
    assert artefacts.lifecycle is Lifecycle.DONE
    assert artefacts.data.tarball == project_root / "dist.tgz"
    assert [edge.kind for edge in graph.edges] == [EdgeKind.PRODUCES]


def test_secondary_manifest_points_back_into_shared_bundle_directories(
    package: Package,
) -> None:
    build = _staged_build(package, 1, formats=(ModuleFormat.FESM2015, ModuleFormat.UMD))
    graph = _graph(package, build)

    asyncio.run(write_package_transform()(graph))

    manifest = json.loads((package.dest / "testing" / "package.json").read_text())
    assert manifest["name"] == "@acme/widgets/testing"
    assert manifest["main"] == "../bundles/acme-widgets-testing.umd.js"
    assert manifest["es2015"] == "../esm2015/acme-widgets-testing.js"
    assert "module" not in manifest
    assert (package.dest / "testing.tgz").is_file()


def test_unwhitelisted_dependency_rolls_back_secondary(package: Package) -> None:
    secondary = package.secondaries[0]
    package_json = {"dependencies": {"left-pad": "^1.0.0"}}
    entry_point = EntryPoint.secondary(
        package.primary,
        package_json=package_json,
        base_path=secondary.base_path,
        options=secondary.options,
    )
    package = Package(
        base_path=package.base_path,
        dest=package.dest,
        working_directory=package.working_directory,
        entry_points=(package.primary, entry_point),
    )
    build = _staged_build(package, 1)
    graph = _graph(package, build)

    with pytest.raises(DependencyPolicyError, match="left-pad"):
        asyncio.run(write_package_transform()(graph))

    assert not (package.dest / "testing").exists()
    assert not (package.dest / "bundles").exists()
    assert not (package.dest / "testing.tgz").exists()
    assert "artefacts://@acme/widgets/testing" not in graph


def test_rollback_keeps_files_written_by_earlier_entry_points(project_root: Path) -> None:
    package = make_package(
        project_root, secondaries=("testing",), package_json={"dependencies": {"tslib": "2"}}
    )
    earlier = package.dest / "bundles" / "acme-widgets-forms.umd.js"
    earlier.parent.mkdir(parents=True)
    earlier.write_text("kept")
    graph = _graph(package, _staged_build(package))

    with pytest.raises(DependencyPolicyError):
        asyncio.run(write_package_transform()(graph))

    assert earlier.read_text() == "kept"
    assert not (package.dest / "package.json").exists()
    assert not (package.dest / "esm5").exists()


def test_whitelisted_dependency_is_published(project_root: Path) -> None:
    package = make_package(
        project_root,
        package_json={"dependencies": {"tslib": "^2.0.0"}},
        whitelist=("^tslib$",),
    )
    graph = _graph(package, _staged_build(package))

    asyncio.run(write_package_transform()(graph))

    manifest = json.loads((package.dest / "package.json").read_text())
    assert manifest["dependencies"] == {"tslib": "^2.0.0"}


def test_missing_typings_is_a_precondition_failure(package: Package) -> None:
    build = _staged_build(package).evolve(typings=None)
    graph = _graph(package, build)

    with pytest.raises(PreconditionError, match="type declarations"):
        asyncio.run(write_package_transform()(graph))


def test_tarball_is_reproducible(package: Package) -> None:
    build = _staged_build(package)
    asyncio.run(write_package_transform()(_graph(package, build)))
    tarball = package.dest.with_name("dist.tgz")
    first = tarball.read_bytes()

    asyncio.run(write_package_transform()(_graph(package, build)))

    assert tarball.read_bytes() == first
    with tarfile.open(tarball) as archive:
        names = archive.getnames()
        assert all(member.mtime == 0 for member in archive.getmembers())
    assert names[0] == "package"
    assert "package/package.json" in names
    assert not any(name.endswith(".tgz") for name in names)


def test_build_manifest_keeps_scripts_on_request(
    package: Package, caplog: pytest.LogCaptureFixture
) -> None:
    entry_point = EntryPoint.primary(
        package_json={
            "name": "@acme/widgets",
            "scripts": {"test": "jest"},
            "sideEffects": ["*.css"],
        },
        base_path=package.base_path,
        dest="dist",
        options=package.primary.options,
    )

    with caplog.at_level(logging.WARNING, logger="distpack"):
        manifest = build_manifest(entry_point, {"typings": "x.d.ts"}, keep_lifecycle_scripts=True)

    assert manifest["scripts"] == {"test": "jest"}
    assert manifest["sideEffects"] == ["*.css"]
    assert "keepLifecycleScripts" in caplog.text
    assert "scripts" not in build_manifest(entry_point, {})


def test_check_non_peer_dependencies_uses_regex_search() -> None:
    manifest = {"dependencies": {"@acme/core": "1", "tslib": "2"}}

    check_non_peer_dependencies(manifest, ["^@acme/", "tsl"])
    with pytest.raises(DependencyPolicyError) as excinfo:
        check_non_peer_dependencies(manifest, ["^@acme/"])

    assert excinfo.value.dependency == "tslib"
    check_non_peer_dependencies({"peerDependencies": {"rxjs": "7"}}, [])
