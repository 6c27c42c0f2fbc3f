from __future__ import annotations

from pathlib import Path

import pytest

from distpack.config.errors import ConfigurationError
from distpack.domain.model import (
    EntryPoint,
    LibOptions,
    Lifecycle,
    ModuleFormat,
    Package,
)

from tests.support.builds import make_package


def test_primary_derives_names_and_destinations(project_root: Path) -> None:
    primary = EntryPoint.primary(
        package_json={"name": "@acme/widgets"},
        base_path=project_root,
        dest="dist",
        options=LibOptions(),
    )

    assert primary.module_id == "@acme/widgets"
    assert primary.flat_module_file == "acme-widgets"
    assert primary.umd_id == "acme.widgets"
    assert primary.amd_id == "@acme/widgets"
    assert primary.destination_path == project_root / "dist"
    assert primary.entry_file_path == project_root / "src" / "public_api.ts"
    files = primary.destination_files
    assert files.declarations == project_root / "dist" / "acme-widgets.d.ts"
    assert files.bundle(ModuleFormat.UMD_MIN) == (
        project_root / "dist" / "bundles" / "acme-widgets.umd.min.js"
    )


def test_secondary_is_nested_below_primary(project_root: Path) -> None:
    primary = EntryPoint.primary(
        package_json={"name": "@acme/widgets"},
        base_path=project_root,
        dest="dist",
        options=LibOptions(),
    )
    secondary = EntryPoint.secondary(
        primary,
        package_json={},
        base_path=project_root / "testing" / "http",
        options=LibOptions(umd_id="acmeHttpTesting", amd_id="acme-http-testing"),
    )

    assert secondary.module_id == "@acme/widgets/testing/http"
    assert secondary.is_secondary
    assert secondary.destination_path == project_root / "dist" / "testing" / "http"
    assert secondary.flat_module_file == "acme-widgets-testing-http"
    assert secondary.umd_id == "acmeHttpTesting"
    assert secondary.amd_id == "acme-http-testing"
    assert secondary.destination_files.fesm5 == (
        project_root / "dist" / "esm5" / "acme-widgets-testing-http.js"
    )


def test_entry_point_requires_absolute_base_and_name(project_root: Path) -> None:
    with pytest.raises(ValueError, match="absolute"):
        EntryPoint.primary(
            package_json={"name": "lib"}, base_path=Path("lib"), dest="dist", options=LibOptions()
        )
    with pytest.raises(ValueError, match="no 'name'"):
        EntryPoint.primary(
            package_json={}, base_path=project_root, dest="dist", options=LibOptions()
        )


def test_side_effects_accepts_boolean_or_globs(project_root: Path) -> None:
    def _entry(package_json: dict[str, object]) -> EntryPoint:
        return EntryPoint.primary(
            package_json={"name": "lib", **package_json},
            base_path=project_root,
            dest="dist",
            options=LibOptions(),
        )

    assert _entry({}).side_effects is False
    assert _entry({"sideEffects": True}).side_effects is True
    assert _entry({"sideEffects": ["*.css"]}).side_effects == ["*.css"]
    assert _entry({"sideEffects": "yes"}).side_effects is False


def test_package_validates_entry_points(project_root: Path) -> None:
    package = make_package(project_root, secondaries=("testing",))

    assert package.name == "@acme/widgets"
    assert package.module_ids == ("@acme/widgets", "@acme/widgets/testing")
    assert package.stage_dir(package.primary) == (
        project_root / ".distpack_build" / "acme-widgets" / "stage"
    )
    with pytest.raises(ConfigurationError, match="declared first"):
        Package(
            base_path=project_root,
            dest=package.dest,
            working_directory=package.working_directory,
            entry_points=tuple(reversed(package.entry_points)),
        )
    with pytest.raises(ConfigurationError, match="Duplicate"):
        Package(
            base_path=project_root,
            dest=package.dest,
            working_directory=package.working_directory,
            entry_points=(*package.entry_points, package.secondaries[0]),
        )
    with pytest.raises(ConfigurationError, match="no entry points"):
        Package(
            base_path=project_root,
            dest=package.dest,
            working_directory=package.working_directory,
            entry_points=(),
        )


def test_lifecycle_partial_order() -> None:
    assert Lifecycle.NOT_STARTED.can_advance_to(Lifecycle.IN_PROGRESS)
    assert Lifecycle.IN_PROGRESS.can_advance_to(Lifecycle.FAILED)
    assert Lifecycle.DONE.can_advance_to(Lifecycle.DONE)
    assert not Lifecycle.DONE.can_advance_to(Lifecycle.FAILED)
    assert not Lifecycle.FAILED.can_advance_to(Lifecycle.NOT_STARTED)
    assert Lifecycle.FAILED.is_terminal
    assert not Lifecycle.IN_PROGRESS.is_terminal
