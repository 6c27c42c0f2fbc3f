"""Entry points of a library package.

An entry point is a module intended to be imported by consumers. It is referenced
by a unique module id (``@my/lib`` or ``@my/lib/testing``) and exports the public
API of one source file. A package has exactly one primary entry point and any
number of secondary entry points nested below it.

Entry points are immutable. Everything a build derives for an entry point is
attached to its graph node (see ``EntryPointBuild``) instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from .enums import CssUrlMode, ModuleFormat

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

DEFAULT_ENTRY_FILE = "src/public_api.ts"

# directory and file suffix of each module format, relative to a bundle root
_BUNDLE_LAYOUT: dict[ModuleFormat, tuple[str, str]] = {
    ModuleFormat.FESM2015: ("esm2015", ".js"),
    ModuleFormat.FESM5: ("esm5", ".js"),
    ModuleFormat.UMD: ("bundles", ".umd.js"),
    ModuleFormat.UMD_MIN: ("bundles", ".umd.min.js"),
}

BUNDLE_DIRECTORIES: tuple[str, ...] = ("bundles", "esm5", "esm2015")


def bundle_relative_path(flat_module_file: str, module_format: ModuleFormat) -> PurePosixPath:
    directory, suffix = _BUNDLE_LAYOUT[module_format]
    return PurePosixPath(directory, f"{flat_module_file}{suffix}")


@dataclass(frozen=True, slots=True, kw_only=True)
class LibOptions:
    """Per-entry-point build options (the ``lib`` section of the config)."""

    entry_file: str = DEFAULT_ENTRY_FILE
    flat_module_file: str | None = None
    umd_module_ids: Mapping[str, str] = field(default_factory=dict[str, str])
    jsx: str | None = None
    css_url: CssUrlMode = CssUrlMode.INLINE
    style_include_paths: tuple[str, ...] = ()
    language_level: tuple[str, ...] = ()
    amd_id: str | None = None
    umd_id: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class DestinationFiles:
    declarations: Path
    metadata: Path
    fesm2015: Path
    fesm5: Path
    umd: Path
    umd_min: Path

    def bundle(self, module_format: ModuleFormat) -> Path:
        return {
            ModuleFormat.FESM2015: self.fesm2015,
            ModuleFormat.FESM5: self.fesm5,
            ModuleFormat.UMD: self.umd,
            ModuleFormat.UMD_MIN: self.umd_min,
        }[module_format]


@dataclass(frozen=True, slots=True, kw_only=True)
class EntryPoint:
    """One independently importable sub-module of a library."""

    module_id: str
    base_path: Path
    destination_path: Path
    package_destination: Path
    is_secondary: bool = False
    package_json: Mapping[str, Any] = field(default_factory=dict[str, Any])
    options: LibOptions = field(default_factory=LibOptions)

    def __post_init__(self) -> None:
        if not self.module_id.strip():
            raise ValueError("Entry point module id cannot be empty")
        if not self.base_path.is_absolute():
            raise ValueError(f"Entry point base path must be absolute: {self.base_path}")

    @classmethod
    def primary(
        cls,
        *,
        package_json: Mapping[str, Any],
        base_path: Path,
        dest: str,
        options: LibOptions,
    ) -> EntryPoint:
        name = package_json.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"package.json in {base_path} has no 'name'")
        destination = (base_path / dest).resolve()
        return cls(
            module_id=name.strip(),
            base_path=base_path,
            destination_path=destination,
            package_destination=destination,
            package_json=package_json,
            options=options,
        )

    @classmethod
    def secondary(
        cls,
        primary: EntryPoint,
        *,
        package_json: Mapping[str, Any],
        base_path: Path,
        options: LibOptions,
    ) -> EntryPoint:
        relative = base_path.relative_to(primary.base_path)
        if not relative.parts:
            raise ValueError("A secondary entry point cannot share the primary's directory")
        return cls(
            module_id=f"{primary.module_id}/{relative.as_posix()}",
            base_path=base_path,
            destination_path=primary.destination_path.joinpath(*relative.parts),
            package_destination=primary.package_destination,
            is_secondary=True,
            package_json=package_json,
            options=options,
        )

    @property
    def entry_file_path(self) -> Path:
        return (self.base_path / self.options.entry_file).resolve()

    @property
    def source_root(self) -> Path:
        return self.entry_file_path.parent

    @property
    def flat_module_file(self) -> str:
        return self.options.flat_module_file or self._flatten_module_id("-")

    @property
    def umd_id(self) -> str:
        """Name registered on the global scope, ``@my/foo/bar`` -> ``my.foo.bar``."""

        return self.options.umd_id or self._flatten_module_id(".")

    @property
    def amd_id(self) -> str:
        return self.options.amd_id or self.module_id

    @property
    def side_effects(self) -> bool | list[str]:
        value = self.package_json.get("sideEffects", False)
        if isinstance(value, bool):
            return value
        if isinstance(value, list):
            items: list[object] = value  # pyright: ignore[reportUnknownVariableType]
            return [str(item) for item in items]
        return False

    @property
    def destination_files(self) -> DestinationFiles:
        flat = self.flat_module_file
        pkg_dest = self.package_destination
        return DestinationFiles(
            declarations=self.destination_path / f"{flat}.d.ts",
            metadata=self.destination_path / f"{flat}.metadata.json",
            fesm2015=pkg_dest / bundle_relative_path(flat, ModuleFormat.FESM2015),
            fesm5=pkg_dest / bundle_relative_path(flat, ModuleFormat.FESM5),
            umd=pkg_dest / bundle_relative_path(flat, ModuleFormat.UMD),
            umd_min=pkg_dest / bundle_relative_path(flat, ModuleFormat.UMD_MIN),
        )

    def _flatten_module_id(self, separator: str) -> str:
        module_id = self.module_id[1:] if self.module_id.startswith("@") else self.module_id
        return separator.join(module_id.split("/"))
