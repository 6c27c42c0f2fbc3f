"""Load a library package and its entry points from disk.

Configuration lives either under the ``distpack`` key of ``package.json`` or in
a ``distpack.json`` next to it. When both exist the file is merged on top of
the key. The primary entry point sits at the project root; every directory
below it carrying its own configuration is a secondary entry point.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from distpack.domain.model import (
    DEFAULT_DEST,
    DEFAULT_ENTRY_FILE,
    DEFAULT_WORKING_DIRECTORY,
    CssUrlMode,
    EntryPoint,
    LibOptions,
    ModuleFormat,
    Package,
)
from distpack.domain.sources import EXCLUDED_DIR_NAMES

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

log = getLogger(__name__)

PACKAGE_JSON: Final[str] = "package.json"
CONFIG_FILE: Final[str] = "distpack.json"
CONFIG_KEY: Final[str] = "distpack"
# lib keys a secondary entry point takes from the primary unless it sets them
INHERITED_LIB_KEYS: Final[tuple[str, ...]] = (
    "umd_module_ids",
    "style_include_paths",
    "language_level",
    "css_url",
    "jsx",
)


class DistpackBaseModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, alias_generator=to_camel, frozen=True
    )


class LibConfig(DistpackBaseModel):
    """``lib`` section. ``None`` means "inherit from the primary entry point"."""

    entry_file: str = DEFAULT_ENTRY_FILE
    flat_module_file: str | None = None
    umd_module_ids: dict[str, str] | None = None
    jsx: str | None = None
    css_url: CssUrlMode | None = None
    style_include_paths: list[str] | None = None
    language_level: list[str] | None = None
    amd_id: str | None = None
    umd_id: str | None = None

    def inherit(self, parent: LibConfig) -> LibConfig:
        inherited = {
            name: getattr(parent, name)
            for name in INHERITED_LIB_KEYS
            if getattr(self, name) is None
        }
        return self.model_copy(update=inherited)

    def to_options(self) -> LibOptions:
        return LibOptions(
            entry_file=self.entry_file,
            flat_module_file=self.flat_module_file,
            umd_module_ids=dict(self.umd_module_ids or {}),
            jsx=self.jsx,
            css_url=self.css_url or CssUrlMode.INLINE,
            style_include_paths=tuple(self.style_include_paths or ()),
            language_level=tuple(self.language_level or ()),
            amd_id=self.amd_id,
            umd_id=self.umd_id,
        )


class ToolsConfig(DistpackBaseModel):
    """External commands driving the compile and write-bundles stages."""

    compile: tuple[str, ...] | None = None
    bundle: dict[ModuleFormat, tuple[str, ...]] = Field(
        default_factory=dict[ModuleFormat, tuple[str, ...]]
    )
    source_map_scheme: str = "ng"


class PackageConfig(DistpackBaseModel):
    dest: str = DEFAULT_DEST
    delete_dest_path: bool = True
    keep_lifecycle_scripts: bool = False
    working_directory: str | None = None
    whitelisted_non_peer_dependencies: list[str] = Field(default_factory=list[str])
    lib: LibConfig = Field(default_factory=LibConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @field_validator("whitelisted_non_peer_dependencies")
    @classmethod
    def _check_patterns(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid pattern {pattern!r}: {exc}") from exc
        return value


@dataclass(frozen=True, slots=True)
class Project:
    package: Package
    tools: ToolsConfig


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)  # pyright: ignore[reportUnknownArgumentType]
        else:
            merged[key] = value
    return merged


def _read_json_object(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a JSON object")
    return data  # pyright: ignore[reportUnknownVariableType]


def read_package_json(directory: Path) -> dict[str, Any]:
    path = directory / PACKAGE_JSON
    return _read_json_object(path) if path.is_file() else {}


def has_entry_point_config(directory: Path) -> bool:
    if (directory / CONFIG_FILE).is_file():
        return True
    package_json = directory / PACKAGE_JSON
    return package_json.is_file() and CONFIG_KEY in _read_json_object(package_json)


def read_config(directory: Path, package_json: Mapping[str, Any]) -> PackageConfig:
    """Parse the configuration of one entry point directory."""

    data: dict[str, Any] = {}
    embedded = package_json.get(CONFIG_KEY)
    if embedded is not None:
        if not isinstance(embedded, dict):
            raise ConfigurationError(
                f"'{CONFIG_KEY}' in {directory / PACKAGE_JSON} must be an object"
            )
        data = dict(embedded)  # pyright: ignore[reportUnknownArgumentType]
    config_file = directory / CONFIG_FILE
    if config_file.is_file():
        data = deep_merge(data, _read_json_object(config_file))
    try:
        return PackageConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {directory}:\n{exc}") from exc


def discover_secondaries(base_path: Path, excluded: Iterable[Path] = ()) -> list[Path]:
    """Directories below ``base_path`` that configure a secondary entry point, sorted."""

    skipped = {path.resolve() for path in excluded}
    found: list[Path] = []
    for dirpath, dirnames, _ in os.walk(base_path):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if name not in EXCLUDED_DIR_NAMES
            and not name.startswith(".")
            and (current / name).resolve() not in skipped
        )
        if current != base_path and has_entry_point_config(current):
            found.append(current.resolve())
    return sorted(found)


def _resolve(base_path: Path, value: str | Path) -> Path:
    return (base_path / value).resolve()


def load_project(project: Path | str, *, working_directory: Path | None = None) -> Project:
    """Read the package rooted at ``project`` (a directory or its ``package.json``).

    ``working_directory`` overrides the configured one. Raises
    ``ConfigurationError`` for anything that prevents a build from starting.
    """

    root = Path(project)
    if root.is_file():
        root = root.parent
    base_path = root.resolve()
    if not (base_path / PACKAGE_JSON).is_file():
        raise MissingConfigurationError(f"No {PACKAGE_JSON} found in {base_path}")

    package_json = read_package_json(base_path)
    config = read_config(base_path, package_json)
    try:
        primary = EntryPoint.primary(
            package_json=package_json,
            base_path=base_path,
            dest=config.dest,
            options=config.lib.to_options(),
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    dest = primary.destination_path
    if base_path.is_relative_to(dest):
        raise ConfigurationError(f"Destination {dest} would contain the project itself")
    work_dir = _resolve(
        base_path, working_directory or config.working_directory or DEFAULT_WORKING_DIRECTORY
    )

    entry_points = [primary]
    for directory in discover_secondaries(base_path, excluded=(dest, work_dir)):
        secondary_json = read_package_json(directory)
        secondary_config = read_config(directory, secondary_json)
        lib = secondary_config.lib.inherit(config.lib)
        entry_points.append(
            EntryPoint.secondary(
                primary,
                package_json=secondary_json,
                base_path=directory,
                options=lib.to_options(),
            )
        )
        log.debug("Discovered secondary entry point %s", entry_points[-1].module_id)

    package = Package(
        base_path=base_path,
        dest=dest,
        working_directory=work_dir,
        entry_points=tuple(entry_points),
        whitelisted_non_peer_dependencies=tuple(config.whitelisted_non_peer_dependencies),
        keep_lifecycle_scripts=config.keep_lifecycle_scripts,
        delete_dest_path=config.delete_dest_path,
    )
    log.info("Loaded package %s with %s entry point(s)", package.name, len(entry_points))
    return Project(package=package, tools=config.tools)
