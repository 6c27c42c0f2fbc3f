"""Domain model for library packages, entry points and their artefacts."""

from __future__ import annotations

from .build import ArtefactSet, EntryPointBuild, EntryPointResult, PackageData
from .entry_point import (
    BUNDLE_DIRECTORIES,
    DEFAULT_ENTRY_FILE,
    DestinationFiles,
    EntryPoint,
    LibOptions,
    bundle_relative_path,
)
from .enums import CssUrlMode, Lifecycle, ModuleFormat
from .package import DEFAULT_DEST, DEFAULT_WORKING_DIRECTORY, Package

__all__ = [
    "BUNDLE_DIRECTORIES",
    "DEFAULT_DEST",
    "DEFAULT_ENTRY_FILE",
    "DEFAULT_WORKING_DIRECTORY",
    "ArtefactSet",
    "CssUrlMode",
    "DestinationFiles",
    "EntryPoint",
    "EntryPointBuild",
    "EntryPointResult",
    "LibOptions",
    "Lifecycle",
    "ModuleFormat",
    "Package",
    "PackageData",
    "bundle_relative_path",
]
