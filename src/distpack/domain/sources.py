"""Source discovery for entry points.

Scanning serves two purposes: it derives which entry points import each other
(the build order depends on it) and it records the set of files owned by each
entry point, which the watch scheduler uses to map file changes to entry points.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from distpack.domain.model import EntryPoint, Package

log = getLogger(__name__)

SCRIPT_SUFFIXES: Final[frozenset[str]] = frozenset({".ts", ".tsx", ".js", ".mjs", ".jsx"})
SOURCE_SUFFIXES: Final[frozenset[str]] = SCRIPT_SUFFIXES | frozenset(
    {".html", ".css", ".scss", ".sass", ".less", ".styl", ".json"}
)
CONFIG_FILE_NAMES: Final[tuple[str, ...]] = ("package.json", "distpack.json")
EXCLUDED_DIR_NAMES: Final[frozenset[str]] = frozenset({"node_modules", "__pycache__"})

# import x from 'a' / export * from 'a' / import 'a' / import('a') / require('a')
_IMPORT_PATTERN = re.compile(
    r"""(?:\bfrom\s*|\bimport\s*\(?\s*|\brequire\s*\(\s*)['"](?P<module>[^'"\n]+)['"]"""
)


@dataclass(frozen=True, slots=True)
class SourceScan:
    module_id: str
    files: frozenset[Path]
    imports: frozenset[str]


def iter_source_files(
    root: Path,
    *,
    suffixes: Iterable[str] = SOURCE_SUFFIXES,
    excluded: Iterable[Path] = (),
) -> Iterator[Path]:
    """Yield files below ``root`` in sorted order, skipping ``excluded`` trees."""

    wanted = frozenset(suffixes)
    skipped = {path.resolve() for path in excluded}
    if not root.is_dir():
        return
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if name not in EXCLUDED_DIR_NAMES
            and not name.startswith(".")
            and (current / name).resolve() not in skipped
        )
        for filename in sorted(filenames):
            path = current / filename
            if path.suffix in wanted:
                yield path.resolve()


def imported_modules(text: str) -> frozenset[str]:
    return frozenset(match.group("module") for match in _IMPORT_PATTERN.finditer(text))


def scan_entry_point(entry_point: EntryPoint, package: Package) -> SourceScan:
    """Collect the files owned by ``entry_point`` and the modules they import.

    Trees of nested entry points, the destination and the working directory are
    owned by someone else and skipped.
    """

    excluded = [
        other.base_path
        for other in package.entry_points
        if other.module_id != entry_point.module_id
        and other.base_path != entry_point.base_path
    ]
    excluded.extend((package.dest, package.working_directory))

    files: set[Path] = set(iter_source_files(entry_point.source_root, excluded=excluded))
    for name in CONFIG_FILE_NAMES:
        config_file = entry_point.base_path / name
        if config_file.is_file():
            files.add(config_file.resolve())

    imports: set[str] = set()
    for path in sorted(files):
        if path.suffix not in SCRIPT_SUFFIXES:
            continue
        try:
            imports.update(imported_modules(path.read_text(encoding="utf-8")))
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("Skipping import scan of unreadable file %s: %s", path, exc)

    return SourceScan(
        module_id=entry_point.module_id,
        files=frozenset(files),
        imports=frozenset(imports),
    )


def owning_module_id(imported: str, module_ids: Iterable[str]) -> str | None:
    """Return the entry point module id an import specifier resolves to, if any.

    Deep imports (``@my/lib/testing/helpers``) resolve to the longest matching
    entry point module id.
    """

    best: str | None = None
    for module_id in module_ids:
        if (imported == module_id or imported.startswith(f"{module_id}/")) and (
            best is None or len(module_id) > len(best)
        ):
            best = module_id
    return best


def derive_dependencies(
    package: Package, scans: dict[str, SourceScan]
) -> dict[str, tuple[str, ...]]:
    """Map each module id to the package entry points it imports, in declaration order."""

    module_ids = package.module_ids
    dependencies: dict[str, tuple[str, ...]] = {}
    for module_id in module_ids:
        scan = scans.get(module_id)
        if scan is None:
            dependencies[module_id] = ()
            continue
        targets = {owning_module_id(imported, module_ids) for imported in scan.imports}
        dependencies[module_id] = tuple(
            candidate
            for candidate in module_ids
            if candidate in targets and candidate != module_id
        )
    return dependencies


def scan_package(package: Package) -> dict[str, SourceScan]:
    return {ep.module_id: scan_entry_point(ep, package) for ep in package.entry_points}
