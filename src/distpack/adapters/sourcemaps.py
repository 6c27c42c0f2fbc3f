"""Relocate source map paths of staged bundles.

Bundlers record the file system paths they saw, which point into the staging
directory of the build machine. Published maps instead reference sources as
``<scheme>://<module id>/<path relative to the entry point base>``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .filesystem import read_json

if TYPE_CHECKING:
    from distpack.domain.model import EntryPointBuild

log = getLogger(__name__)

DEFAULT_SCHEME = "ng"


def relocate_source(build: EntryPointBuild, map_dir: Path, source: str, scheme: str) -> str:
    if "://" in source:
        return source
    entry_point = build.entry_point
    path = Path(os.path.normpath(map_dir / source))
    staged_root = build.stage_dir / "sources"
    if path.is_relative_to(staged_root):
        path = entry_point.source_root / path.relative_to(staged_root)
    relative = Path(os.path.relpath(path, entry_point.base_path)).as_posix()
    return f"{scheme}://{entry_point.module_id}/{relative}"


@dataclass(frozen=True, slots=True)
class SourceMapRelocator:
    scheme: str = DEFAULT_SCHEME

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        relocated: list[Path] = []
        for bundle in build.bundles.values():
            map_path = bundle.with_name(f"{bundle.name}.map")
            if not map_path.is_file():
                continue
            source_map: dict[str, Any] = read_json(map_path)
            map_dir = map_path.parent
            source_root = source_map.pop("sourceRoot", None)
            if isinstance(source_root, str) and source_root:
                map_dir = map_dir / source_root
            sources = source_map.get("sources") or []
            source_map["sources"] = [
                relocate_source(build, map_dir, str(source), self.scheme) for source in sources
            ]
            map_path.write_text(json.dumps(source_map, separators=(",", ":")), encoding="utf-8")
            relocated.append(map_path)
        log.debug("Relocated %s source map(s) of %s", len(relocated), build.module_id)
        return build.evolve(source_maps=tuple(relocated))
