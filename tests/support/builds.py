"""Fake collaborators and package factories for pipeline tests."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from distpack.adapters import (
    CopyStylesheetRenderer,
    CopyTemplateRenderer,
    InliningSourceTransformer,
    SourceMapRelocator,
    write_package_transform,
)
from distpack.domain.errors import CompileError, Diagnostic
from distpack.domain.model import EntryPoint, LibOptions, ModuleFormat, Package
from distpack.domain.pipeline import Pipeline, entry_point_pipeline

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from distpack.domain.model import EntryPointBuild

PACKAGE_NAME = "@acme/widgets"


def make_package(
    root: Path,
    *,
    name: str = PACKAGE_NAME,
    secondaries: Iterable[str] = (),
    package_json: Mapping[str, Any] | None = None,
    whitelist: Iterable[str] = (),
    keep_lifecycle_scripts: bool = False,
) -> Package:
    """Build a ``Package`` in memory without touching the file system."""

    primary = EntryPoint.primary(
        package_json={"name": name, **(package_json or {})},
        base_path=root,
        dest="dist",
        options=LibOptions(),
    )
    entry_points = [primary]
    for relative in secondaries:
        entry_points.append(
            EntryPoint.secondary(
                primary,
                package_json={},
                base_path=root / relative,
                options=LibOptions(),
            )
        )
    return Package(
        base_path=root,
        dest=primary.destination_path,
        working_directory=root / ".distpack_build",
        entry_points=tuple(entry_points),
        whitelisted_non_peer_dependencies=tuple(whitelist),
        keep_lifecycle_scripts=keep_lifecycle_scripts,
    )


def write_json(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def write_project(
    root: Path,
    *,
    name: str = PACKAGE_NAME,
    primary_source: str = "export const core = 1;\n",
    secondaries: Mapping[str, str] | None = None,
    package_json: Mapping[str, Any] | None = None,
) -> Path:
    """Lay out a project on disk: ``secondaries`` maps directory to entry file text."""

    write_json(
        root / "package.json",
        {"name": name, "version": "1.0.0", **(package_json or {})},
    )
    entry = root / "src" / "public_api.ts"
    entry.parent.mkdir(parents=True, exist_ok=True)
    entry.write_text(primary_source, encoding="utf-8")
    for relative, source in (secondaries or {}).items():
        write_json(root / relative / "package.json", {"distpack": {}})
        secondary_entry = root / relative / "src" / "public_api.ts"
        secondary_entry.parent.mkdir(parents=True, exist_ok=True)
        secondary_entry.write_text(source, encoding="utf-8")
    return root


@dataclass(slots=True)
class FakeCompiler:
    """Writes a flat module and typings derived from the staged entry file."""

    calls: list[str] = field(default_factory=list[str])
    fail_for: set[str] = field(default_factory=set[str])

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        self.calls.append(build.module_id)
        entry_file = build.entry_point.entry_file_path
        if build.module_id in self.fail_for:
            raise CompileError(
                f"Compilation of {build.module_id} failed",
                [Diagnostic(entry_file, 1, 14, "error TS2304: Cannot find name 'missing'.")],
            )
        flat = build.entry_point.flat_module_file
        build.out_dir.mkdir(parents=True, exist_ok=True)
        es2015 = build.out_dir / f"{flat}.js"
        es2015.write_text(entry_file.read_text(encoding="utf-8"), encoding="utf-8")
        typings = build.out_dir / f"{flat}.d.ts"
        typings.write_text(f"// {build.module_id}\nexport declare const core: number;\n")
        return build.evolve(es2015=es2015, typings=typings)


@dataclass(slots=True)
class FakeBundler:
    """Writes every module format (with a source map) next to each other in staging."""

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        assert build.es2015 is not None
        bundles: dict[ModuleFormat, Path] = {}
        for module_format in ModuleFormat:
            output = build.staged_bundle(module_format)
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(
                f"/* {module_format} */\n{build.es2015.read_text(encoding='utf-8')}",
                encoding="utf-8",
            )
            source_map = {
                "version": 3,
                "file": output.name,
                "sources": [str(build.entry_point.entry_file_path)],
                "mappings": "",
            }
            output.with_name(f"{output.name}.map").write_text(json.dumps(source_map))
            bundles[module_format] = output
        return build.evolve(bundles=bundles)


def make_pipeline(compiler: FakeCompiler | None = None) -> Pipeline:
    return entry_point_pipeline(
        render_stylesheets=CopyStylesheetRenderer(),
        render_templates=CopyTemplateRenderer(),
        transform_sources=InliningSourceTransformer(),
        compile_sources=compiler or FakeCompiler(),
        write_bundles=FakeBundler(),
        relocate_source_maps=SourceMapRelocator(),
        write_package=write_package_transform(),
    )


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """Relative path -> content of every file below ``root``."""

    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }
