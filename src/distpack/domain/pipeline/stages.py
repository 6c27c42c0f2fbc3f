"""The standard entry point pipeline.

Every entry point goes through the same phases, in this order:

- clean
- render-stylesheets
- render-templates
- transform-sources (inlining rendered templates and stylesheets)
- compile
- write-bundles
- relocate-source-maps
- write-package

Collaborators are passed in as ports and wrapped into transforms that locate
"the entry point in progress" in the graph, hand its build state to the
collaborator and store the result. Any stage can be substituted by name.
"""

from __future__ import annotations

import shutil
from logging import getLogger
from typing import TYPE_CHECKING, Final

from distpack.domain.errors import PreconditionError
from distpack.domain.graph import is_entry_point_in_progress, is_package
from distpack.domain.model import EntryPointBuild, PackageData

from .composer import Pipeline
from .transform import SideEffect, Transform

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from distpack.domain.graph import BuildGraph, Node
    from distpack.domain.ports import (
        BuildStep,
        Bundler,
        Compiler,
        SourceMapRelocator,
        SourceTransformer,
        StylesheetRenderer,
        TemplateRenderer,
    )

log = getLogger(__name__)

CLEAN: Final = "clean"
RENDER_STYLESHEETS: Final = "render-stylesheets"
RENDER_TEMPLATES: Final = "render-templates"
TRANSFORM_SOURCES: Final = "transform-sources"
COMPILE: Final = "compile"
WRITE_BUNDLES: Final = "write-bundles"
RELOCATE_SOURCE_MAPS: Final = "relocate-source-maps"
WRITE_PACKAGE: Final = "write-package"

STANDARD_STAGES: Final[tuple[str, ...]] = (
    CLEAN,
    RENDER_STYLESHEETS,
    RENDER_TEMPLATES,
    TRANSFORM_SOURCES,
    COMPILE,
    WRITE_BUNDLES,
    RELOCATE_SOURCE_MAPS,
    WRITE_PACKAGE,
)


def require_entry_point_in_progress(graph: BuildGraph, stage: str) -> Node[EntryPointBuild]:
    """Return the node of the entry point being processed or raise ``PreconditionError``."""

    nodes = graph.filter(is_entry_point_in_progress())
    if not nodes:
        raise PreconditionError(f"Stage '{stage}' found no entry point in progress")
    if len(nodes) > 1:
        ids = ", ".join(node.id for node in nodes)
        raise PreconditionError(f"Stage '{stage}' found several entry points in progress: {ids}")
    return graph.find_as(is_entry_point_in_progress(), EntryPointBuild)


def require_package(graph: BuildGraph, stage: str) -> Node[PackageData]:
    nodes = graph.filter(is_package())
    if len(nodes) != 1:
        raise PreconditionError(f"Stage '{stage}' expected one package node, found {len(nodes)}")
    return graph.find_as(is_package(), PackageData)


def entry_point_stage(
    name: str, step: BuildStep, *, side_effects: Iterable[SideEffect] = ()
) -> Transform:
    """Wrap a collaborator into a transform over the entry point in progress."""

    async def _run(graph: BuildGraph) -> BuildGraph:
        node = require_entry_point_in_progress(graph, name)
        updated = await step(node.data)
        if updated.module_id != node.data.module_id:
            raise ValueError(
                f"Stage '{name}' returned build state for {updated.module_id}, "
                f"expected {node.data.module_id}"
            )
        graph.replace(node.id, updated)
        return graph

    return Transform(name=name, fn=_run, side_effects=frozenset(side_effects))


def _clean(graph: BuildGraph) -> BuildGraph:
    nodes = graph.filter(is_entry_point_in_progress())
    if len(nodes) != 1:
        log.debug("Nothing to clean: %s entry points in progress", len(nodes))
        return graph
    build = nodes[0].data
    for directory in (build.stage_dir, build.out_dir):
        if directory.exists():
            log.debug("Removing %s", directory)
            shutil.rmtree(directory)
    return graph


def clean_transform() -> Transform:
    return Transform(name=CLEAN, fn=_clean, side_effects=frozenset({SideEffect.FILESYSTEM}))


def entry_point_pipeline(  # noqa: PLR0913
    *,
    render_stylesheets: StylesheetRenderer,
    render_templates: TemplateRenderer,
    transform_sources: SourceTransformer,
    compile_sources: Compiler,
    write_bundles: Bundler,
    relocate_source_maps: SourceMapRelocator,
    write_package: Transform,
    overrides: Mapping[str, Transform] | None = None,
) -> Pipeline:
    """Assemble the standard pipeline from its collaborators."""

    filesystem = (SideEffect.FILESYSTEM,)
    tooling = (SideEffect.FILESYSTEM, SideEffect.EXTERNAL_TOOL)
    pipeline = Pipeline(
        stages=(
            clean_transform(),
            entry_point_stage(RENDER_STYLESHEETS, render_stylesheets, side_effects=filesystem),
            entry_point_stage(RENDER_TEMPLATES, render_templates, side_effects=filesystem),
            entry_point_stage(TRANSFORM_SOURCES, transform_sources, side_effects=filesystem),
            entry_point_stage(COMPILE, compile_sources, side_effects=tooling),
            entry_point_stage(WRITE_BUNDLES, write_bundles, side_effects=tooling),
            entry_point_stage(RELOCATE_SOURCE_MAPS, relocate_source_maps, side_effects=filesystem),
            write_package,
        ),
        name="entry-point",
    )
    if pipeline.stage_names != STANDARD_STAGES:
        raise ValueError(f"write_package transform must be named '{WRITE_PACKAGE}'")
    if overrides:
        pipeline = pipeline.substitute(overrides)
    return pipeline
