"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from distpack.adapters import (
    CommandBundler,
    CommandCompiler,
    CopyStylesheetRenderer,
    CopyTemplateRenderer,
    InliningSourceTransformer,
    PollingFileWatcher,
    SourceMapRelocator,
    write_package_transform,
)
from distpack.config.errors import MissingConfigurationError
from distpack.config.settings import DEFAULT_POLL_INTERVAL
from distpack.domain.orchestrator import PackageOrchestrator
from distpack.domain.pipeline import entry_point_pipeline
from distpack.domain.watch import WatchScheduler

if TYPE_CHECKING:
    from collections.abc import Mapping

    from distpack.config.package import Project, ToolsConfig
    from distpack.domain.orchestrator import BuildResult
    from distpack.domain.pipeline import Pipeline, Transform

log = getLogger(__name__)


def default_pipeline(
    tools: ToolsConfig, *, overrides: Mapping[str, Transform] | None = None
) -> Pipeline:
    """Assemble the standard pipeline from the configured external commands.

    ``overrides`` replaces stages by name after assembly.
    """

    if tools.compile is None:
        raise MissingConfigurationError("No compile command configured (tools.compile)")
    return entry_point_pipeline(
        render_stylesheets=CopyStylesheetRenderer(),
        render_templates=CopyTemplateRenderer(),
        transform_sources=InliningSourceTransformer(),
        compile_sources=CommandCompiler(tools.compile),
        write_bundles=CommandBundler(dict(tools.bundle)),
        relocate_source_maps=SourceMapRelocator(tools.source_map_scheme),
        write_package=write_package_transform(),
        overrides=overrides,
    )


def build_package(
    project: Project,
    *,
    pipeline: Transform | None = None,
    only: list[str] | None = None,
) -> BuildResult:
    """Build every entry point of ``project`` once."""

    effective_pipeline = pipeline or default_pipeline(project.tools).as_transform()
    orchestrator = PackageOrchestrator(pipeline=effective_pipeline)
    package = project.package
    log.info(
        "Starting build of %s: entry_points=%s, dest=%s",
        package.name,
        len(package.entry_points),
        package.dest,
    )
    result = asyncio.run(orchestrator.build(package, only=only))
    if result.success:
        log.info("Finished build of %s: built=%s", package.name, ", ".join(result.built))
    else:
        log.error(
            "Build of %s failed: entry_point=%s, stage=%s",
            package.name,
            result.failed_module_id,
            result.failed_stage,
        )
    return result


def watch_package(
    project: Project,
    *,
    pipeline: Transform | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    watcher: PollingFileWatcher | None = None,
) -> WatchScheduler:
    """Build once, then rebuild affected entry points whenever sources change.

    Runs until the watcher stops producing changes.
    """

    effective_pipeline = pipeline or default_pipeline(project.tools).as_transform()
    package = project.package
    effective_watcher = watcher or PollingFileWatcher(
        roots=(package.base_path,),
        poll_interval=poll_interval,
        excluded=(package.dest, package.working_directory),
    )
    scheduler = WatchScheduler(PackageOrchestrator(pipeline=effective_pipeline), package)
    log.info("Starting watch of %s", package.name)
    asyncio.run(scheduler.run(effective_watcher.changes()))
    return scheduler
