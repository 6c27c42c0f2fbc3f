"""Drive the entry point pipeline across all entry points of a package.

The orchestrator seeds the build graph, orders entry points so that every entry
point is built after the ones it imports (the primary always first), and runs
the pipeline for each of them in turn. Entry points are never built in
parallel: a secondary entry point may read what the primary has written.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from distpack.config.errors import ConfigurationError, CyclicEntryPointError
from distpack.domain.errors import StageError
from distpack.domain.graph import (
    BuildGraph,
    EdgeKind,
    Node,
    artefact_node_id,
    entry_point_node_id,
    package_node_id,
)
from distpack.domain.model import EntryPointBuild, EntryPointResult, Lifecycle, PackageData
from distpack.domain.sources import derive_dependencies, scan_package

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Mapping

    from distpack.domain.model import EntryPoint, Package
    from distpack.domain.pipeline import Transform
    from distpack.domain.sources import SourceScan

type SourceScanner = Callable[[Package], dict[str, SourceScan]]

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class BuildResult:
    """Outcome of one orchestrator run.

    ``results`` lists the entry points that were attempted, in build order.
    """

    results: tuple[EntryPointResult, ...] = ()
    failure: StageError | None = None

    @property
    def success(self) -> bool:
        return self.failure is None and all(r.status is Lifecycle.DONE for r in self.results)

    @property
    def built(self) -> tuple[str, ...]:
        return tuple(r.module_id for r in self.results if r.status is Lifecycle.DONE)

    @property
    def failed_module_id(self) -> str | None:
        return None if self.failure is None else self.failure.module_id

    @property
    def failed_stage(self) -> str | None:
        return None if self.failure is None else self.failure.stage

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise self.failure


def compute_build_order(
    package: Package, dependencies: Mapping[str, Collection[str]]
) -> tuple[EntryPoint, ...]:
    """Order entry points: primary first, then secondaries topologically.

    Ties are broken by declaration order. Raises ``CyclicEntryPointError`` when
    secondaries depend on each other in a cycle and ``ConfigurationError`` for
    dependencies that cannot be honoured.
    """

    known = set(package.module_ids)
    primary = package.primary
    for module_id, deps in dependencies.items():
        if module_id not in known:
            raise ConfigurationError(f"Dependencies declared for unknown entry point {module_id}")
        unknown = sorted(set(deps) - known)
        if unknown:
            raise ConfigurationError(
                f"Entry point {module_id} depends on {', '.join(unknown)}, "
                "which is not an entry point of this package"
            )
    primary_deps = [
        dep for dep in dependencies.get(primary.module_id, ()) if dep != primary.module_id
    ]
    if primary_deps:
        raise ConfigurationError(
            f"Primary entry point {primary.module_id} cannot depend on secondary entry points: "
            f"{', '.join(primary_deps)}"
        )

    order: list[EntryPoint] = [primary]
    emitted = {primary.module_id}
    remaining = list(package.secondaries)
    while remaining:
        for candidate in remaining:
            if all(dep in emitted for dep in dependencies.get(candidate.module_id, ())):
                order.append(candidate)
                emitted.add(candidate.module_id)
                remaining.remove(candidate)
                break
        else:
            raise CyclicEntryPointError(_find_cycle(remaining, dependencies, emitted))
    return tuple(order)


def _find_cycle(
    remaining: list[EntryPoint],
    dependencies: Mapping[str, Collection[str]],
    emitted: set[str],
) -> tuple[str, ...]:
    # every remaining entry point waits on another remaining one, so walking
    # unmet dependencies must revisit a module id
    path: list[str] = []
    current = remaining[0].module_id
    while current not in path:
        path.append(current)
        current = next(
            dep for dep in sorted(dependencies.get(current, ())) if dep not in emitted
        )
    return (*path[path.index(current) :], current)


@dataclass(frozen=True, slots=True)
class BuildPlan:
    order: tuple[EntryPoint, ...]
    scans: dict[str, SourceScan]
    dependencies: dict[str, tuple[str, ...]]


@dataclass(slots=True)
class PackageOrchestrator:
    """Build all (or some) entry points of a package through ``pipeline``."""

    pipeline: Transform
    graph: BuildGraph = field(default_factory=BuildGraph)
    scan_sources: SourceScanner = scan_package

    def plan(self, package: Package) -> BuildPlan:
        """Scan sources and compute the build order without touching the graph."""

        scans = self.scan_sources(package)
        dependencies = derive_dependencies(package, scans)
        order = compute_build_order(package, dependencies)
        log.debug("Build order: %s", " -> ".join(ep.module_id for ep in order))
        return BuildPlan(order=order, scans=scans, dependencies=dependencies)

    async def build(self, package: Package, *, only: Collection[str] | None = None) -> BuildResult:
        """Run the pipeline for every entry point (or the ``only`` subset) in order.

        Configuration problems surface before any stage runs. The first failing
        entry point stops the run: later entry points may depend on it.
        """

        plan = self.plan(package)
        order = plan.order
        if only is not None:
            unknown = sorted(set(only) - set(package.module_ids))
            if unknown:
                raise ConfigurationError(f"Unknown entry points: {', '.join(unknown)}")
            order = tuple(ep for ep in order if ep.module_id in only)

        self._seed(package, plan)
        if only is None and package.delete_dest_path and package.dest.exists():
            log.info("Deleting destination %s", package.dest)
            shutil.rmtree(package.dest)

        package_id = package_node_id(package.name)
        failure: StageError | None = None
        for position, entry_point in enumerate(order):
            result, error = await self._build_entry_point(package, entry_point, plan)
            self.graph.replace(package_id, self.graph.get(package_id).data.with_result(result))
            if error is None:
                continue
            failure = error
            if error.is_precondition_failure:
                self.graph.replace(package_id, self.graph.get(package_id).data, Lifecycle.FAILED)
                raise error
            log.error(
                "Aborting build after %s failed; skipping %s remaining entry point(s)",
                entry_point.module_id,
                len(order) - position - 1,
            )
            break

        package_node = self.graph.get(package_id)
        status = Lifecycle.DONE if failure is None else Lifecycle.FAILED
        self.graph.replace(package_id, package_node.data, status)
        return BuildResult(results=package_node.data.results, failure=failure)

    def _seed(self, package: Package, plan: BuildPlan) -> None:
        package_id = package_node_id(package.name)
        self.graph.reseed(Node.for_package(PackageData(package), Lifecycle.IN_PROGRESS))

        for entry_point in package.entry_points:
            node_id = entry_point_node_id(entry_point.module_id)
            if node_id not in self.graph:
                self.graph.insert(Node.for_entry_point(self._fresh_build(package, entry_point)))
            self.graph.connect(package_id, node_id, EdgeKind.CONTAINS)

        for entry_point in package.entry_points:
            node_id = entry_point_node_id(entry_point.module_id)
            self.graph.disconnect_all(node_id, EdgeKind.DEPENDS_ON)
            for dep in plan.dependencies[entry_point.module_id]:
                self.graph.connect(node_id, entry_point_node_id(dep), EdgeKind.DEPENDS_ON)

    async def _build_entry_point(
        self, package: Package, entry_point: EntryPoint, plan: BuildPlan
    ) -> tuple[EntryPointResult, StageError | None]:
        module_id = entry_point.module_id
        node_id = entry_point_node_id(module_id)
        artefacts_id = artefact_node_id(module_id)
        if artefacts_id in self.graph:
            self.graph.remove(artefacts_id)

        build = self._fresh_build(package, entry_point)
        scan = plan.scans.get(module_id)
        if scan is not None:
            build = build.evolve(source_files=scan.files)
        self.graph.reseed(Node.for_entry_point(build, Lifecycle.IN_PROGRESS))

        log.info("Building entry point %s", module_id)
        try:
            await self.pipeline(self.graph)
        except StageError as exc:
            self.graph.replace(node_id, self.graph.get(node_id).data, Lifecycle.FAILED)
            log.error("Entry point %s failed in stage '%s'", module_id, exc.stage)  # noqa: TRY400
            result = EntryPointResult(
                module_id=module_id,
                status=Lifecycle.FAILED,
                stage=exc.stage,
                error=str(exc.cause),
            )
            return result, exc

        self.graph.replace(node_id, self.graph.get(node_id).data, Lifecycle.DONE)
        log.info("Built entry point %s", module_id)
        return EntryPointResult(module_id=module_id, status=Lifecycle.DONE), None

    @staticmethod
    def _fresh_build(package: Package, entry_point: EntryPoint) -> EntryPointBuild:
        return EntryPointBuild(
            entry_point=entry_point,
            stage_dir=package.stage_dir(entry_point),
            out_dir=package.out_dir(entry_point),
        )
