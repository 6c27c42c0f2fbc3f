"""Incremental rebuilds driven by source file changes.

The scheduler keeps one state per entry point and reacts to change batches:
changed files are mapped to the entry points that own them, entry points that
depend on those are added, and the orchestrator rebuilds exactly that subset.
Entry points that are still ``done`` keep their graph nodes and artefacts.

Rebuilds never overlap. Changes that arrive while a rebuild is running are
queued and handled together by the next rebuild.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from distpack.config.errors import ConfigurationError
from distpack.domain.graph import EdgeKind, entry_point_node_id, owns_source_file
from distpack.domain.model import Lifecycle

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from distpack.domain.model import Package
    from distpack.domain.orchestrator import BuildResult, PackageOrchestrator

log = getLogger(__name__)


class EntryPointState(StrEnum):
    CLEAN = "clean"
    STALE = "stale"
    BUILDING = "building"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class WatchScheduler:
    """Single-threaded rebuild loop over one package."""

    orchestrator: PackageOrchestrator
    package: Package
    states: dict[str, EntryPointState] = field(init=False)
    _pending: set[Path] = field(default_factory=set[Path], init=False, repr=False)
    _wakeup: asyncio.Event | None = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)
    _started: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.states = dict.fromkeys(self.package.module_ids, EntryPointState.CLEAN)

    @property
    def pending(self) -> frozenset[Path]:
        return frozenset(self._pending)

    async def initial_build(self) -> BuildResult:
        """Run the first full build; its source scan seeds the ownership map."""

        self._started = True
        for module_id in self.states:
            self.states[module_id] = EntryPointState.BUILDING
        result = await self.orchestrator.build(self.package)
        self._apply(result, attempted=self.states.keys())
        return result

    def notify(self, paths: Iterable[Path | str]) -> None:
        """Queue changed paths for the next rebuild."""

        self._pending.update(Path(path).resolve() for path in paths)
        if self._wakeup is not None:
            self._wakeup.set()

    def affected_entry_points(self, changed: Iterable[Path]) -> frozenset[str]:
        """Entry points owning any of ``changed`` plus everything depending on them."""

        graph = self.orchestrator.graph
        owners: set[str] = set()
        for path in frozenset(changed):
            recorded = graph.filter(owns_source_file(path))
            if recorded:
                owners.update(node.data.module_id for node in recorded)
                continue
            # new files are not in any known source set yet
            owner = self._owner_by_location(path)
            if owner is not None:
                owners.add(owner)

        affected: set[str] = set()
        frontier = list(owners)
        while frontier:
            module_id = frontier.pop()
            if module_id in affected:
                continue
            affected.add(module_id)
            node_id = entry_point_node_id(module_id)
            if node_id in graph:
                frontier.extend(
                    dependent.data.module_id
                    for dependent in graph.predecessors(node_id, EdgeKind.DEPENDS_ON)
                )
        return frozenset(affected)

    async def rebuild_pending(self) -> BuildResult | None:
        """Rebuild the entry points made stale by all changes queued so far.

        Failures are reported and recorded in ``states``; they never raise.
        """

        changed, self._pending = self._pending, set()
        for module_id in self.affected_entry_points(changed):
            self.states[module_id] = EntryPointState.STALE

        targets = [
            module_id
            for module_id, state in self.states.items()
            if state in (EntryPointState.STALE, EntryPointState.FAILED)
        ]
        if not targets:
            log.debug("No entry point affected by %s changed file(s)", len(changed))
            return None

        log.info("Rebuilding %s", ", ".join(targets))
        for module_id in targets:
            self.states[module_id] = EntryPointState.BUILDING
        try:
            result = await self.orchestrator.build(self.package, only=targets)
        except ConfigurationError as exc:
            log.error("Rebuild rejected: %s", exc)  # noqa: TRY400
            for module_id in targets:
                self.states[module_id] = EntryPointState.STALE
            return None

        self._apply(result, attempted=targets)
        if result.success:
            log.info("Rebuilt %s", ", ".join(result.built))
        else:
            log.error(
                "Rebuild failed for %s in stage '%s'; still watching",
                result.failed_module_id,
                result.failed_stage,
            )
        return result

    async def run(self, changes: AsyncIterator[Iterable[Path]]) -> None:
        """Build once, then rebuild on every change batch until ``changes`` ends."""

        if not self._started:
            result = await self.initial_build()
            if not result.success:
                log.error(
                    "Initial build failed for %s in stage '%s'; still watching",
                    result.failed_module_id,
                    result.failed_stage,
                )

        self._wakeup = asyncio.Event()
        self._closed = False
        if self._pending:
            self._wakeup.set()
        producer = asyncio.create_task(self._pump(changes))
        try:
            while True:
                await self._wakeup.wait()
                self._wakeup.clear()
                if self._pending:
                    await self.rebuild_pending()
                if self._closed and not self._pending:
                    break
        finally:
            if not producer.done():
                producer.cancel()
            self._wakeup = None
        await producer

    async def _pump(self, changes: AsyncIterator[Iterable[Path]]) -> None:
        try:
            async for batch in changes:
                self.notify(batch)
        finally:
            self._closed = True
            if self._wakeup is not None:
                self._wakeup.set()

    def _apply(self, result: BuildResult, *, attempted: Iterable[str]) -> None:
        reached: set[str] = set()
        for entry in result.results:
            reached.add(entry.module_id)
            if entry.status is Lifecycle.DONE:
                self.states[entry.module_id] = EntryPointState.DONE
            else:
                self.states[entry.module_id] = EntryPointState.FAILED
        for module_id in attempted:
            if module_id not in reached:
                self.states[module_id] = EntryPointState.STALE

    def _owner_by_location(self, path: Path) -> str | None:
        if path.is_relative_to(self.package.dest) or path.is_relative_to(
            self.package.working_directory
        ):
            return None
        best: str | None = None
        best_depth = -1
        for entry_point in self.package.entry_points:
            root = entry_point.source_root
            if path.is_relative_to(root) and len(root.parts) > best_depth:
                best = entry_point.module_id
                best_depth = len(root.parts)
        return best
