"""Compose ordered transforms into a single pipeline transform."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from distpack.domain.errors import StageError
from distpack.domain.graph import is_entry_point_in_progress

from .transform import SideEffect, Transform

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from distpack.domain.graph import BuildGraph

log = getLogger(__name__)


def _module_in_progress(graph: BuildGraph) -> str | None:
    nodes = graph.filter(is_entry_point_in_progress())
    if len(nodes) != 1:
        return None
    return nodes[0].data.module_id


def compose(transforms: Sequence[Transform], *, name: str = "pipeline") -> Transform:
    """Thread the graph through ``transforms`` in order.

    The first failing transform aborts the sequence. Its error surfaces as a
    ``StageError`` naming the transform and the entry point in progress.
    """

    stages = tuple(transforms)
    names = [stage.name for stage in stages]
    duplicates = sorted({stage_name for stage_name in names if names.count(stage_name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate stage names in {name}: {', '.join(duplicates)}")

    async def _run(graph: BuildGraph) -> BuildGraph:
        for stage in stages:
            module_id = _module_in_progress(graph)
            log.debug("Stage start: %s (entry_point=%s)", stage.name, module_id)
            try:
                graph = await stage(graph)
            except StageError:
                raise
            except Exception as exc:
                module_id = _module_in_progress(graph) or module_id
                log.error(  # noqa: TRY400
                    "Stage failed: %s (entry_point=%s): %s", stage.name, module_id, exc
                )
                raise StageError(stage.name, module_id, exc) from exc
            log.debug("Stage done: %s (entry_point=%s)", stage.name, module_id)
        return graph

    side_effects: frozenset[SideEffect] = frozenset().union(*(s.side_effects for s in stages))
    return Transform(name=name, fn=_run, side_effects=side_effects)


@dataclass(frozen=True, slots=True)
class Pipeline:
    """An ordered, immutable list of stages.

    Stages can be appended or substituted by name; the pipeline itself never
    looks inside them.
    """

    stages: tuple[Transform, ...] = field(default_factory=tuple)
    name: str = "pipeline"

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def with_stage(self, stage: Transform) -> Pipeline:
        """Return a new pipeline appending ``stage`` at the end."""

        return Pipeline(stages=(*self.stages, stage), name=self.name)

    def extend(self, stages: Iterable[Transform]) -> Pipeline:
        return Pipeline(stages=(*self.stages, *tuple(stages)), name=self.name)

    def substitute(self, overrides: Mapping[str, Transform]) -> Pipeline:
        """Return a new pipeline with stages replaced by name."""

        unknown = sorted(set(overrides) - set(self.stage_names))
        if unknown:
            raise ValueError(f"Unknown stage names: {', '.join(unknown)}")
        return Pipeline(
            stages=tuple(overrides.get(stage.name, stage) for stage in self.stages),
            name=self.name,
        )

    def as_transform(self) -> Transform:
        return compose(self.stages, name=self.name)

    async def run(self, graph: BuildGraph) -> BuildGraph:
        return await self.as_transform()(graph)
