from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from distpack.domain.errors import StageError
from distpack.domain.graph import BuildGraph, Node
from distpack.domain.model import EntryPointBuild, Lifecycle
from distpack.domain.pipeline import Pipeline, SideEffect, Transform, compose, transform

if TYPE_CHECKING:
    from distpack.domain.model import Package


def _recording(name: str, calls: list[str]) -> Transform:
    def _run(graph: BuildGraph) -> BuildGraph:
        calls.append(name)
        return graph

    return Transform(name=name, fn=_run)


def _failing(name: str, error: Exception) -> Transform:
    async def _run(graph: BuildGraph) -> BuildGraph:
        raise error

    return Transform(name=name, fn=_run)


def _graph_with_entry_in_progress(package: Package) -> BuildGraph:
    entry_point = package.primary
    graph = BuildGraph()
    graph.insert(
        Node.for_entry_point(
            EntryPointBuild(
                entry_point=entry_point,
                stage_dir=package.stage_dir(entry_point),
                out_dir=package.out_dir(entry_point),
            ),
            Lifecycle.IN_PROGRESS,
        )
    )
    return graph


def test_compose_runs_transforms_in_order() -> None:
    calls: list[str] = []
    pipeline = compose([_recording("first", calls), _recording("second", calls)])

    result = asyncio.run(pipeline(BuildGraph()))

    assert isinstance(result, BuildGraph)
    assert calls == ["first", "second"]


def test_first_failure_short_circuits_and_names_stage(package: Package) -> None:
    calls: list[str] = []
    cause = RuntimeError("tool crashed")
    pipeline = compose(
        [_recording("first", calls), _failing("second", cause), _recording("third", calls)]
    )

    with pytest.raises(StageError) as excinfo:
        asyncio.run(pipeline(_graph_with_entry_in_progress(package)))

    assert calls == ["first"]
    assert excinfo.value.stage == "second"
    assert excinfo.value.module_id == "@acme/widgets"
    assert excinfo.value.cause is cause
    assert excinfo.value.__cause__ is cause
    assert "Stage 'second' failed for @acme/widgets: tool crashed" in str(excinfo.value)


def test_nested_pipeline_keeps_innermost_stage_name() -> None:
    inner = compose([_failing("compile", ValueError("bad"))], name="inner")
    outer = compose([inner], name="outer")

    with pytest.raises(StageError) as excinfo:
        asyncio.run(outer(BuildGraph()))

    assert excinfo.value.stage == "compile"
    assert excinfo.value.module_id is None


def test_compose_rejects_duplicate_stage_names() -> None:
    with pytest.raises(ValueError, match="Duplicate stage names"):
        compose([_recording("same", []), _recording("same", [])])


def test_transform_must_return_graph() -> None:
    broken = Transform(name="broken", fn=lambda graph: None)  # type: ignore[arg-type,return-value]

    with pytest.raises(TypeError, match="expected BuildGraph"):
        asyncio.run(broken(BuildGraph()))


def test_transform_validates_name_and_callable() -> None:
    with pytest.raises(ValueError, match="cannot be empty"):
        Transform(name="  ", fn=lambda graph: graph)
    with pytest.raises(TypeError, match="must be callable"):
        Transform(name="x", fn="nope")  # type: ignore[arg-type]
    assert Transform(name=" padded ", fn=lambda graph: graph).name == "padded"


def test_transform_decorator_records_side_effects() -> None:
    @transform("touch", side_effects=[SideEffect.FILESYSTEM])
    async def touch(graph: BuildGraph) -> BuildGraph:
        return graph

    assert touch.name == "touch"
    assert touch.side_effects == frozenset({SideEffect.FILESYSTEM})
    assert compose([touch]).side_effects == frozenset({SideEffect.FILESYSTEM})


def test_pipeline_substitute_replaces_by_name() -> None:
    calls: list[str] = []
    pipeline = Pipeline(stages=(_recording("a", calls), _recording("b", calls)), name="demo")

    replaced = pipeline.substitute({"b": _recording("b", ["unused"])})
    extended = pipeline.with_stage(_recording("c", calls)).extend([_recording("d", calls)])

    assert replaced.stage_names == ("a", "b")
    assert replaced.stages[0] is pipeline.stages[0]
    assert replaced.stages[1] is not pipeline.stages[1]
    assert extended.stage_names == ("a", "b", "c", "d")
    assert pipeline.stage_names == ("a", "b")
    with pytest.raises(ValueError, match="Unknown stage names: z"):
        pipeline.substitute({"z": _recording("z", calls)})


def test_pipeline_run_threads_graph() -> None:
    calls: list[str] = []
    pipeline = Pipeline(stages=(_recording("a", calls),))

    asyncio.run(pipeline.run(BuildGraph()))

    assert calls == ["a"]
