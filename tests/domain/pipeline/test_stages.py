from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from distpack.adapters import write_package_transform
from distpack.domain.errors import PreconditionError, StageError
from distpack.domain.graph import BuildGraph, Node
from distpack.domain.model import EntryPointBuild, Lifecycle
from distpack.domain.pipeline import (
    CLEAN,
    COMPILE,
    STANDARD_STAGES,
    Transform,
    clean_transform,
    compose,
    entry_point_pipeline,
    entry_point_stage,
)

from tests.support.builds import FakeBundler, FakeCompiler, make_pipeline

if TYPE_CHECKING:
    from distpack.domain.model import Package


def _build(package: Package, index: int = 0) -> EntryPointBuild:
    entry_point = package.entry_points[index]
    return EntryPointBuild(
        entry_point=entry_point,
        stage_dir=package.stage_dir(entry_point),
        out_dir=package.out_dir(entry_point),
    )


async def _identity(build: EntryPointBuild, /) -> EntryPointBuild:
    return build


def test_standard_pipeline_has_fixed_stage_order() -> None:
    assert make_pipeline().stage_names == STANDARD_STAGES
    assert STANDARD_STAGES[0] == CLEAN
    assert STANDARD_STAGES[-1] == "write-package"


def test_entry_point_stage_without_node_in_progress_raises_precondition() -> None:
    stage = entry_point_stage(COMPILE, _identity)

    with pytest.raises(PreconditionError, match="no entry point in progress"):
        asyncio.run(stage(BuildGraph()))


def test_precondition_failure_is_flagged_on_stage_error() -> None:
    pipeline = compose([entry_point_stage(COMPILE, _identity)])

    with pytest.raises(StageError) as excinfo:
        asyncio.run(pipeline(BuildGraph()))

    assert excinfo.value.is_precondition_failure


def test_entry_point_stage_rejects_two_nodes_in_progress(package: Package) -> None:
    graph = BuildGraph()
    graph.insert(Node.for_entry_point(_build(package, 0), Lifecycle.IN_PROGRESS))
    graph.insert(Node.for_entry_point(_build(package, 1), Lifecycle.IN_PROGRESS))

    with pytest.raises(PreconditionError, match="several entry points"):
        asyncio.run(entry_point_stage(COMPILE, _identity)(graph))


def test_entry_point_stage_stores_updated_payload(package: Package) -> None:
    graph = BuildGraph()
    node = Node.for_entry_point(_build(package), Lifecycle.IN_PROGRESS)
    graph.insert(node)
    sources = frozenset({package.primary.entry_file_path})

    async def _step(build: EntryPointBuild, /) -> EntryPointBuild:
        return build.evolve(source_files=sources)

    asyncio.run(entry_point_stage("scan", _step)(graph))

    assert graph.get(node.id).data.source_files == sources
    assert graph.get(node.id).lifecycle is Lifecycle.IN_PROGRESS


def test_entry_point_stage_rejects_payload_of_other_entry_point(package: Package) -> None:
    graph = BuildGraph()
    graph.insert(Node.for_entry_point(_build(package), Lifecycle.IN_PROGRESS))
    other = _build(package, 1)

    async def _step(build: EntryPointBuild, /) -> EntryPointBuild:
        return other

    with pytest.raises(ValueError, match="expected @acme/widgets"):
        asyncio.run(entry_point_stage("swap", _step)(graph))


def test_clean_removes_staging_directories(package: Package) -> None:
    build = _build(package)
    (build.stage_dir / "esm5").mkdir(parents=True)
    (build.out_dir).mkdir(parents=True)
    (build.out_dir / "stale.d.ts").write_text("stale")
    graph = BuildGraph()
    graph.insert(Node.for_entry_point(build, Lifecycle.IN_PROGRESS))

    asyncio.run(clean_transform()(graph))

    assert not build.stage_dir.exists()
    assert not build.out_dir.exists()


def test_clean_without_entry_point_in_progress_is_a_no_op() -> None:
    graph = BuildGraph()

    assert asyncio.run(clean_transform()(graph)) is graph


def test_overrides_substitute_named_stage() -> None:
    def _fake_compile(graph: BuildGraph) -> BuildGraph:
        return graph

    override = Transform(name=COMPILE, fn=_fake_compile)
    pipeline = entry_point_pipeline(
        render_stylesheets=_identity,
        render_templates=_identity,
        transform_sources=_identity,
        compile_sources=FakeCompiler(),
        write_bundles=FakeBundler(),
        relocate_source_maps=_identity,
        write_package=write_package_transform(),
        overrides={COMPILE: override},
    )

    assert pipeline.stage_names == STANDARD_STAGES
    assert pipeline.stages[STANDARD_STAGES.index(COMPILE)] is override


def test_write_package_transform_must_carry_its_stage_name() -> None:
    with pytest.raises(ValueError, match="write-package"):
        entry_point_pipeline(
            render_stylesheets=_identity,
            render_templates=_identity,
            transform_sources=_identity,
            compile_sources=_identity,
            write_bundles=_identity,
            relocate_source_maps=_identity,
            write_package=Transform(name="publish", fn=lambda graph: graph),
        )
