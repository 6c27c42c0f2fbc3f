"""Transforms: named, composable units of work over the build graph."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from distpack.domain.graph import BuildGraph

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

type TransformFn = Callable[[BuildGraph], BuildGraph | Awaitable[BuildGraph]]


class SideEffect(StrEnum):
    """Effects a transform has outside the graph. Documentation only."""

    FILESYSTEM = "filesystem"
    EXTERNAL_TOOL = "external-tool"


@dataclass(frozen=True, slots=True)
class Transform:
    """A function from graph to graph, optionally asynchronous."""

    name: str
    fn: TransformFn
    side_effects: frozenset[SideEffect] = frozenset()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError(f"Transform name must be a string (type={type(self.name).__name__})")
        name = self.name.strip()
        if not name:
            raise ValueError("Transform name cannot be empty")
        object.__setattr__(self, "name", name)
        if not callable(self.fn):
            raise TypeError(f"Transform fn must be callable (type={type(self.fn).__name__})")

    async def __call__(self, graph: BuildGraph) -> BuildGraph:
        result = self.fn(graph)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, BuildGraph):
            raise TypeError(
                f"Transform {self.name} returned {type(result).__name__}, expected BuildGraph"
            )
        return result


def transform(
    name: str, *, side_effects: Iterable[SideEffect] = ()
) -> Callable[[TransformFn], Transform]:
    """Decorator turning a plain (async) function into a ``Transform``."""

    def _decorate(fn: TransformFn) -> Transform:
        return Transform(name=name, fn=fn, side_effects=frozenset(side_effects))

    return _decorate
