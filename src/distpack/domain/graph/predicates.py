"""Predicates for locating nodes in the build graph.

Stages never hold references to nodes; they ask the store for "the entry point
currently in progress" and the like. Predicates carry a description so lookup
failures read well in logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from distpack.domain.model import EntryPointBuild, Lifecycle

from .node import NodeCategory

if TYPE_CHECKING:
    from collections.abc import Callable

    from .node import Node


@dataclass(frozen=True, slots=True)
class NodePredicate:
    description: str
    test: Callable[[Node[Any]], bool]

    def __call__(self, node: Node[Any]) -> bool:
        return self.test(node)

    def __and__(self, other: NodePredicate) -> NodePredicate:
        return all_of(self, other)

    def __str__(self) -> str:
        return self.description


def all_of(*predicates: NodePredicate) -> NodePredicate:
    return NodePredicate(
        " and ".join(p.description for p in predicates),
        lambda node: all(p(node) for p in predicates),
    )


def is_category(category: NodeCategory) -> NodePredicate:
    return NodePredicate(f"category is {category}", lambda node: node.category is category)


def is_package() -> NodePredicate:
    return is_category(NodeCategory.PACKAGE)


def is_entry_point() -> NodePredicate:
    return is_category(NodeCategory.ENTRY_POINT)


def is_artefact_set() -> NodePredicate:
    return is_category(NodeCategory.ARTEFACT_SET)


def has_lifecycle(lifecycle: Lifecycle) -> NodePredicate:
    return NodePredicate(f"lifecycle is {lifecycle}", lambda node: node.lifecycle is lifecycle)


def is_entry_point_in_progress() -> NodePredicate:
    return is_entry_point() & has_lifecycle(Lifecycle.IN_PROGRESS)


def with_module_id(module_id: str) -> NodePredicate:
    def _test(node: Node[Any]) -> bool:
        module = getattr(node.data, "module_id", None)
        return module == module_id

    return NodePredicate(f"module id is {module_id}", _test)


def owns_source_file(path: object) -> NodePredicate:
    def _test(node: Node[Any]) -> bool:
        return isinstance(node.data, EntryPointBuild) and path in node.data.source_files

    return NodePredicate(f"sources include {path}", _test)
