"""Typed nodes of the build graph."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from distpack.domain.model import ArtefactSet, EntryPointBuild, Lifecycle, PackageData

type NodeData = PackageData | EntryPointBuild | ArtefactSet


class NodeCategory(StrEnum):
    PACKAGE = "package"
    ENTRY_POINT = "entry-point"
    ARTEFACT_SET = "artefact-set"


class EdgeKind(StrEnum):
    CONTAINS = "contains"
    DEPENDS_ON = "depends-on"
    PRODUCES = "produces"


def category_of(data: NodeData) -> NodeCategory:
    match data:
        case PackageData():
            return NodeCategory.PACKAGE
        case EntryPointBuild():
            return NodeCategory.ENTRY_POINT
        case ArtefactSet():
            return NodeCategory.ARTEFACT_SET


def package_node_id(name: str) -> str:
    return f"package://{name}"


def entry_point_node_id(module_id: str) -> str:
    return f"entry-point://{module_id}"


def artefact_node_id(module_id: str) -> str:
    return f"artefacts://{module_id}"


@dataclass(frozen=True, slots=True)
class Node[T: NodeData]:
    """A graph node: stable identifier, lifecycle tag and an immutable payload.

    The category is derived from the payload variant so the two can never
    disagree.
    """

    id: str
    data: T
    lifecycle: Lifecycle = Lifecycle.NOT_STARTED

    @property
    def category(self) -> NodeCategory:
        return category_of(self.data)

    @classmethod
    def for_package(
        cls, data: PackageData, lifecycle: Lifecycle = Lifecycle.NOT_STARTED
    ) -> Node[PackageData]:
        return Node(package_node_id(data.package.name), data, lifecycle)

    @classmethod
    def for_entry_point(
        cls, data: EntryPointBuild, lifecycle: Lifecycle = Lifecycle.NOT_STARTED
    ) -> Node[EntryPointBuild]:
        return Node(entry_point_node_id(data.module_id), data, lifecycle)

    @classmethod
    def for_artefacts(cls, data: ArtefactSet) -> Node[ArtefactSet]:
        return Node(artefact_node_id(data.module_id), data, Lifecycle.DONE)
