"""Build graph: typed nodes, predicates and the store that owns them."""

from __future__ import annotations

from .node import (
    EdgeKind,
    Node,
    NodeCategory,
    NodeData,
    artefact_node_id,
    category_of,
    entry_point_node_id,
    package_node_id,
)
from .predicates import (
    NodePredicate,
    all_of,
    has_lifecycle,
    is_artefact_set,
    is_entry_point,
    is_entry_point_in_progress,
    is_package,
    owns_source_file,
    with_module_id,
)
from .store import BuildGraph, Edge, Predicate

__all__ = [
    "BuildGraph",
    "Edge",
    "EdgeKind",
    "Node",
    "NodeCategory",
    "NodeData",
    "NodePredicate",
    "Predicate",
    "all_of",
    "artefact_node_id",
    "category_of",
    "entry_point_node_id",
    "has_lifecycle",
    "is_artefact_set",
    "is_entry_point",
    "is_entry_point_in_progress",
    "is_package",
    "owns_source_file",
    "package_node_id",
    "with_module_id",
]
