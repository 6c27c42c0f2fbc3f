"""In-memory store owning every node of a build.

The store is intentionally explicit and mutable: the orchestrator seeds it,
stages look nodes up by predicate and replace them with updated payloads. Nobody
keeps a node around between stages; every access goes through a lookup so a
replaced payload is always what the next stage sees.

There is no locking. Callers serialize writes by running one stage at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from distpack.domain.errors import (
    AmbiguousError,
    DuplicateNodeError,
    InvalidTransitionError,
    NotFoundError,
)

from .node import EdgeKind, Node, category_of

if TYPE_CHECKING:
    from collections.abc import Callable

    from distpack.domain.model import Lifecycle

    from .node import NodeData

type Predicate = Callable[[Node[Any]], bool]


@dataclass(frozen=True, slots=True)
class Edge:
    source: str
    target: str
    kind: EdgeKind


@dataclass(slots=True)
class BuildGraph:
    """Nodes keyed by identifier plus directed, typed edges between them."""

    _nodes: dict[str, Node[Any]] = field(default_factory=dict[str, Node[Any]], repr=False)
    _edges: dict[Edge, None] = field(default_factory=dict[Edge, None], repr=False)

    @property
    def nodes(self) -> tuple[Node[Any], ...]:
        return tuple(self._nodes.values())

    @property
    def edges(self) -> tuple[Edge, ...]:
        return tuple(self._edges)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._nodes

    def insert(self, node: Node[Any]) -> None:
        if node.id in self._nodes:
            raise DuplicateNodeError(f"Node already exists: {node.id}")
        self._nodes[node.id] = node

    def get(self, identifier: str) -> Node[Any]:
        try:
            return self._nodes[identifier]
        except KeyError:
            raise NotFoundError(f"No node with id {identifier}") from None

    def find(self, predicate: Predicate) -> Node[Any]:
        """Return the single node matching ``predicate``."""

        matches = self.filter(predicate)
        if not matches:
            raise NotFoundError(f"No node matches: {predicate}")
        if len(matches) > 1:
            ids = ", ".join(node.id for node in matches)
            raise AmbiguousError(f"{len(matches)} nodes match '{predicate}': {ids}")
        return matches[0]

    def find_as[T: NodeData](self, predicate: Predicate, data_type: type[T]) -> Node[T]:
        node = self.find(predicate)
        if not isinstance(node.data, data_type):
            raise NotFoundError(
                f"Node {node.id} holds {type(node.data).__name__}, expected {data_type.__name__}"
            )
        return node

    def filter(self, predicate: Predicate) -> tuple[Node[Any], ...]:
        return tuple(node for node in self._nodes.values() if predicate(node))

    def replace[T: NodeData](
        self, identifier: str, data: T, lifecycle: Lifecycle | None = None
    ) -> Node[T]:
        """Swap the payload (and optionally advance the lifecycle) of a node.

        The lifecycle may stay the same or move forward; moving backwards raises
        ``InvalidTransitionError``. The payload variant cannot change.
        """

        current = self.get(identifier)
        target = current.lifecycle if lifecycle is None else lifecycle
        if not current.lifecycle.can_advance_to(target):
            raise InvalidTransitionError(
                f"Node {identifier} cannot move from {current.lifecycle} to {target}"
            )
        if category_of(data) is not current.category:
            raise TypeError(
                f"Node {identifier} is a {current.category} node, "
                f"cannot hold {type(data).__name__}"
            )
        updated = Node(identifier, data, target)
        self._nodes[identifier] = updated
        return updated

    def reseed(self, node: Node[Any]) -> None:
        """Put ``node`` unconditionally; used when a new build run starts."""

        self._nodes[node.id] = node

    def remove(self, identifier: str) -> None:
        self.get(identifier)
        del self._nodes[identifier]
        stale = [edge for edge in self._edges if identifier in (edge.source, edge.target)]
        for edge in stale:
            del self._edges[edge]

    def connect(self, source: str, target: str, kind: EdgeKind) -> None:
        self.get(source)
        self.get(target)
        self._edges.setdefault(Edge(source, target, kind), None)

    def disconnect_all(self, source: str, kind: EdgeKind) -> None:
        """Drop every outgoing edge of ``kind`` from ``source``."""

        stale = [edge for edge in self._edges if edge.source == source and edge.kind is kind]
        for edge in stale:
            del self._edges[edge]

    def successors(self, identifier: str, kind: EdgeKind | None = None) -> tuple[Node[Any], ...]:
        return tuple(
            self._nodes[edge.target]
            for edge in self._edges
            if edge.source == identifier and (kind is None or edge.kind is kind)
        )

    def predecessors(
        self, identifier: str, kind: EdgeKind | None = None
    ) -> tuple[Node[Any], ...]:
        return tuple(
            self._nodes[edge.source]
            for edge in self._edges
            if edge.target == identifier and (kind is None or edge.kind is kind)
        )
