"""Immutable directed graph of "reads" relationships."""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ._algorithms import find_back_edges, longest_path_levels, strongly_connected_components, topological_sort

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DependencyGraph(Generic[T]):
    """Directed graph where an edge ``a -> b`` means ``b`` reads ``a``.

    For the expression graph the nodes are property paths: an expression node
    is a successor of every path it reads. Cycles are allowed here and reported
    by :meth:`has_cycle` and :meth:`cyclic_nodes`; callers decide what to do
    with them.
    """

    _order: tuple[T, ...] = ()
    _inputs: dict[T, frozenset[T]] = field(default_factory=dict)
    _readers: dict[T, frozenset[T]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[T, T]], nodes: Iterable[T] = ()) -> "DependencyGraph[T]":
        """Build a graph from ``(source, reader)`` pairs.

        ``nodes`` are registered before any edge endpoint, so they keep their
        position in :attr:`ordered_nodes` even when unconnected.

        Example:
            >>> graph = DependencyGraph.from_edges([("price", "total"), ("total", "label")])
            >>> sorted(graph.descendants("price"))
            ['label', 'total']

        """
        inputs: defaultdict[T, set[T]] = defaultdict(set)
        readers: defaultdict[T, set[T]] = defaultdict(set)
        seen: dict[T, None] = dict.fromkeys(nodes)

        for source, reader in edges:
            seen.setdefault(source)
            seen.setdefault(reader)
            inputs[reader].add(source)
            readers[source].add(reader)

        return cls(
            _order=tuple(seen),
            _inputs={node: frozenset(inputs[node]) for node in seen},
            _readers={node: frozenset(readers[node]) for node in seen},
        )

    @property
    def nodes(self) -> frozenset[T]:
        return frozenset(self._order)

    @property
    def ordered_nodes(self) -> tuple[T, ...]:
        """Nodes in registration order."""
        return self._order

    def predecessors(self, node: T) -> frozenset[T]:
        """Nodes that ``node`` reads directly."""
        return self._inputs.get(node, frozenset())

    def successors(self, node: T) -> frozenset[T]:
        """Nodes reading ``node`` directly."""
        return self._readers.get(node, frozenset())

    def roots(self) -> frozenset[T]:
        """Nodes that read nothing."""
        return frozenset(node for node in self._order if not self._inputs[node])

    def descendants(self, node: T) -> frozenset[T]:
        """Everything that transitively reads ``node``.

        ``node`` itself is part of the result only when it lies on a cycle.
        """
        reached: set[T] = set()
        pending = list(self.successors(node))
        while pending:
            current = pending.pop()
            if current in reached:
                continue
            reached.add(current)
            pending.extend(self.successors(current))
        return frozenset(reached)

    def topological_order(self) -> list[T]:
        """Inputs before their readers.

        Raises:
            ValueError: If the graph has a cycle.

        """
        return topological_sort(self._readers)

    def has_cycle(self) -> bool:
        return bool(find_back_edges(self._readers))

    def cyclic_nodes(self) -> frozenset[T]:
        """Nodes on a cycle, self-loops included."""
        on_cycle: set[T] = set()
        for component in strongly_connected_components(self._readers):
            if len(component) > 1:
                on_cycle.update(component)
                continue
            (node,) = component
            if node in self._readers[node]:
                on_cycle.add(node)
        return frozenset(on_cycle)

    def levels(self) -> dict[T, int]:
        """Longest-path depth of each node; cycle members go one level past the deepest layered node."""
        return longest_path_levels(self._readers)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, node: T) -> bool:
        return node in self._inputs
