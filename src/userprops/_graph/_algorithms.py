"""Graph algorithms for dependency graph operations.

All functions take a graph as a mapping from each node to its successors (the
nodes that depend on it). An edge (a -> b) means "b depends on a".
"""

from collections import defaultdict, deque
from collections.abc import Collection, Hashable, Mapping
from enum import IntEnum, auto
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


def topological_sort(successors: Mapping[T, Collection[T]]) -> list[T]:
    """Sort a graph topologically (dependencies before dependents).

    Given a graph represented as a mapping from nodes to their successors
    (nodes that depend on them), return nodes in an order where each node
    appears before all nodes that depend on it.

    Args:
        successors: Mapping from node to collection of nodes that depend on it.
            An edge (a -> b) means "b depends on a".

    Returns:
        List of nodes in topological order.

    Raises:
        ValueError: If the graph contains a cycle.

    Example:
        >>> # a -> b -> c means c depends on b, b depends on a
        >>> topological_sort({"a": ["b"], "b": ["c"], "c": []})
        ['a', 'b', 'c']

    """
    # Calculate in-degree for each node
    indegree: defaultdict[T, int] = defaultdict(int)
    for node, deps in successors.items():
        indegree[node] = indegree.get(node, 0)
        for dep in deps:
            indegree[dep] += 1

    # Start with nodes that have no predecessors (in-degree 0)
    queue = deque([node for node, deg in indegree.items() if deg == 0])
    order: list[T] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for successor in successors.get(node, []):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                queue.append(successor)

    if len(order) != len(indegree):
        msg = "Cycle detected in graph"
        raise ValueError(msg)

    return order


class _Color(IntEnum):
    WHITE = auto()
    GRAY = auto()
    BLACK = auto()


def find_back_edges(successors: Mapping[T, Collection[T]]) -> list[tuple[T, T]]:
    """Find the back-edges of a depth-first walk over the graph.

    Nodes are colored white (unvisited), gray (on the current walk) or black
    (finished). An edge into a gray node closes a cycle, so the graph has a
    cycle iff the result is non-empty.

    Args:
        successors: Mapping from node to collection of nodes that depend on it.

    Returns:
        The back-edges as (source, target) tuples. A self-loop is a back-edge.

    Example:
        >>> find_back_edges({"a": ["b"], "b": ["a"]})
        [('b', 'a')]

    """
    color: dict[T, _Color] = {}
    back_edges: list[tuple[T, T]] = []

    for start in successors:
        if start in color:
            continue
        color[start] = _Color.GRAY
        stack = [(start, iter(successors.get(start, ())))]
        while stack:
            node, remaining = stack[-1]
            for successor in remaining:
                state = color.get(successor, _Color.WHITE)
                if state == _Color.GRAY:
                    back_edges.append((node, successor))
                elif state == _Color.WHITE:
                    color[successor] = _Color.GRAY
                    stack.append((successor, iter(successors.get(successor, ()))))
                    break
            else:
                color[node] = _Color.BLACK
                stack.pop()

    return back_edges


def strongly_connected_components(successors: Mapping[T, Collection[T]]) -> list[frozenset[T]]:
    """Partition the graph into strongly connected components (Tarjan).

    Args:
        successors: Mapping from node to collection of nodes that depend on it.

    Returns:
        The components, each a frozenset of nodes. Every node appears in
        exactly one component; acyclic nodes form singleton components.

    """
    index: dict[T, int] = {}
    lowlink: dict[T, int] = {}
    on_stack: set[T] = set()
    component_stack: list[T] = []
    components: list[frozenset[T]] = []

    def visit(node: T) -> None:
        index[node] = lowlink[node] = len(index)
        component_stack.append(node)
        on_stack.add(node)

    for start in successors:
        if start in index:
            continue
        visit(start)
        work = [(start, iter(successors.get(start, ())))]
        while work:
            node, remaining = work[-1]
            for successor in remaining:
                if successor not in index:
                    visit(successor)
                    work.append((successor, iter(successors.get(successor, ()))))
                    break
                if successor in on_stack:
                    lowlink[node] = min(lowlink[node], index[successor])
            else:
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index[node]:
                    members: list[T] = []
                    while True:
                        member = component_stack.pop()
                        on_stack.discard(member)
                        members.append(member)
                        if member == node:
                            break
                    components.append(frozenset(members))

    return components


def longest_path_levels(successors: Mapping[T, Collection[T]]) -> dict[T, int]:
    """Assign each node its longest-path distance from a source node.

    Sources (nodes without predecessors) are at level 0. Nodes that cannot be
    layered because they are on, or downstream of, a cycle are placed one level
    below the deepest layered node.

    Args:
        successors: Mapping from node to collection of nodes that depend on it.

    Returns:
        Mapping from node to level, in the iteration order of ``successors``.

    """
    indegree: dict[T, int] = dict.fromkeys(successors, 0)
    for deps in successors.values():
        for dep in deps:
            indegree[dep] = indegree.get(dep, 0) + 1

    queue = deque(node for node, deg in indegree.items() if deg == 0)
    level: dict[T, int] = dict.fromkeys(queue, 0)
    while queue:
        node = queue.popleft()
        for successor in successors.get(node, ()):
            level[successor] = max(level.get(successor, 0), level[node] + 1)
            indegree[successor] -= 1
            if indegree[successor] == 0:
                queue.append(successor)

    layered = {node for node, deg in indegree.items() if deg == 0}
    fallback = max((level[n] for n in layered), default=-1) + 1
    return {node: level[node] if node in layered else fallback for node in indegree}
