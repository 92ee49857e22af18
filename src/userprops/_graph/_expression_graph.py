"""Dependency graph between expression nodes of a property tree."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from userprops._path import iter_nodes
from ._dependency_graph import DependencyGraph

if TYPE_CHECKING:
    from userprops._node import Node

logger = logging.getLogger(__name__)

# get('a.b') or get("a.b") with a literal path argument.
_GET_CALL_RE = re.compile(r"""\bget\(\s*(['"])([^'"()]+)\1\s*\)""")


def extract_expression_deps(code: str | None) -> list[str]:
    """Statically collect the literal paths passed to ``get(...)`` in a snippet.

    The scan is lexical, so dependencies on branches that never run are
    reported too. Computed paths are not seen.

    Returns:
        The distinct paths in order of first appearance.

    """
    if not code:
        return []
    return list(dict.fromkeys(match.group(2) for match in _GET_CALL_RE.finditer(code)))


@dataclass(frozen=True, slots=True)
class ExpressionNode:
    """A primitive node carrying an expression, with its static dependencies."""

    path: str
    node: Node
    code: str
    deps: tuple[str, ...]


def gather_expression_nodes(root: Node) -> list[ExpressionNode]:
    """Collect expression nodes in traversal order.

    Ref-bound nodes are driven by their component prop, so their expressions
    are ignored.
    """
    gathered: list[ExpressionNode] = []
    for path, node in iter_nodes(root):
        code = node.meta.expression
        if not code or not node.is_primitive or node.meta.ref is not None:
            continue
        gathered.append(ExpressionNode(path=path, node=node, code=code, deps=tuple(extract_expression_deps(code))))
    return gathered


@dataclass(frozen=True, slots=True)
class GraphNode:
    id: str
    level: int
    has_error: bool


@dataclass(frozen=True, slots=True)
class GraphEdge:
    """Edge from a dependency (``source``) to the expression reading it (``target``)."""

    source: str
    target: str


@dataclass(frozen=True, slots=True)
class ExpressionGraph:
    """Layered dependency graph of the expressions in a tree.

    Attributes:
        nodes: Expression nodes in traversal order, then plain dependencies.
        edges: One edge per (dependency, dependent) pair.
        has_cycle: Whether a depth-first walk found a back-edge.
        cyclic: Paths lying on a cycle.
        expressions: The gathered expression nodes.
        graph: The underlying dependency graph.

    """

    nodes: list[GraphNode]
    edges: list[GraphEdge]
    has_cycle: bool
    cyclic: frozenset[str]
    expressions: list[ExpressionNode]
    graph: DependencyGraph[str] = field(repr=False)

    def level_of(self, path: str) -> int:
        for node in self.nodes:
            if node.id == path:
                return node.level
        msg = f"Path not in graph: {path}"
        raise KeyError(msg)

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{nodes, edges, hasCycle}`` shape used for visualization."""
        return {
            "nodes": [{"id": n.id, "level": n.level, "hasError": n.has_error} for n in self.nodes],
            "edges": [{"from": e.source, "to": e.target} for e in self.edges],
            "hasCycle": self.has_cycle,
        }


def build_expression_dependency_graph(root: Node) -> ExpressionGraph:
    """Build the layered dependency graph of every expression in ``root``."""
    expressions = gather_expression_nodes(root)
    expression_paths = [expr.path for expr in expressions]
    edges = [GraphEdge(source=dep, target=expr.path) for expr in expressions for dep in expr.deps]

    graph = DependencyGraph.from_edges(
        ((edge.source, edge.target) for edge in edges),
        nodes=expression_paths + [dep for expr in expressions for dep in expr.deps],
    )
    levels = graph.levels()
    errors = {expr.path for expr in expressions if expr.node.meta.expression_error}
    nodes = [GraphNode(id=p, level=levels[p], has_error=p in errors) for p in graph.ordered_nodes]
    has_cycle = graph.has_cycle()
    cyclic = graph.cyclic_nodes() if has_cycle else frozenset()

    logger.debug(
        "Expression graph: %d nodes, %d edges, cycle=%s",
        len(nodes),
        len(edges),
        has_cycle,
    )
    return ExpressionGraph(
        nodes=nodes,
        edges=edges,
        has_cycle=has_cycle,
        cyclic=cyclic,
        expressions=expressions,
        graph=graph,
    )


def list_expression_dependents(root: Node, path: str) -> list[str]:
    """List the expressions that transitively depend on ``path``.

    A path also affects expressions reading one of its ancestors or
    descendants, since ``get`` on a container returns the whole structure.

    Returns:
        Dependent expression paths in traversal order.

    """
    result = build_expression_dependency_graph(root)
    seeds = [
        node
        for node in result.graph.ordered_nodes
        if node == path or node.startswith(f"{path}.") or path.startswith(f"{node}.")
    ]
    affected: set[str] = set()
    for seed in seeds:
        affected |= result.graph.descendants(seed)
    return [expr.path for expr in result.expressions if expr.path in affected]
