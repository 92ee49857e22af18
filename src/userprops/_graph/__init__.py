"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph[T]: A generic, immutable directed graph
- Graph algorithms: topological sort, back-edges, strongly connected components, levels
- The expression dependency graph built from a property tree
"""

from ._algorithms import find_back_edges, longest_path_levels, strongly_connected_components, topological_sort
from ._dependency_graph import DependencyGraph
from ._expression_graph import (
    ExpressionGraph,
    ExpressionNode,
    GraphEdge,
    GraphNode,
    build_expression_dependency_graph,
    extract_expression_deps,
    gather_expression_nodes,
    list_expression_dependents,
)

__all__ = [
    "DependencyGraph",
    "ExpressionGraph",
    "ExpressionNode",
    "GraphEdge",
    "GraphNode",
    "build_expression_dependency_graph",
    "extract_expression_deps",
    "find_back_edges",
    "gather_expression_nodes",
    "list_expression_dependents",
    "longest_path_levels",
    "strongly_connected_components",
    "topological_sort",
]
