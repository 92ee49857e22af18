"""Expression evaluation with dependency ordering and a fixpoint loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from userprops._config import EngineConfig, get_engine_config
from userprops._errors import ExpressionError
from userprops._graph import ExpressionNode, build_expression_dependency_graph
from userprops._node import NodeType, parse_number, to_python, to_text, values_equal
from userprops._path import get_node_at_path
from userprops._sandbox import run_snippet

if TYPE_CHECKING:
    from userprops._node import Node, PrimitiveValue

logger = logging.getLogger(__name__)

CIRCULAR_DEPENDENCY = "circular dependency"


@dataclass(frozen=True, slots=True)
class ExpressionReport:
    """Outcome of one expression phase.

    Attributes:
        changes: Paths whose value differs from the start of the phase, in
            traversal order.
        evaluated: Expression paths actually run, in evaluation order.
        skipped: Expression paths on a cycle, flagged instead of run.
        errors: Path to ``expressionError`` for every failing expression.
        passes: Number of full passes run.
        converged: False if the pass ceiling was hit before a stable state.

    """

    changes: list[str] = field(default_factory=list)
    evaluated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    passes: int = 0
    converged: bool = True


class _ReadTracer:
    """The ``get`` binding; records every path an expression reads."""

    def __init__(self, root: Node) -> None:
        self.root = root
        self.paths: set[str] = set()

    def get(self, path: Any) -> Any:
        path = to_text(path)
        self.paths.add(path)
        return to_python(get_node_at_path(self.root, path))


def _overlaps(read: str, changed: str) -> bool:
    """Whether reading ``read`` observes a change at ``changed``."""
    if not read or not changed or read == changed:
        return True
    return read.startswith(f"{changed}.") or changed.startswith(f"{read}.")


def coerce_result(result: Any, node_type: NodeType) -> PrimitiveValue:
    """Coerce an expression result to the fixed type of its node.

    Numbers and booleans keep their type; anything else is first rendered as
    text.

    Raises:
        ExpressionError: If a ``number`` node gets a non-numeric result.

    """
    normalized = result if isinstance(result, bool | int | float) else to_text(result)
    match node_type:
        case NodeType.STRING:
            return to_text(normalized)
        case NodeType.NUMBER:
            number = parse_number(normalized)
            if number is None:
                msg = f"cannot coerce {result!r} to number"
                raise ExpressionError(msg)
            return number
        case NodeType.BOOLEAN:
            if isinstance(normalized, str):
                return normalized not in ("false", "")
            return bool(normalized)
        case _:
            msg = f"cannot store an expression result on a {node_type} node"
            raise ExpressionError(msg)


def _evaluate_one(root: Node, expr: ExpressionNode, config: EngineConfig) -> tuple[bool, set[str]]:
    """Run one expression; return whether its value changed and what it read."""
    node = expr.node
    tracer = _ReadTracer(root)
    try:
        result = run_snippet(
            expr.code,
            {"get": tracer.get, "path": expr.path, "root": root},
            kind="expression",
            path=expr.path,
            require_return=True,
            config=config,
        )
        value = coerce_result(result, node.type)
    except Exception as e:  # noqa: BLE001
        node.meta.expression_error = f"{type(e).__name__}: {e}"
        logger.debug("Expression at %s failed: %s", expr.path, node.meta.expression_error)
        return False, tracer.paths

    node.meta.expression_error = None
    if values_equal(node.value, value):
        return False, tracer.paths
    logger.debug("Expression at %s: %r -> %r", expr.path, node.value, value)
    node.value = value
    return True, tracer.paths


def run_expression_phase(root: Node, config: EngineConfig | None = None) -> ExpressionReport:
    """Evaluate every expression in ``root`` until values are stable.

    Expressions run in non-decreasing dependency level (ties in traversal
    order). A pass is repeated only while some expression read a path that
    changed after it ran in the same pass, up to ``config.max_passes``.
    Expressions on a dependency cycle are not run and get a
    ``circular dependency`` error.

    Args:
        root: The tree; expression nodes are updated in place.
        config: Limits to apply; defaults to the active engine config.

    Returns:
        An ExpressionReport. Failures are recorded on nodes, never raised.

    """
    config = config or get_engine_config()
    graph = build_expression_dependency_graph(root)
    if not graph.expressions:
        return ExpressionReport()

    levels = {node.id: node.level for node in graph.nodes}
    initial = {expr.path: expr.node.value for expr in graph.expressions}
    runnable = sorted(
        (expr for expr in graph.expressions if expr.path not in graph.cyclic),
        key=lambda expr: levels[expr.path],
    )
    blocked = [expr for expr in graph.expressions if expr.path in graph.cyclic]
    for expr in blocked:
        expr.node.meta.expression_error = CIRCULAR_DEPENDENCY
    if blocked:
        logger.debug("Skipping %d expressions on a dependency cycle", len(blocked))

    passes = 0
    converged = not runnable
    while runnable and passes < config.max_passes:
        passes += 1
        changed_at: dict[str, int] = {}
        reads: list[set[str]] = []
        for position, expr in enumerate(runnable):
            changed, read = _evaluate_one(root, expr, config)
            reads.append(read)
            if changed:
                changed_at[expr.path] = position

        stale = any(
            later > position and _overlaps(path, changed_path)
            for position, read in enumerate(reads)
            for path in read
            for changed_path, later in changed_at.items()
        )
        logger.debug("Expression pass %d: %d changed, stale=%s", passes, len(changed_at), stale)
        if not stale:
            converged = True
            break

    if not converged:
        logger.warning("Expressions did not converge after %d passes", passes)

    changes = [expr.path for expr in graph.expressions if not values_equal(initial[expr.path], expr.node.value)]
    errors = {
        expr.path: expr.node.meta.expression_error
        for expr in graph.expressions
        if expr.node.meta.expression_error is not None
    }
    return ExpressionReport(
        changes=changes,
        evaluated=[expr.path for expr in runnable],
        skipped=[expr.path for expr in blocked],
        errors=errors,
        passes=passes,
        converged=converged,
    )


def evaluate_expressions(root: Node, config: EngineConfig | None = None) -> list[str]:
    """Evaluate every expression in ``root`` and return the changed paths."""
    return run_expression_phase(root, config).changes
