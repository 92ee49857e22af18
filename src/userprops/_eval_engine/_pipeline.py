"""The evaluation pipeline: expressions, then validation, then watchers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from userprops._config import EngineConfig, get_engine_config
from userprops._telemetry import EventType, PipelineCompletePayload, Telemetry, UserPropsRuntime, get_runtime

from ._expressions import run_expression_phase
from ._validation import validate_tree
from ._watchers import WatcherResult, run_watchers

if TYPE_CHECKING:
    from collections.abc import Mapping

    from userprops._node import Node

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineMetrics:
    """Figures of one pipeline call.

    Attributes:
        took_ms: Wall-clock duration of the whole call.
        expression_evaluations: Distinct expression nodes actually run.
        expressions_skipped: Expression nodes on a cycle, flagged without running.
        expression_errors: Expression nodes left with an error.
        watchers_triggered: Paths whose watchers fired.
        watcher_errors: Watcher executions that raised.
        cumulative: Copy of the cumulative telemetry after this call.

    """

    took_ms: float
    expression_evaluations: int
    expression_errors: int
    watchers_triggered: int
    watcher_errors: int
    cumulative: Telemetry
    expressions_skipped: int = 0


@dataclass(frozen=True, slots=True)
class PipelineResult:
    expr_changes: list[str]
    validation_errors: dict[str, str]
    watcher_result: WatcherResult
    metrics: PipelineMetrics
    expression_errors: dict[str, str] = field(default_factory=dict)


def evaluate_pipeline(
    root: Node,
    previous_snapshot: Mapping[str, Any] | None = None,
    *,
    config: EngineConfig | None = None,
    runtime: UserPropsRuntime | None = None,
) -> PipelineResult:
    """Run expressions, validation and watchers on ``root``, in that order.

    Node failures are recorded in the result and never raised. The call
    updates the runtime's telemetry and emits a ``pipelineComplete`` event.

    Args:
        root: The tree; expression values are updated in place.
        previous_snapshot: Watcher snapshot returned by the previous call.
        config: Limits to apply; defaults to the active engine config.
        runtime: Telemetry and event bus to use; defaults to the process-wide one.

    Returns:
        The changed paths, validation errors, watcher result and metrics.
        Pass ``result.watcher_result.snapshot`` to the next call.

    Example:
        >>> result = evaluate_pipeline(tree)
        >>> result = evaluate_pipeline(tree, result.watcher_result.snapshot)

    """
    config = config or get_engine_config()
    runtime = runtime or get_runtime()
    started = time.perf_counter()

    report = run_expression_phase(root, config)
    validation_errors = validate_tree(root, config)
    watcher_result = run_watchers(root, previous_snapshot, config)

    took_ms = round((time.perf_counter() - started) * 1000, 2)
    runtime.telemetry.record_pipeline(
        duration_ms=took_ms,
        expressions_evaluated=len(report.evaluated),
        expression_errors=len(report.errors),
        expressions_skipped=len(report.skipped),
        watchers_run=watcher_result.runs,
        watcher_errors=watcher_result.errors,
    )
    metrics = PipelineMetrics(
        took_ms=took_ms,
        expression_evaluations=len(report.evaluated),
        expression_errors=len(report.errors),
        watchers_triggered=len(watcher_result.triggered),
        watcher_errors=watcher_result.errors,
        cumulative=runtime.telemetry.copy(),
        expressions_skipped=len(report.skipped),
    )
    logger.debug(
        "Pipeline took %.2fms: %d expression changes, %d validation errors, %d watchers triggered",
        took_ms,
        len(report.changes),
        len(validation_errors),
        len(watcher_result.triggered),
    )

    runtime.events.emit(
        EventType.PIPELINE_COMPLETE,
        PipelineCompletePayload(
            duration_ms=took_ms,
            expr_changes=list(report.changes),
            watchers_triggered=list(watcher_result.triggered),
            validation_error_count=len(validation_errors),
        ),
    )
    return PipelineResult(
        expr_changes=report.changes,
        validation_errors=validation_errors,
        watcher_result=watcher_result,
        metrics=metrics,
        expression_errors=report.errors,
    )
