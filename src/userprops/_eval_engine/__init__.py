"""Evaluation engine module for userprops.

This module runs the reactive phases over a property tree. Each phase records
node failures in its result instead of raising.

Key types:
- ExpressionReport: Outcome of the expression phase
- WatcherResult: Fired paths, new snapshot and per-execution logs
- PipelineResult: Combined outcome of one pipeline call
- evaluate_pipeline: Run expressions, validation and watchers in order
"""

from ._expressions import (
    CIRCULAR_DEPENDENCY,
    ExpressionReport,
    coerce_result,
    evaluate_expressions,
    run_expression_phase,
)
from ._pipeline import PipelineMetrics, PipelineResult, evaluate_pipeline
from ._validation import VALIDATION_PRESETS, apply_validation_preset, validate_tree
from ._watchers import WatcherLog, WatcherResult, build_watcher_snapshot, run_watchers

__all__ = [
    "CIRCULAR_DEPENDENCY",
    "VALIDATION_PRESETS",
    "ExpressionReport",
    "PipelineMetrics",
    "PipelineResult",
    "WatcherLog",
    "WatcherResult",
    "apply_validation_preset",
    "build_watcher_snapshot",
    "coerce_result",
    "evaluate_expressions",
    "evaluate_pipeline",
    "run_expression_phase",
    "run_watchers",
    "validate_tree",
]
