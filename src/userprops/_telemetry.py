"""Process-wide telemetry counters and event bus.

Both live on one explicitly created :class:`UserPropsRuntime`. The counters are
only incremented by the pipeline through :meth:`Telemetry.record_pipeline`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, replace
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Events emitted on the user props event bus."""

    PIPELINE_COMPLETE = "pipelineComplete"


@dataclass(frozen=True, slots=True)
class UserPropsEvent:
    type: str
    payload: Any
    ts: float


Listener = Callable[[UserPropsEvent], Any]


@dataclass(frozen=True, slots=True)
class PipelineCompletePayload:
    """Payload of a ``pipelineComplete`` event."""

    duration_ms: float
    expr_changes: list[str]
    watchers_triggered: list[str]
    validation_error_count: int


@dataclass(slots=True)
class Telemetry:
    """Cumulative pipeline counters."""

    pipelines: int = 0
    expressions_evaluated: int = 0
    expressions_skipped: int = 0
    expression_errors: int = 0
    watchers_run: int = 0
    watcher_errors: int = 0
    total_ms: float = 0.0

    def record_pipeline(
        self,
        *,
        duration_ms: float,
        expressions_evaluated: int,
        expression_errors: int,
        expressions_skipped: int = 0,
        watchers_run: int,
        watcher_errors: int,
    ) -> None:
        """Add the figures of one completed pipeline call."""
        self.pipelines += 1
        self.expressions_evaluated += expressions_evaluated
        self.expressions_skipped += expressions_skipped
        self.expression_errors += expression_errors
        self.watchers_run += watchers_run
        self.watcher_errors += watcher_errors
        self.total_ms += duration_ms

    def reset(self) -> None:
        self.pipelines = 0
        self.expressions_evaluated = 0
        self.expressions_skipped = 0
        self.expression_errors = 0
        self.watchers_run = 0
        self.watcher_errors = 0
        self.total_ms = 0.0

    def copy(self) -> Telemetry:
        return replace(self)

    def to_dict(self) -> dict[str, int | float]:
        return asdict(self)


class EventBus:
    """Ordered multi-subscriber publisher.

    Listeners are called synchronously in subscription order. A listener that
    raises is logged and skipped; the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[Listener, None] = {}

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Add ``listener`` and return a callable that removes it again."""
        self._listeners[listener] = None

        def unsubscribe() -> None:
            self._listeners.pop(listener, None)

        return unsubscribe

    def emit(self, event_type: str, payload: Any) -> UserPropsEvent:
        event = UserPropsEvent(type=str(event_type), payload=payload, ts=time.time())
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("User props event listener failed on %s", event.type)
        return event

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass(slots=True)
class UserPropsRuntime:
    """Telemetry and event bus shared by pipeline calls."""

    telemetry: Telemetry = field(default_factory=Telemetry)
    events: EventBus = field(default_factory=EventBus)


_default_runtime = UserPropsRuntime()


def get_runtime() -> UserPropsRuntime:
    """Return the process-wide runtime used when no runtime is passed."""
    return _default_runtime


def get_user_props_telemetry(runtime: UserPropsRuntime | None = None) -> Telemetry:
    """Return a copy of the cumulative counters."""
    return (runtime or _default_runtime).telemetry.copy()


def reset_user_props_telemetry(runtime: UserPropsRuntime | None = None) -> None:
    (runtime or _default_runtime).telemetry.reset()


def on_user_props_event(listener: Listener, runtime: UserPropsRuntime | None = None) -> Callable[[], None]:
    """Subscribe to user props events; call the returned function to unsubscribe."""
    return (runtime or _default_runtime).events.subscribe(listener)


def emit_user_props_event(
    event_type: str,
    payload: Any,
    runtime: UserPropsRuntime | None = None,
) -> UserPropsEvent:
    return (runtime or _default_runtime).events.emit(event_type, payload)
