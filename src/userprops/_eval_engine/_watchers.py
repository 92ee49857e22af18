"""Watcher execution driven by value snapshots."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from userprops._config import EngineConfig, get_engine_config
from userprops._node import to_python, values_equal
from userprops._path import iter_nodes
from userprops._sandbox import run_snippet

if TYPE_CHECKING:
    from collections.abc import Mapping

    from userprops._node import Node

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]


@dataclass(frozen=True, slots=True)
class WatcherLog:
    """One watcher execution.

    Attributes:
        path: Path of the watched node.
        index: Position of the watcher in the node's watcher list.
        ts: Wall-clock time of the execution (seconds since the epoch).
        duration_ms: Execution time in milliseconds.
        error: ``"<Type>: <message>"`` if the watcher raised, else None.

    """

    path: str
    index: int
    ts: float
    duration_ms: float
    error: str | None = None


@dataclass(frozen=True, slots=True)
class WatcherResult:
    triggered: list[str] = field(default_factory=list)
    snapshot: Snapshot = field(default_factory=dict)
    logs: list[WatcherLog] = field(default_factory=list)

    @property
    def errors(self) -> int:
        """Number of watcher executions that raised."""
        return sum(1 for log in self.logs if log.error is not None)

    @property
    def runs(self) -> int:
        """Number of watcher executions that completed."""
        return sum(1 for log in self.logs if log.error is None)


def build_watcher_snapshot(root: Node) -> Snapshot:
    """Map every primitive path, and every watched container path, to its value."""
    return {
        path: to_python(node)
        for path, node in iter_nodes(root)
        if path and (node.is_primitive or node.meta.watchers)
    }


def _has_changed(previous: Mapping[str, Any] | None, path: str, current: Any) -> bool:
    if previous is None or path not in previous:
        return True
    return not values_equal(previous[path], current)


def run_watchers(
    root: Node,
    previous_snapshot: Mapping[str, Any] | None,
    config: EngineConfig | None = None,
) -> WatcherResult:
    """Run the watchers of every node whose value changed since ``previous_snapshot``.

    Without a previous snapshot, or without an entry for a path, the watchers
    of that path fire. Each watcher gets ``value``, ``previous`` (None on a
    first run), ``path`` and ``root``. A failing watcher is logged and does not
    stop the others.

    Args:
        root: The tree, read after expressions have been evaluated.
        previous_snapshot: The snapshot returned by the previous run, if any.
        config: Limits to apply; defaults to the active engine config.

    Returns:
        The fired paths, the new snapshot and one log entry per execution.

    """
    config = config or get_engine_config()
    snapshot = build_watcher_snapshot(root)
    triggered: list[str] = []
    logs: list[WatcherLog] = []

    for path, node in iter_nodes(root):
        if not node.meta.watchers or not path:
            continue
        current = snapshot[path]
        if not _has_changed(previous_snapshot, path, current):
            continue

        previous = previous_snapshot.get(path) if previous_snapshot is not None else None
        logger.debug("Firing %d watchers at %s", len(node.meta.watchers), path)
        triggered.append(path)
        for index, watcher in enumerate(node.meta.watchers):
            started = time.perf_counter()
            error: str | None = None
            try:
                run_snippet(
                    watcher.script,
                    {"value": to_python(node), "previous": previous, "path": path, "root": root},
                    kind="watcher",
                    path=path,
                    config=config,
                )
            except Exception as e:  # noqa: BLE001
                error = f"{type(e).__name__}: {e}"
                logger.warning("Watcher %d at %s failed: %s", index, path, error)
            logs.append(
                WatcherLog(
                    path=path,
                    index=index,
                    ts=time.time(),
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                    error=error,
                ),
            )

    return WatcherResult(triggered=triggered, snapshot=snapshot, logs=logs)
