"""Tests for telemetry counters and the event bus."""

import logging

import pytest

from userprops import (
    EventBus,
    Telemetry,
    UserPropsEvent,
    UserPropsRuntime,
    emit_user_props_event,
    get_runtime,
    get_user_props_telemetry,
    on_user_props_event,
    reset_user_props_telemetry,
)


class TestTelemetry:
    """Tests for the Telemetry record."""

    def test_record_pipeline(self) -> None:
        telemetry = Telemetry()
        telemetry.record_pipeline(
            duration_ms=1.5,
            expressions_evaluated=3,
            expression_errors=1,
            watchers_run=2,
            watcher_errors=0,
        )
        telemetry.record_pipeline(
            duration_ms=0.5,
            expressions_evaluated=1,
            expression_errors=0,
            watchers_run=0,
            watcher_errors=1,
        )
        assert telemetry.to_dict() == {
            "pipelines": 2,
            "expressions_evaluated": 4,
            "expressions_skipped": 0,
            "expression_errors": 1,
            "watchers_run": 2,
            "watcher_errors": 1,
            "total_ms": 2.0,
        }

    def test_copy_is_independent(self) -> None:
        telemetry = Telemetry(pipelines=1)
        copy = telemetry.copy()
        copy.pipelines = 5
        assert telemetry.pipelines == 1

    def test_reset(self) -> None:
        telemetry = Telemetry(pipelines=3, total_ms=4.0)
        telemetry.reset()
        assert telemetry == Telemetry()


class TestEventBus:
    """Tests for the ordered multi-subscriber event bus."""

    def test_listeners_called_in_order(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe(lambda e: calls.append(f"first:{e.type}"))
        bus.subscribe(lambda e: calls.append(f"second:{e.payload}"))
        event = bus.emit("custom", 42)
        assert calls == ["first:custom", "second:42"]
        assert isinstance(event, UserPropsEvent)
        assert event.ts > 0

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        calls: list[object] = []
        unsubscribe = bus.subscribe(calls.append)
        assert len(bus) == 1
        unsubscribe()
        unsubscribe()
        bus.emit("x", None)
        assert calls == []
        assert len(bus) == 0

    def test_same_listener_subscribed_once(self) -> None:
        bus = EventBus()
        calls: list[object] = []
        bus.subscribe(calls.append)
        bus.subscribe(calls.append)
        bus.emit("x", None)
        assert len(calls) == 1

    def test_failing_listener_is_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        calls: list[object] = []

        def broken(event: UserPropsEvent) -> None:
            raise RuntimeError(event.type)

        bus.subscribe(broken)
        bus.subscribe(calls.append)
        with caplog.at_level(logging.ERROR, logger="userprops._telemetry"):
            bus.emit("boom", None)
        assert len(calls) == 1
        assert "listener failed on boom" in caplog.text

    def test_listener_may_unsubscribe_during_emit(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        unsubscribe = bus.subscribe(lambda _: (calls.append("once"), unsubscribe()))
        bus.subscribe(lambda _: calls.append("always"))
        bus.emit("x", None)
        bus.emit("x", None)
        assert calls == ["once", "always", "always"]


class TestModuleFunctions:
    """Tests for the functions working on a runtime."""

    def test_explicit_runtime(self) -> None:
        runtime = UserPropsRuntime()
        runtime.telemetry.pipelines = 2
        snapshot = get_user_props_telemetry(runtime)
        snapshot.pipelines = 9
        assert get_user_props_telemetry(runtime).pipelines == 2
        reset_user_props_telemetry(runtime)
        assert runtime.telemetry.pipelines == 0

    def test_default_runtime_events(self) -> None:
        received: list[UserPropsEvent] = []
        unsubscribe = on_user_props_event(received.append)
        try:
            emit_user_props_event("hello", {"n": 1})
        finally:
            unsubscribe()
        assert [(e.type, e.payload) for e in received] == [("hello", {"n": 1})]
        assert get_runtime() is get_runtime()
