"""Test step engine registration, outcomes and cancellation."""
from __future__ import annotations

import threading
from concurrent.futures import Future

import pytest

from auto_balance.core.engine import (
    FatalAbort,
    Retry,
    SkipChannel,
    StepCollector,
    StepEngine,
    Stop,
    Success,
)
from auto_balance.core.exceptions import ChainAbortedError


def _run(engine, steps, entry, completion=None, stop_event=None):
    def flow(collector):
        for step_id, fn in steps.items():
            collector.next(step_id, fn)

    th = engine.execute(flow, entry, completion, stop_event=stop_event)
    th.join(5)
    assert not th.is_alive()
    return th


class TestStepCollector:
    def test_chainable_and_rejects_duplicates(self):
        collector = StepCollector()
        assert collector.next("a", lambda: Stop()).next("b", lambda: Stop()) is collector
        assert "a" in collector
        assert len(collector) == 2
        with pytest.raises(ValueError):
            collector.next("a", lambda: Stop())


class TestStepEngine:
    def test_success_and_skip(self, recorder):
        engine = StepEngine(recorder=recorder)
        done = Future()

        def finish():
            done.set_result("ok")
            return Stop()

        steps = {
            "a": lambda: Success("b", delay=0),
            "b": lambda: SkipChannel("c", "skip"),
            "c": finish,
        }
        _run(engine, steps, "a", done)
        assert engine.history == ["a", "b", "c"]
        assert done.result(timeout=1) == "ok"

    def test_retry_then_success(self, recorder):
        engine = StepEngine(recorder=recorder)
        attempts = []

        def flaky():
            attempts.append(1)
            return Retry(delay=0) if len(attempts) < 3 else Stop()

        _run(engine, {"a": flaky}, "a")
        assert engine.history == ["a", "a", "a"]

    def test_retry_is_bounded(self, recorder):
        engine = StepEngine(recorder=recorder, max_repeats=2)
        done = Future()
        _run(engine, {"a": lambda: Retry(delay=0, reason="loop")}, "a", done)
        assert len(engine.history) == 3
        with pytest.raises(ChainAbortedError):
            done.result(timeout=1)

    def test_fatal_abort_sets_exception(self, recorder):
        engine = StepEngine(recorder=recorder)
        done = Future()
        err = RuntimeError("fatal")
        _run(engine, {"a": lambda: FatalAbort(err), "b": lambda: Stop()}, "a", done)
        assert engine.history == ["a"]
        assert done.exception(timeout=1) is err

    def test_step_exception_becomes_fatal(self, recorder):
        engine = StepEngine(recorder=recorder)
        done = Future()

        def boom():
            raise KeyError("x")

        _run(engine, {"a": boom}, "a", done)
        assert isinstance(done.exception(timeout=1), KeyError)

    def test_cancelled_completion_stops_before_next_step(self, recorder):
        engine = StepEngine(recorder=recorder)
        done = Future()
        ran = []

        def first():
            ran.append("a")
            done.cancel()
            return Success("b")

        _run(engine, {"a": first, "b": lambda: ran.append("b") or Stop()}, "a", done)
        assert ran == ["a"]
        assert engine.history == ["a"]

    def test_stop_event_aborts(self, recorder):
        engine = StepEngine(recorder=recorder)
        done = Future()
        stop = threading.Event()

        def first():
            stop.set()
            return Success("b", delay=30)

        _run(engine, {"a": first, "b": lambda: Stop()}, "a", done, stop)
        assert engine.history == ["a"]
        assert isinstance(done.exception(timeout=1), ChainAbortedError)

    def test_unknown_step(self, recorder):
        engine = StepEngine(recorder=recorder)
        done = Future()
        _run(engine, {"a": lambda: Success("missing")}, "a", done)
        assert isinstance(done.exception(timeout=1), ChainAbortedError)

    def test_logs_reach_session(self, recorder):
        engine = StepEngine(recorder=recorder)
        recorder.start_session("engine")
        _run(engine, {"a": lambda: FatalAbort(ValueError("bad"))}, "a", Future())
        text = recorder.end_session()
        assert "E/步骤引擎" in text
        assert "ValueError: bad" in text
