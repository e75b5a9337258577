"""Unit tests for cycle pacing and cycle statistics."""

import threading
import time

import pytest

from robocaty.server.loop_timer import (
    BUFFER_SIZE,
    CycleMetrics,
    CycleTimer,
    format_cycle_summary,
)
from robocaty.server.state import EngineState


class TestCycleMetrics:
    def test_stats_are_computed_every_interval(self):
        m = CycleMetrics(budget_s=0.1, stats_interval=4)
        for d in (0.01, 0.02, 0.03, 0.04):
            m.record(d)

        assert m.cycle_count == 4
        assert m.mean_cycle_s == pytest.approx(0.025)
        assert m.max_cycle_s == pytest.approx(0.04)
        assert m.overrun_count == 0

    def test_overrun_counting_and_rate_limit(self):
        m = CycleMetrics(budget_s=0.01)
        m.record(0.05)

        assert m.overrun_count == 1
        assert m.check_overrun(now=100.0, rate_limit=10.0) is True
        assert m.check_overrun(now=105.0, rate_limit=10.0) is False
        assert m.check_overrun(now=111.0, rate_limit=10.0) is True

        m.record(0.001)
        assert m.check_overrun(now=200.0, rate_limit=10.0) is False

    def test_ring_buffer_wraps(self):
        m = CycleMetrics(budget_s=1.0, stats_interval=1)
        for _ in range(BUFFER_SIZE + 10):
            m.record(0.002)
        assert m.cycle_count == BUFFER_SIZE + 10
        assert m.mean_cycle_s == pytest.approx(0.002)

    def test_should_log_interval(self):
        m = CycleMetrics(budget_s=1.0)
        assert m.should_log(10.0, 3.0) is True
        assert m.should_log(11.0, 3.0) is False
        assert m.should_log(13.5, 3.0) is True

    def test_summary_format(self):
        m = CycleMetrics(budget_s=0.001, stats_interval=1)
        m.record(0.002)
        text = format_cycle_summary(m)
        assert text.startswith("n=1 mean=2.00ms")
        assert text.endswith("ov=1")


class TestCycleTimer:
    def test_waits_full_interval(self):
        timer = CycleTimer(0.05, EngineState(), quantum_s=0.01)
        start = time.perf_counter()
        assert timer.wait_for_next_cycle() is True
        assert time.perf_counter() - start >= 0.045

    def test_stop_cuts_the_wait_short(self):
        state = EngineState()
        timer = CycleTimer(10.0, state, quantum_s=0.01)
        threading.Timer(0.05, state.request_stop).start()

        start = time.perf_counter()
        assert timer.wait_for_next_cycle() is False
        assert time.perf_counter() - start < 1.0

    def test_already_stopped_returns_immediately(self):
        state = EngineState()
        state.request_stop()
        assert CycleTimer(10.0, state).wait_for_next_cycle() is False

    def test_end_cycle_records_duration(self):
        timer = CycleTimer(1.0, EngineState())
        timer.begin_cycle()
        duration = timer.end_cycle()
        assert duration >= 0.0
        assert timer.metrics.cycle_count == 1
        assert timer.metrics.last_cycle_s == duration
