"""Unit tests for shared engine state."""

import threading

from robocaty.server.state import EngineState


class TestEngineState:
    def test_defaults(self):
        state = EngineState()
        assert not state.running
        assert not state.dashboard_enabled
        assert not state.stop_requested

    def test_dashboard_toggle(self):
        state = EngineState(dashboard_enabled=True)
        assert state.toggle_dashboard() is False
        assert state.toggle_dashboard() is True
        state.set_dashboard(False)
        assert not state.dashboard_enabled

    def test_request_stop_reports_first_caller_only(self):
        state = EngineState()
        assert state.request_stop() is True
        assert state.request_stop() is False
        assert state.stop_requested

    def test_concurrent_stop_requests_have_one_winner(self):
        state = EngineState()
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def request():
            barrier.wait()
            first = state.request_stop()
            with lock:
                results.append(first)

        threads = [threading.Thread(target=request) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_wait_for_stop_wakes_on_request(self):
        state = EngineState()
        threading.Timer(0.02, state.request_stop).start()
        assert state.wait_for_stop(timeout=2.0) is True

    def test_wait_for_stop_times_out(self):
        assert EngineState().wait_for_stop(timeout=0.01) is False

    def test_request_stop_does_not_wait_for_flag_lock(self):
        state = EngineState()
        with state._lock:
            assert state.request_stop() is True
            assert state.toggle_dashboard() is True
        assert state.stop_requested
