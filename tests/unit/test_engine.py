"""Unit tests for the synchronization engine cycle."""

import threading
import time

import numpy as np

from robocaty.backends.simulated import SimulatedSource, SimulatedTarget, seed_from_table
from robocaty.mapping import MappingTable, parse_lines
from robocaty.protocol.types import SignalKind, TransferStatus
from robocaty.server.engine import SynchronizationEngine
from robocaty.server.state import EngineState


def _engine(lines, source=None, target=None, interval_s=0.01):
    table = MappingTable(parse_lines(lines))
    if source is None or target is None:
        seeded_source, seeded_target = seed_from_table(table)
        source = source or seeded_source
        target = target or seeded_target
    source.connect()
    target.connect()
    state = EngineState()
    engine = SynchronizationEngine(table, source, target, state, interval_s=interval_s, quantum_s=0.005)
    return engine, source, target, state


class TestCycleReport:
    def test_one_entry_per_directive_in_table_order(self):
        engine, source, target, _ = _engine(
            ["r# A : DO_A [1]", "w# B : GI_B [8]", "r# C : AO_C [0]"]
        )
        report = engine.run_cycle()

        assert report.cycle == 1
        assert [e.source_path for e in report.entries] == ["A", "B", "C"]
        assert report.ok_count == 3
        assert report.failed_count == 0

    def test_failure_in_middle_directive_is_isolated(self):
        engine, source, target, _ = _engine(
            ["r# A : AO_A [0]", "r# B : AO_B [0]", "r# C : AO_C [0]"]
        )
        source.set("A", 1.5)
        source.set("C", 2.5)
        source.read_errors["B"] = RuntimeError("symbol read exploded")

        report = engine.run_cycle()

        statuses = [e.status for e in report.entries]
        assert statuses == [TransferStatus.OK, TransferStatus.TRANSFER_ERROR, TransferStatus.OK]
        assert report.entries[1].message == "symbol read exploded"
        assert report.entries[1].display_value == "ERR"
        assert target.get("AO_A") == 1.5
        assert target.get("AO_C") == 2.5

        # The next cycle runs normally
        del source.read_errors["B"]
        assert engine.run_cycle().ok_count == 3

    def test_missing_source_and_target(self):
        source = SimulatedSource({"A": 1})
        target = SimulatedTarget({"GO_B": SignalKind.GROUP})
        engine, _, _, _ = _engine(
            ["r# A : GO_Missing [8]", "r# Gone : GO_B [8]", "w# A : GI_Missing [8]"],
            source=source,
            target=target,
        )
        report = engine.run_cycle()

        first, second, third = report.entries
        assert first.status is TransferStatus.MISSING_TARGET
        assert first.display_value == "---"
        assert second.status is TransferStatus.MISSING_SOURCE
        assert second.display_value == "ERR"
        assert third.status is TransferStatus.MISSING_TARGET
        assert target.total_writes == 0


class TestSourceToTarget:
    def test_bool_change_suppression(self):
        engine, source, target, _ = _engine(["r# MAIN.bTrig : DI_Start [1]"])
        source.set("MAIN.bTrig", True)

        engine.run_cycle()
        engine.run_cycle()

        assert target.get("DI_Start") == 1.0
        assert target.write_count("DI_Start") == 1
        assert engine.stats.suppressed == 1

    def test_bool_unchanged_false_never_writes(self):
        engine, source, target, _ = _engine(["r# MAIN.bTrig : DI_Start [1]"])
        engine.run_cycle()
        assert target.write_count("DI_Start") == 0
        assert target.mastership_requests == 0

    def test_numeric_always_writes(self):
        engine, source, target, _ = _engine(["r# MAIN.nWord : GO_Word [16]"])
        source.set("MAIN.nWord", 513)

        engine.run_cycle()
        engine.run_cycle()

        assert target.get("GO_Word") == 513.0
        assert target.write_count("GO_Word") == 2

    def test_mastership_released_after_each_write(self):
        engine, source, target, _ = _engine(["r# A : AO_A [0]", "r# B : AO_B [0]"])
        engine.run_cycle()

        assert target.mastership_requests == 2
        assert target.mastership_releases == 2
        assert not target.mastership_held

    def test_mastership_released_when_write_fails(self):
        engine, source, target, _ = _engine(["r# A : AO_A [0]"])
        target.write_failures["AO_A"] = "signal is read-only"

        report = engine.run_cycle()

        assert report.entries[0].status is TransferStatus.TRANSFER_ERROR
        assert report.entries[0].message == "signal is read-only"
        assert target.mastership_releases == target.mastership_requests == 1

    def test_mastership_refused_is_transfer_error(self):
        engine, source, target, _ = _engine(["r# A : AO_A [0]"])
        target.fail_mastership = True

        report = engine.run_cycle()

        assert report.entries[0].status is TransferStatus.TRANSFER_ERROR
        assert "Mastership" in report.entries[0].message
        assert target.write_count("AO_A") == 0

    def test_numeric_into_digital_signal_is_transfer_error(self):
        source = SimulatedSource({"MAIN.n": 5})
        target = SimulatedTarget({"DO_X": SignalKind.DIGITAL})
        engine, _, _, _ = _engine(["r# MAIN.n : DO_X [8]"], source=source, target=target)

        entry = engine.run_cycle().entries[0]

        assert entry.status is TransferStatus.TRANSFER_ERROR
        assert "digital" in entry.message
        assert target.write_count("DO_X") == 0

    def test_bool_into_analog_signal_writes_one_or_zero(self):
        source = SimulatedSource({"MAIN.b": True})
        target = SimulatedTarget({"AO_X": SignalKind.ANALOG})
        engine, _, _, _ = _engine(["r# MAIN.b : AO_X [1]"], source=source, target=target)

        engine.run_cycle()

        assert target.get("AO_X") == 1.0


class TestTargetToSource:
    def test_narrowing_into_uint8(self):
        engine, source, target, _ = _engine(["w# MAIN.nByte : GI_Byte [8]"])
        target.set("GI_Byte", 300.0)

        entry = engine.run_cycle().entries[0]

        assert entry.ok
        assert entry.display_value == "44"
        assert source.get("MAIN.nByte") == 44
        assert isinstance(source.get("MAIN.nByte"), np.uint8)

    def test_always_overwrites(self):
        engine, source, target, _ = _engine(["w# MAIN.bDone : DI_Done [1]"])
        target.set("DI_Done", 1.0)

        engine.run_cycle()
        engine.run_cycle()

        assert source.get("MAIN.bDone") is True
        assert source.write_counts["MAIN.bDone"] == 2
        assert target.mastership_requests == 0

    def test_missing_source_symbol_on_write_is_transfer_error(self):
        source = SimulatedSource({})
        target = SimulatedTarget({"GI_A": SignalKind.GROUP})
        engine, _, _, _ = _engine(["w# MAIN.gone : GI_A [16]"], source=source, target=target)

        entry = engine.run_cycle().entries[0]

        assert entry.status is TransferStatus.TRANSFER_ERROR
        assert "symbol not found" in entry.message


class TestRunLoop:
    def test_run_stops_between_cycles(self):
        engine, source, target, state = _engine(["r# A : AO_A [0]"], interval_s=0.01)
        reports = []

        def on_report(report):
            reports.append(report)
            if len(reports) == 3:
                state.request_stop()

        engine.run(on_report=on_report)

        assert len(reports) == 3
        assert not state.running
        assert [r.cycle for r in reports] == [1, 2, 3]

    def test_cycle_level_exception_does_not_end_loop(self):
        engine, source, target, state = _engine(["r# A : AO_A [0]"], interval_s=0.005)
        calls = []

        def flaky(report):
            calls.append(report.cycle)
            if len(calls) == 1:
                raise RuntimeError("display failed")
            state.request_stop()

        engine.run(on_report=flaky)

        assert calls == [1, 2]

    def test_stop_interrupts_long_sleep(self):
        engine, source, target, state = _engine(["r# A : AO_A [0]"], interval_s=30.0)
        worker = threading.Thread(target=engine.run, daemon=True)
        worker.start()
        deadline = time.monotonic() + 2.0
        while engine.stats.cycles == 0 and time.monotonic() < deadline:
            state.wait_for_stop(0.005)
        state.request_stop()
        worker.join(timeout=2.0)
        assert not worker.is_alive()
        assert engine.stats.cycles == 1


class TestStatusText:
    def test_every_status_has_a_description(self):
        from robocaty.server.engine import _describe

        texts = {status: _describe(status) for status in TransferStatus}

        assert texts[TransferStatus.OK] == "ok"
        assert texts[TransferStatus.MISSING_SOURCE] == "ADS symbol missing"
        assert texts[TransferStatus.MISSING_TARGET] == "robot signal missing"
        assert texts[TransferStatus.TRANSFER_ERROR] == "transfer failed"
