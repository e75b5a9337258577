"""Integration test fixtures."""

from unittest.mock import patch

import pytest

from robocaty.backends.simulated import seed_from_table
from robocaty.config import BridgeConfig
from robocaty.mapping import MappingTable
from robocaty.server.controller import LifecycleController

MAPPING_TEXT = """\
# Cell 1 handshake
r# MAIN.bStart      : DI_Start    [1]
r# MAIN.nProgram    : GI_Program  [8]
r# MAIN.fOverride   : AI_Override [64]
w# MAIN.bDone       : DO_Done     [1]
w# MAIN.nStatusWord : GO_Status   [16]
w# MAIN.fTcpSpeed   : AO_TcpSpeed [0]
"""


@pytest.fixture
def mapping_path(tmp_path):
    path = tmp_path / "vars_robot.txt"
    path.write_text(MAPPING_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def bridge(mapping_path):
    """
    Running controller wired to simulated backends seeded from the table.

    Yields (controller, source, target); always shut down afterwards.
    """
    table = MappingTable.load(mapping_path)
    source, target = seed_from_table(table)
    config = BridgeConfig(
        mapping_file=str(mapping_path),
        cycle_time_ms=10,
        grace_s=1.0,
        stop_quantum_s=0.005,
        simulate=True,
        high_priority=False,
    )
    with patch("robocaty.server.controller.atexit"):
        controller = LifecycleController(config, table, source, target)
        controller.start()
        try:
            yield controller, source, target
        finally:
            controller.shutdown()
