"""Backend selection for real and simulated runs."""

from __future__ import annotations

import logging

from robocaty.backends.base import SourceSystem, TargetSystem
from robocaty.config import BridgeConfig
from robocaty.mapping import MappingTable

logger = logging.getLogger(__name__)


def is_simulation_mode(config: BridgeConfig) -> bool:
    return bool(config.simulate)


def create_backends(
    config: BridgeConfig, table: MappingTable
) -> tuple[SourceSystem, TargetSystem]:
    """
    Build (unconnected) source and target adapters for ``config``.

    Simulation mode seeds in-memory backends from the mapping table so every
    directive has a matching symbol and signal.
    """
    if is_simulation_mode(config):
        from robocaty.backends.simulated import seed_from_table

        logger.info("Simulation mode: using in-memory ADS and robot backends")
        return seed_from_table(table)

    # Vendor libraries are only imported when a real run is requested
    from robocaty.backends.ads_source import AdsSource
    from robocaty.backends.rws_target import RwsTarget

    source = AdsSource(config.ams_net_id, config.ads_port, config.ads_ip)
    target = RwsTarget(
        config.rws_host,
        user=config.rws_user,
        password=config.rws_password,
        timeout_s=config.rws_timeout_s,
    )
    return source, target
