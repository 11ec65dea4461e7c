"""
Simulation scenarios for the p2p network simulator.

Each scenario drives a complete simulation and reports on one aspect of
the protocols.
"""

from .mining_network import MiningNetworkScenario, run_mining_scenario
from .partition_heal import PartitionHealScenario, run_partition_scenario

__all__ = [
    "MiningNetworkScenario",
    "PartitionHealScenario",
    "run_mining_scenario",
    "run_partition_scenario",
]
