"""
Shared fixtures for simulator tests.
"""

import pytest

from p2psim import (
    NakamotoConsensus,
    Protocol,
    Simulation,
    SimulationConfig,
    UnderlayPosition,
)


class RecordingProtocol(Protocol):
    """Records every hook invocation as (hook, node, virtual time, argument)."""

    def __init__(self, message_type=None):
        self.message_type = message_type
        self.calls = []

    def handle_message(self, node, envelope, payload):
        self.calls.append(("message", node.entity, node.now, payload))

    def handle_poke(self, node):
        self.calls.append(("poke", node.entity, node.now, None))

    def handle_peer_set_update(self, node, update):
        self.calls.append(("peers", node.entity, node.now, update))

    def hooks(self, name):
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def sim():
    """Seeded simulation without protocols."""
    return Simulation(SimulationConfig(seed=1234))


@pytest.fixture
def consensus_sim():
    """Seeded simulation running Nakamoto consensus."""
    sim = Simulation(SimulationConfig(seed=1234))
    sim.add_protocol(NakamotoConsensus())
    return sim


@pytest.fixture
def make_line():
    """
    Factory wiring nodes into a symmetric line, 100 underlay units apart.

    At the default flight speed one hop takes 0.2 virtual seconds. Peer-set
    notifications are delivered before the factory returns.
    """
    def factory(sim, count, spacing=100.0):
        nodes = [
            sim.spawn_node(UnderlayPosition(100.0 + i * spacing, 300.0), f"n{i}")
            for i in range(count)
        ]
        for left, right in zip(nodes, nodes[1:]):
            sim.add_peer(left, right)
            sim.add_peer(right, left)
        sim.catch_up(sim.now)
        return nodes
    return factory
