"""
Tests for simple flooding.
"""

import pytest

from p2psim import (
    FloodingMessage,
    FloodingState,
    MakeDelaunayNetwork,
    NodeContext,
    PeerSet,
    SimpleFlooding,
    SpawnRandomNodes,
    UnderlayPosition,
)


@pytest.fixture
def flooding_sim(sim):
    protocol = sim.add_protocol(SimpleFlooding())
    return sim, protocol


def known(sim, node):
    state = sim.world.get(node, FloodingState)
    return state.known if state is not None else set()


class TestSimpleFlooding:
    def test_line_propagation(self, flooding_sim, make_line):
        sim, protocol = flooding_sim
        nodes = make_line(sim, 3)

        protocol.inject(NodeContext(sim, nodes[0]), "tx1")
        sim.catch_up(0.3)
        assert known(sim, nodes[1]) == {"tx1"}
        assert known(sim, nodes[2]) == set()

        sim.catch_up(0.5)
        assert known(sim, nodes[2]) == {"tx1"}

    def test_flood_terminates_with_full_coverage(self, flooding_sim):
        sim, protocol = flooding_sim
        sim.execute(SpawnRandomNodes(15))
        sim.execute(MakeDelaunayNetwork())
        sim.catch_up(0.0)
        origin = sim.all_nodes()[0]

        protocol.inject(NodeContext(sim, origin), "tx1")
        sim.catch_up(60.0)

        assert sim.event_queue.is_empty()
        for node in sim.all_nodes():
            assert "tx1" in known(sim, node)

    def test_at_most_one_send_per_directed_edge(self, flooding_sim):
        sim, protocol = flooding_sim
        sim.execute(SpawnRandomNodes(15))
        sim.execute(MakeDelaunayNetwork())
        sim.catch_up(0.0)
        directed_edges = sum(len(peer_set) for _, peer_set in sim.world.iter_components(PeerSet))

        protocol.inject(NodeContext(sim, sim.all_nodes()[3]), "tx1")
        sim.catch_up(60.0)

        assert 0 < sim.counters.messages_sent <= directed_edges

    def test_item_not_resent_to_peers_that_have_it(self, flooding_sim, make_line):
        sim, protocol = flooding_sim
        nodes = make_line(sim, 2)
        node = NodeContext(sim, nodes[0])

        assert protocol.flood(node, "tx1") == 1
        assert protocol.flood(node, "tx1") == 0

    def test_flood_peer_with_ignores_bookkeeping(self, flooding_sim, make_line):
        sim, protocol = flooding_sim
        nodes = make_line(sim, 2)
        node = NodeContext(sim, nodes[0])
        protocol.flood(node, "tx1")

        assert protocol.flood_peer_with(node, nodes[1], ["tx1", "tx2"]) == 2
        assert sim.world.get(nodes[0], FloodingState).peers[nodes[1]].sent == {"tx1", "tx2"}

    def test_received_recorded_only_from_peers(self, flooding_sim, make_line):
        sim, protocol = flooding_sim
        nodes = make_line(sim, 2)
        stranger = sim.spawn_node(UnderlayPosition(100, 500), "stranger")

        sim.spawn_message(stranger, nodes[0], FloodingMessage("tx1"))
        sim.catch_up(5.0)

        state = sim.world.get(nodes[0], FloodingState)
        assert stranger not in state.peers
        assert "tx1" in state.peers[nodes[1]].sent
        assert "tx1" in known(sim, nodes[1])

    def test_removed_peer_is_forgotten(self, flooding_sim, make_line):
        sim, protocol = flooding_sim
        nodes = make_line(sim, 2)
        protocol.inject(NodeContext(sim, nodes[0]), "tx1")
        sim.catch_up(1.0)
        assert nodes[1] in sim.world.get(nodes[0], FloodingState).peers

        sim.remove_peer(nodes[0], nodes[1])
        sim.catch_up(1.0)

        assert nodes[1] not in sim.world.get(nodes[0], FloodingState).peers


    def test_nothing_returns_to_the_origin(self, flooding_sim, make_line):
        """On a triangle the two receivers cross sends on their shared edge only."""
        sim, protocol = flooding_sim
        nodes = make_line(sim, 2)
        third = sim.spawn_node(UnderlayPosition(150, 380), "n2")
        for node in nodes:
            sim.add_peer(node, third)
            sim.add_peer(third, node)
        sim.catch_up(0.0)

        protocol.inject(NodeContext(sim, nodes[0]), "tx1")
        sim.catch_up(10.0)

        origin = sim.world.get(nodes[0], FloodingState)
        assert sim.counters.messages_sent == 4
        assert all(not record.received for record in origin.peers.values())
