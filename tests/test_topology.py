"""
Tests for peer sets and topology construction.
"""

import networkx as nx
import pytest

from p2psim import (
    AddPeer,
    MakeDelaunayNetwork,
    PeerAdded,
    PeerRemoved,
    PeerSet,
    RemovePeer,
    SpawnRandomNodes,
    TopologyError,
    TopologyStrategy,
    UnderlayPosition,
    add_random_nodes_as_peers,
    connect_topology,
)
from p2psim.statistics import build_peer_graph
from p2psim.topology import delaunay_edges, peers

from conftest import RecordingProtocol


def peer_map(sim):
    return {node: set(peer_set) for node, peer_set in sim.world.iter_components(PeerSet)}


class TestPeerSet:
    def test_insert_and_remove_report_change(self):
        peer_set = PeerSet()

        assert peer_set.insert(5, 1.0) is True
        assert peer_set.insert(5, 2.0) is False
        assert peer_set.last_update == 1.0

        assert peer_set.remove(5, 3.0) is True
        assert peer_set.remove(5, 4.0) is False
        assert peer_set.last_update == 3.0

    def test_iterates_in_sorted_order(self):
        peer_set = PeerSet.from_peers([3, 1, 2])
        assert list(peer_set) == [1, 2, 3]
        assert len(peer_set) == 3


class TestAddRemovePeer:
    def test_add_peer_is_directed(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))

        assert sim.add_peer(a, b) is True

        assert b in peers(sim, a)
        assert a not in peers(sim, b)

    def test_last_update_stamped_with_virtual_time(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.catch_up(7.5)

        sim.add_peer(a, b)

        assert peers(sim, a).last_update == 7.5

    def test_no_notification_without_change(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.add_peer(a, b)
        pending = sim.event_queue.size

        assert sim.add_peer(a, b) is False
        assert sim.remove_peer(b, a) is False
        assert sim.event_queue.size == pending

    def test_protocols_notified_at_the_same_instant(self, sim):
        recorder = sim.add_protocol(RecordingProtocol())
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.catch_up(5.0)

        sim.add_peer(a, b)
        sim.remove_peer(a, b)
        sim.catch_up(5.0)

        assert recorder.hooks("peers") == [
            ("peers", a, 5.0, PeerAdded(b)),
            ("peers", a, 5.0, PeerRemoved(b)),
        ]

    def test_peer_commands(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))

        sim.do_now(AddPeer(a, b))
        sim.catch_up(1.0)
        assert b in peers(sim, a)

        sim.execute(RemovePeer(a, b))
        assert b not in peers(sim, a)


class TestDelaunay:
    def test_network_is_symmetric_and_connected(self, sim):
        sim.execute(SpawnRandomNodes(12))
        sim.execute(MakeDelaunayNetwork())

        mapping = peer_map(sim)
        for node, node_peers in mapping.items():
            assert len(node_peers) >= 2
            for peer in node_peers:
                assert node in mapping[peer]
        assert nx.is_connected(build_peer_graph(sim))

    def test_replaces_existing_peerings(self, sim):
        """Peerings that are not triangulation edges are removed."""
        nodes = sim.spawn_random_nodes(8)
        sim.add_peer(nodes[0], nodes[0])

        sim.execute(MakeDelaunayNetwork())

        edges = delaunay_edges(sim)
        expected = {node: set() for node in nodes}
        for a, b in edges:
            expected[a].add(b)
            expected[b].add(a)
        assert peer_map(sim) == expected

    def test_square_has_four_sides_and_a_diagonal(self, sim):
        for x, y in [(100, 100), (300, 110), (310, 300), (90, 290)]:
            sim.spawn_node(UnderlayPosition(x, y))

        assert len(delaunay_edges(sim)) == 5

    def test_too_few_nodes_leaves_topology_unchanged(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.add_peer(a, b)
        before = peer_map(sim)

        with pytest.raises(TopologyError):
            sim.execute(MakeDelaunayNetwork())

        assert peer_map(sim) == before

    def test_collinear_nodes_leave_topology_unchanged(self, sim):
        nodes = [sim.spawn_node(UnderlayPosition(100 + 50 * i, 200)) for i in range(4)]
        sim.add_peer(nodes[0], nodes[3])
        before = peer_map(sim)

        with pytest.raises(TopologyError):
            sim.execute(MakeDelaunayNetwork())

        assert peer_map(sim) == before

    def test_coincident_nodes_leave_topology_unchanged(self, sim):
        nodes = [
            sim.spawn_node(UnderlayPosition(x, y))
            for x, y in [(100, 100), (300, 100), (200, 300), (200, 300)]
        ]
        sim.add_peer(nodes[0], nodes[1])
        before = peer_map(sim)

        with pytest.raises(TopologyError):
            sim.execute(MakeDelaunayNetwork())

        assert peer_map(sim) == before

    def test_failure_through_do_now_is_recorded(self, sim, caplog):
        sim.spawn_node(UnderlayPosition(100, 100))
        command = MakeDelaunayNetwork()

        sim.do_now(command)
        with caplog.at_level("ERROR"):
            sim.catch_up(1.0)

        assert sim.counters.commands_failed == 1
        assert sim.failed_commands[0][1] == command
        assert isinstance(sim.failed_commands[0][2], TopologyError)
        assert "failed" in caplog.text


class TestRandomPeers:
    def test_count_drawn_from_half_open_range(self, sim):
        nodes = sim.spawn_random_nodes(10)

        new_peers = add_random_nodes_as_peers(sim, nodes[0], 2, 4)

        assert len(new_peers) in (2, 3)
        assert nodes[0] not in new_peers
        assert len(set(new_peers)) == len(new_peers)
        assert set(peers(sim, nodes[0])) == set(new_peers)

    def test_bounds_clamped_to_candidates(self, sim):
        nodes = sim.spawn_random_nodes(3)

        new_peers = add_random_nodes_as_peers(sim, nodes[0], 5, 8)

        assert sorted(new_peers) == [nodes[1], nodes[2]]

    def test_existing_peers_not_drawn_again(self, sim):
        nodes = sim.spawn_random_nodes(4)
        sim.add_peer(nodes[0], nodes[1])

        new_peers = add_random_nodes_as_peers(sim, nodes[0], 3, 3)

        assert sorted(new_peers) == [nodes[2], nodes[3]]

    def test_min_above_max_is_rejected(self, sim):
        nodes = sim.spawn_random_nodes(10)

        with pytest.raises(ValueError):
            add_random_nodes_as_peers(sim, nodes[0], 5, 3)

        assert len(peers(sim, nodes[0])) == 0

    def test_random_topology_is_symmetric(self, sim):
        sim.spawn_random_nodes(15)

        connect_topology(sim, TopologyStrategy.RANDOM, min_peers=2, max_peers=4)

        mapping = peer_map(sim)
        for node, node_peers in mapping.items():
            assert len(node_peers) >= 2
            for peer in node_peers:
                assert node in mapping[peer]
