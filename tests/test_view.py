"""
Tests for the read-only observer views.
"""

from p2psim import EdgeMap, EdgeType, NakamotoNodeState, UnderlayPosition, blocks_cutout, message_position
from p2psim.nakamoto import HASH_SIZE, Block, GENESIS
from p2psim.underlay import TimeSpan, UnderlayLine


def block_id(n):
    return bytes([n]) * HASH_SIZE


class TestEdgeMap:
    def test_classifies_edge_directions(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        c = sim.spawn_node(UnderlayPosition(300, 100))
        sim.add_peer(a, b)
        sim.add_peer(c, b)

        edge_map = EdgeMap.build(sim.world, sim.now)

        assert edge_map.edge_type(a, b) == EdgeType.LEFT_RIGHT
        assert edge_map.edge_type(b, c) == EdgeType.RIGHT_LEFT
        assert edge_map.edge_type(a, c) is None

    def test_rebuild_only_after_changes(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.add_peer(a, b)
        edge_map = EdgeMap.build(sim.world, sim.now)

        assert edge_map.rebuild_if_needed(sim.world, sim.now) is False

        sim.catch_up(1.0)
        sim.add_peer(b, a)

        assert edge_map.needs_rebuild(sim.world)
        assert edge_map.rebuild_if_needed(sim.world, sim.now) is True
        assert edge_map.edge_type(a, b) == EdgeType.UNDIRECTED

    def test_removed_edge_becomes_phantom(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.add_peer(a, b)
        sim.add_peer(b, a)
        edge_map = EdgeMap.build(sim.world, sim.now)

        sim.catch_up(1.0)
        sim.remove_peer(a, b)
        sim.remove_peer(b, a)
        edge_map.rebuild_if_needed(sim.world, sim.now)

        assert edge_map.edge_type(a, b).is_phantom

        sim.catch_up(2.0)
        sim.add_peer(b, a)
        edge_map.rebuild_if_needed(sim.world, sim.now)

        assert edge_map.edge_type(a, b) == EdgeType.RIGHT_LEFT

    def test_edges_to_despawned_nodes_skipped(self, sim):
        a = sim.spawn_node(UnderlayPosition(100, 100))
        b = sim.spawn_node(UnderlayPosition(200, 100))
        sim.add_peer(a, b)
        sim.world.despawn(b)

        edge_map = EdgeMap.build(sim.world, sim.now)

        assert edge_map.edges == {}


class TestMessagePosition:
    def test_interpolates_along_the_line(self):
        line = UnderlayLine(UnderlayPosition(0, 0), UnderlayPosition(100, 50))
        span = TimeSpan(2.0, 4.0)

        assert message_position(line, span, 3.0) == UnderlayPosition(50, 25)

    def test_clamped_outside_the_span(self):
        line = UnderlayLine(UnderlayPosition(0, 0), UnderlayPosition(100, 0))
        span = TimeSpan(2.0, 4.0)

        assert message_position(line, span, 0.0) == UnderlayPosition(0, 0)
        assert message_position(line, span, 9.0) == UnderlayPosition(100, 0)


class TestBlocksCutout:
    def make_state(self):
        state = NakamotoNodeState()
        state.register_block(Block(block_id(1)))
        state.register_block(Block(block_id(2), block_id(1)))
        state.register_block(Block(block_id(3), block_id(2)))
        state.register_block(Block(block_id(4), block_id(1)))
        return state

    def test_tip_column_then_forks(self):
        columns = blocks_cutout(self.make_state())

        assert columns == [
            [block_id(3), block_id(2), block_id(1)],
            [None, block_id(4), block_id(1)],
        ]

    def test_deep_forks_cut_off(self):
        columns = blocks_cutout(self.make_state(), max_depth=1)

        assert columns == [[block_id(3)]]

    def test_empty_state(self):
        assert blocks_cutout(NakamotoNodeState()) == [[]]
        assert NakamotoNodeState().tip == GENESIS
