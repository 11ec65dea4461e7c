"""
Tests for Nakamoto consensus: the per-node block tree and network behavior.
"""

import pytest

from p2psim import (
    MakeDelaunayNetwork,
    NakamotoNodeState,
    PokeMultipleRandomNodes,
    SpawnRandomNodes,
    UnderlayPosition,
    UnknownBlockError,
)
from p2psim.nakamoto import GENESIS, HASH_SIZE, Block, short_id, to_number
from scenarios import PartitionHealScenario


def block_id(n):
    return bytes([n]) * HASH_SIZE


def block(n, prev=None):
    return Block(block_id(n), block_id(prev) if prev is not None else GENESIS)


def state_of(sim, node):
    return sim.world.get(node, NakamotoNodeState)


class TestBlock:
    def test_new_block_has_random_identity(self, sim):
        a = Block.new(GENESIS, sim.rng)
        b = Block.new(GENESIS, sim.rng)

        assert len(a.id) == HASH_SIZE
        assert a.id != b.id
        assert a.id_prev == GENESIS

    def test_short_id_and_number(self):
        assert short_id(block_id(0xab)) == "abababab"
        assert to_number(block_id(1)) == 0x01010101


class TestRegisterBlock:
    def test_empty_state(self):
        state = NakamotoNodeState()
        assert state.tip == GENESIS
        assert state.tip_height == 0
        assert len(state) == 0
        assert state.fork_tips == set()

    def test_extends_tip(self):
        state = NakamotoNodeState()

        assert state.register_block(block(1)) is True
        assert state.register_block(block(2, 1)) is True

        assert state.tip == block_id(2)
        assert state.tip_height == 2
        assert state.height(block_id(1)) == 1

    def test_registration_is_idempotent(self):
        state = NakamotoNodeState()
        state.register_block(block(1))
        state.register_block(block(2))
        snapshot = (dict(state.blocks), state.tip, set(state.fork_tips))

        assert state.register_block(block(1)) is False
        assert state.register_block(block(2)) is False

        assert (state.blocks, state.tip, state.fork_tips) == snapshot

    def test_orphan_is_dropped(self):
        state = NakamotoNodeState()

        assert state.register_block(block(5, 4)) is False

        assert not state.contains(block_id(5))
        assert state.tip == GENESIS

    def test_genesis_identity_ignored(self):
        state = NakamotoNodeState()
        assert state.register_block(Block(GENESIS)) is False
        assert len(state) == 0

    def test_equal_height_fork_keeps_first_seen(self):
        state = NakamotoNodeState()
        state.register_block(block(1))

        assert state.register_block(block(2)) is False

        assert state.tip == block_id(1)
        assert state.fork_tips == {block_id(2)}

    def test_longer_fork_causes_reorg(self):
        state = NakamotoNodeState()
        state.register_block(block(1))
        state.register_block(block(2))
        state.register_block(block(3, 2))

        assert state.tip == block_id(3)
        assert state.fork_tips == {block_id(1)}
        assert state.tip_height == 2

    def test_extending_a_fork_tip_replaces_it(self):
        state = NakamotoNodeState()
        state.register_block(block(1))
        state.register_block(block(2, 1))
        state.register_block(block(3, 2))
        state.register_block(block(4, 1))

        state.register_block(block(5, 4))

        assert state.fork_tips == {block_id(5)}
        assert state.tip == block_id(3)

    def test_unknown_block_height_raises(self):
        state = NakamotoNodeState()

        with pytest.raises(UnknownBlockError):
            state.height(block_id(9))
        with pytest.raises(KeyError):
            state.height(block_id(9))
        assert state.height(GENESIS) == 0

    def test_chain_and_sorted_blocks(self):
        state = NakamotoNodeState()
        state.register_block(block(1))
        state.register_block(block(2, 1))
        state.register_block(block(3))
        state.register_block(block(4, 2))

        assert state.chain() == [block_id(4), block_id(2), block_id(1)]
        heights = [state.height(b.id) for b in state.all_blocks_sorted()]
        assert heights == sorted(heights)
        assert state.hash_prev(block_id(4)) == block_id(2)
        assert state.hash_prev(block_id(9)) is None


class TestNetwork:
    def test_three_node_line_propagation(self, consensus_sim, make_line):
        sim = consensus_sim
        nodes = make_line(sim, 3)

        sim.poke(nodes[0])
        sim.catch_up(0.1)
        mined = state_of(sim, nodes[0]).tip
        assert mined != GENESIS
        assert state_of(sim, nodes[2]).tip == GENESIS

        sim.catch_up(1.0)

        for node in nodes:
            assert state_of(sim, node).tip == mined
            assert state_of(sim, node).tip_height == 1

    def test_concurrent_fork_then_reconvergence(self, consensus_sim, make_line):
        sim = consensus_sim
        n1, n2, n3 = make_line(sim, 3)

        sim.poke(n1)
        sim.catch_up(10.0)

        sim.poke(n1)
        sim.poke(n3)
        sim.catch_up(20.0)

        s1, s2, s3 = (state_of(sim, n) for n in (n1, n2, n3))
        assert s1.tip != s3.tip
        assert s1.tip_height == s3.tip_height == 2
        assert s3.tip in s1.fork_tips
        assert s1.tip in s3.fork_tips
        assert s2.tip == s1.tip  # the block of n1 reached n2 first

        sim.poke(n1)
        sim.catch_up(30.0)

        assert s1.tip == s2.tip == s3.tip
        assert s3.tip_height == 3

    def test_late_joiner_catches_up(self, consensus_sim, make_line):
        """A new peer is sent every known block, forks included."""
        sim = consensus_sim
        nodes = make_line(sim, 2)
        sim.poke(nodes[0])
        sim.catch_up(5.0)
        sim.poke(nodes[1])
        sim.catch_up(10.0)

        newcomer = make_line(sim, 1)[0]
        sim.add_peer(nodes[1], newcomer)
        sim.add_peer(newcomer, nodes[1])
        sim.catch_up(20.0)

        assert state_of(sim, newcomer).tip == state_of(sim, nodes[0]).tip
        assert len(state_of(sim, newcomer)) == 2

    def test_random_mining_keeps_invariants_and_converges(self, consensus_sim):
        sim = consensus_sim
        sim.execute(SpawnRandomNodes(15))
        sim.execute(MakeDelaunayNetwork())
        nodes = sim.all_nodes()

        heights = {node: 0 for node in nodes}
        for round_index in range(20):
            sim.do_now(PokeMultipleRandomNodes(1))
            sim.catch_up((round_index + 1) * 0.3)
            for node in nodes:
                state = state_of(sim, node)
                assert state.tip_height >= heights[node]
                heights[node] = state.tip_height

        sim.advance(30.0)
        for node in nodes:
            state = state_of(sim, node)
            for known_id in state.blocks:
                assert state.chain(known_id)[-1] in state.blocks
            assert len(state) == 20

            # every known block lies under the tip or a fork tip
            remaining = dict(state.blocks)
            for head in [state.tip, *state.fork_tips]:
                while head in remaining:
                    _, known = remaining.pop(head)
                    head = known.id_prev
            assert remaining == {}

        sim.do_now(PokeMultipleRandomNodes(1))
        sim.advance(30.0)

        tips = {state_of(sim, node).tip for node in nodes}
        assert len(tips) == 1

    def test_isolated_miners_converge_once_peered(self, consensus_sim):
        sim = consensus_sim
        a = sim.spawn_node(UnderlayPosition(100, 300))
        b = sim.spawn_node(UnderlayPosition(300, 300))

        for _ in range(3):
            sim.poke(a)
        for _ in range(2):
            sim.poke(b)
        sim.catch_up(1.0)

        state_a, state_b = state_of(sim, a), state_of(sim, b)
        assert state_a.tip_height == 3
        assert state_b.tip_height == 2
        assert state_a.tip != state_b.tip
        tip_a = state_a.tip

        sim.add_peer(a, b)
        sim.add_peer(b, a)
        sim.catch_up(10.0)

        assert state_of(sim, a).tip == tip_a
        assert state_of(sim, b).tip == tip_a
        assert state_of(sim, b).tip_height == 3

    def test_partition_heals_to_longest_chain(self, capsys):
        scenario = PartitionHealScenario({"group_size": 3, "blocks_a": 3, "blocks_b": 2})
        scenario.setup()
        scenario.run()

        assert scenario.converged
        assert sorted(scenario.reorganized_nodes) == sorted(scenario.group_b)
        final = scenario.sim.world.get(scenario.group_b[0], NakamotoNodeState)
        assert final.tip_height == 3
        assert final.tip == scenario.tips_before[scenario.group_a[0]]
