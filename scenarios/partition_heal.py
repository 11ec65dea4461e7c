"""
Partition and heal scenario.

Two groups of nodes mine in isolation; a single bridge link then joins
them and the shorter chain is reorganized away.
"""

from typing import Any

from p2psim import (
    Entity,
    Simulation,
    SimulationConfig,
    UnderlayPosition,
    NakamotoConsensus,
    NakamotoNodeState,
    ConsensusObserver,
    MetricsCollector,
    Statistics,
)
from p2psim.nakamoto import short_id


class PartitionHealScenario:
    """
    Partition and heal scenario.

    - Two groups, each wired as a line of mutually peered nodes
    - The first node of each group mines blocks while the groups are apart
    - A bridge link between the groups heals the partition
    - Report: tips before and after, reorganized nodes, convergence
    """

    def __init__(self, config: dict[str, Any]):
        """
        Initialize scenario with configuration.

        Args:
            config: Configuration dictionary with keys:
                - group_size: Nodes per group (default: 5)
                - blocks_a: Blocks mined by group A (default: 3)
                - blocks_b: Blocks mined by group B (default: 2)
                - spacing: Underlay distance between neighbours (default: 150.0)
                - settle_time_s: Virtual seconds after each step (default: 5.0)
                - seed: Random seed (default: 7)
        """
        self.config = {
            "group_size": 5,
            "blocks_a": 3,
            "blocks_b": 2,
            "spacing": 150.0,
            "settle_time_s": 5.0,
            "seed": 7,
            **config
        }

        self.sim: Simulation = None
        self.group_a: list[Entity] = []
        self.group_b: list[Entity] = []
        self.tips_before: dict[Entity, bytes] = {}
        self.tips_after: dict[Entity, bytes] = {}
        self.collector = MetricsCollector()

    def setup(self):
        """Set up two disconnected groups."""
        size = self.config["group_size"]
        spacing = self.config["spacing"]

        print(f"Setting up partition scenario...")
        print(f"  Group size: {size}")
        print(f"  Blocks mined: A={self.config['blocks_a']} B={self.config['blocks_b']}")

        self.sim = Simulation(SimulationConfig(seed=self.config["seed"]))
        self.sim.add_protocol(NakamotoConsensus())
        self.sim.add_protocol(ConsensusObserver(self.collector))

        for i in range(size):
            self.group_a.append(self.sim.spawn_node(UnderlayPosition(50 + i * spacing, 150), f"a{i}"))
            self.group_b.append(self.sim.spawn_node(UnderlayPosition(50 + i * spacing, 450), f"b{i}"))

        for group in (self.group_a, self.group_b):
            for left, right in zip(group, group[1:]):
                self.sim.add_peer(left, right)
                self.sim.add_peer(right, left)

        self.sim.advance(self.config["settle_time_s"])
        print("Setup complete!")

    def _mine(self, node: Entity, count: int):
        for _ in range(count):
            self.sim.poke(node)
            self.sim.advance(self.config["settle_time_s"])

    def _tips(self) -> dict[Entity, bytes]:
        return {
            node: (self.sim.world.get(node, NakamotoNodeState) or NakamotoNodeState()).tip
            for node in self.group_a + self.group_b
        }

    def run(self):
        """Mine on both sides, then heal the partition."""
        print("\nRunning simulation...")
        self.collector.start_collection()

        self._mine(self.group_a[0], self.config["blocks_a"])
        self._mine(self.group_b[0], self.config["blocks_b"])
        self.tips_before = self._tips()

        bridge_a, bridge_b = self.group_a[-1], self.group_b[-1]
        print(f"Healing partition: {self.sim.name(bridge_a)} <-> {self.sim.name(bridge_b)}")
        self.sim.add_peer(bridge_a, bridge_b)
        self.sim.add_peer(bridge_b, bridge_a)
        self.sim.advance(self.config["settle_time_s"] * self.config["group_size"])

        self.tips_after = self._tips()
        self.collector.end_collection()
        print(f"Simulation complete at t = {self.sim.now:.2f} s")

    @property
    def reorganized_nodes(self) -> list[Entity]:
        """Nodes whose tip was replaced by the other group's chain."""
        return [
            node for node, tip in self.tips_before.items()
            if self.tips_after.get(node) != tip
        ]

    @property
    def converged(self) -> bool:
        return len(set(self.tips_after.values())) == 1

    def analyze(self):
        """Print the partition outcome."""
        print("\n" + "="*80)
        print("PARTITION HEAL RESULTS")
        print("="*80)

        for label, group in (("A", self.group_a), ("B", self.group_b)):
            before = {short_id(self.tips_before[node]) for node in group}
            after = {short_id(self.tips_after[node]) for node in group}
            print(f"  Group {label}: tips before {sorted(before)} -> after {sorted(after)}")

        print(f"  Reorganized nodes: {', '.join(self.sim.name(n) for n in self.reorganized_nodes) or 'none'}")
        print(f"  Converged: {'yes' if self.converged else 'no'}")

        self.collector.update_node_metrics(self.sim)
        stats = Statistics(self.collector)
        stats.print_node_table()


def run_partition_scenario(config: dict[str, Any] | None = None):
    """
    Convenience function to run the partition scenario.

    Args:
        config: Optional configuration dictionary

    Returns:
        The scenario instance
    """
    if config is None:
        config = {}

    scenario = PartitionHealScenario(config)
    scenario.setup()
    scenario.run()
    scenario.analyze()

    return scenario
