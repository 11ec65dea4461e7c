"""
Mining network scenario.

Random nodes find blocks at a fixed interval while Nakamoto consensus floods
them across the network.
"""

from typing import Any

from tqdm import tqdm

from p2psim import (
    Simulation,
    SimulationConfig,
    SpawnRandomNodes,
    PokeMultipleRandomNodes,
    TopologyStrategy,
    connect_topology,
    NakamotoConsensus,
    ConsensusObserver,
    MetricsCollector,
    Statistics,
    Visualizer,
)


class MiningNetworkScenario:
    """
    Mining network scenario.

    Simulates a blockchain network under steady block production:
    - Nodes at random underlay positions
    - Delaunay (default) or random symmetric topology
    - One randomly chosen node finds a block every `block_interval_s`
    - Measure propagation latency, forks and convergence
    """

    def __init__(self, config: dict[str, Any]):
        """
        Initialize scenario with configuration.

        Args:
            config: Configuration dictionary with keys:
                - num_nodes: Number of nodes (default: 40)
                - num_blocks: Number of blocks to mine (default: 30)
                - block_interval_s: Virtual seconds between blocks (default: 2.0)
                - miners_per_round: Nodes poked per interval (default: 1)
                - topology: Topology strategy (default: DELAUNAY)
                - min_peers / max_peers: Peer bounds for RANDOM topology (default: 2 / 4)
                - settle_time_s: Time left for propagation after the last block (default: 10.0)
                - flight_per_second: Underlay distance per virtual second (default: 500.0)
                - seed: Random seed (default: 42)
                - enable_progress_bar: Show progress bar (default: True)
        """
        self.config = {
            "num_nodes": 40,
            "num_blocks": 30,
            "block_interval_s": 2.0,
            "miners_per_round": 1,
            "topology": TopologyStrategy.DELAUNAY,
            "min_peers": 2,
            "max_peers": 4,
            "settle_time_s": 10.0,
            "flight_per_second": 500.0,
            "seed": 42,
            "enable_progress_bar": True,
            **config
        }

        self.sim: Simulation = None
        self.collector = MetricsCollector()

    def setup(self):
        """Set up the simulation."""
        print(f"Setting up mining network scenario...")
        print(f"  Nodes: {self.config['num_nodes']}")
        print(f"  Blocks: {self.config['num_blocks']}")
        print(f"  Block interval: {self.config['block_interval_s']} s")
        print(f"  Topology: {self.config['topology'].value}")

        self.sim = Simulation(SimulationConfig(
            seed=self.config["seed"],
            flight_per_second=self.config["flight_per_second"]
        ))

        self.sim.add_protocol(NakamotoConsensus())
        self.sim.add_protocol(ConsensusObserver(self.collector))

        print(f"Creating {self.config['num_nodes']} nodes...")
        self.sim.execute(SpawnRandomNodes(self.config["num_nodes"]))

        print("Connecting network topology...")
        connect_topology(
            self.sim,
            self.config["topology"],
            min_peers=self.config["min_peers"],
            max_peers=self.config["max_peers"]
        )

        # deliver the peer-set notifications of the initial wiring
        self.sim.catch_up(self.sim.now)

        print("Setup complete!")

    def run(self):
        """Run the simulation."""
        print("\nRunning simulation...")
        self.collector.start_collection()

        interval = self.config["block_interval_s"]
        rounds = range(self.config["num_blocks"])
        if self.config["enable_progress_bar"]:
            rounds = tqdm(rounds, desc="Mining")

        events_processed = 0
        for round_index in rounds:
            events_processed += self.sim.catch_up((round_index + 1) * interval)
            self.sim.do_now(PokeMultipleRandomNodes(self.config["miners_per_round"]))

        events_processed += self.sim.advance(self.config["settle_time_s"])

        self.collector.end_collection()

        print(f"Simulation complete!")
        print(f"  Events processed: {events_processed}")
        print(f"  Final time: {self.sim.now:.2f} s")

    def analyze(self):
        """Analyze simulation results."""
        print("\n" + "="*80)
        print("ANALYZING RESULTS")
        print("="*80)

        self.collector.update_node_metrics(self.sim)

        stats = Statistics(self.collector)
        stats.print_summary()
        stats.print_node_table()
        stats.print_block_table()

    def visualize(self, output_dir: str = "output"):
        """Generate visualizations."""
        import os

        print("\nGenerating visualizations...")

        visualizer = Visualizer(self.collector)
        visualizer.generate_all_plots(output_dir)

        visualizer.plot_network_snapshot(
            self.sim,
            output_file=os.path.join(output_dir, "network_snapshot.html")
        )

        nodes = self.sim.all_nodes()
        if nodes:
            visualizer.plot_block_tree(
                self.sim,
                nodes[0],
                output_file=os.path.join(output_dir, "block_tree.html")
            )

        print(f"Visualizations saved to {output_dir}/")

    def export_results(self, output_dir: str = "output"):
        """Export results to CSV."""
        print("\nExporting results...")
        stats = Statistics(self.collector)
        stats.export_to_csv(output_dir)


def run_mining_scenario(config: dict[str, Any] | None = None, output_dir: str = "output"):
    """
    Convenience function to run the mining network scenario.

    Args:
        config: Optional configuration dictionary
        output_dir: Directory for plots and CSV files

    Returns:
        The scenario instance
    """
    if config is None:
        config = {}

    scenario = MiningNetworkScenario(config)
    scenario.setup()
    scenario.run()
    scenario.analyze()
    scenario.visualize(output_dir)
    scenario.export_results(output_dir)

    return scenario
