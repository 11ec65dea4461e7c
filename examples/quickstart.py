"""
Quickstart example for the p2p network simulator.

Demonstrates the API for running simulations.
"""

from scenarios import run_mining_scenario, run_partition_scenario


def example_1_mining_network():
    """
    Example 1: Mining network with default parameters.

    This demonstrates the simplest way to run a simulation.
    """
    print("="*80)
    print("EXAMPLE 1: Mining Network")
    print("="*80)

    run_mining_scenario()

    print("\nExample 1 complete! Check the 'output' directory for results.")


def example_2_custom_configuration():
    """
    Example 2: Custom configuration.

    Shows how to customize simulation parameters.
    """
    print("\n" + "="*80)
    print("EXAMPLE 2: Custom Configuration")
    print("="*80)

    from p2psim import TopologyStrategy

    config = {
        "num_nodes": 80,
        "num_blocks": 40,
        "block_interval_s": 0.5,  # Short interval, expect forks
        "topology": TopologyStrategy.RANDOM,
        "flight_per_second": 250.0,
    }

    run_mining_scenario(config, output_dir="output_custom")

    print("\nExample 2 complete! Results saved to 'output_custom' directory.")


def example_3_partition_heal():
    """
    Example 3: Partition and heal.

    Two isolated groups mine competing chains until a bridge joins them.
    """
    print("\n" + "="*80)
    print("EXAMPLE 3: Partition and Heal")
    print("="*80)

    scenario = run_partition_scenario({"blocks_a": 4, "blocks_b": 2})

    print(f"\nExample 3 complete! {len(scenario.reorganized_nodes)} nodes reorganized.")


def example_4_custom_protocol():
    """
    Example 4: Custom protocol.

    Demonstrates the protocol plug-in contract with plain flooding of text.
    """
    print("\n" + "="*80)
    print("EXAMPLE 4: Custom Protocol")
    print("="*80)

    from p2psim import (
        Simulation, SimulationConfig, SimpleFlooding, FloodingState,
        MakeDelaunayNetwork, Protocol, SpawnRandomNodes
    )

    class PokeCounter(Protocol):
        """Counts pokes across the network."""

        def __init__(self):
            self.pokes = 0

        def handle_poke(self, node):
            self.pokes += 1
            node.log(f"poke #{self.pokes}")

    class Gossip(SimpleFlooding):
        """Floods a greeting whenever a node is poked."""

        def handle_poke(self, node):
            self.inject(node, f"hello from {node.name}")

    sim = Simulation(SimulationConfig(seed=1))
    counter = sim.add_protocol(PokeCounter())
    sim.add_protocol(Gossip())

    sim.execute(SpawnRandomNodes(20))
    sim.execute(MakeDelaunayNetwork())
    sim.catch_up(0.0)

    for node in sim.all_nodes()[:3]:
        sim.poke(node)
    sim.advance(10.0)

    informed = sum(
        1 for _, state in sim.world.iter_components(FloodingState)
        if len(state.known) == 3
    )
    print(f"Pokes: {counter.pokes}")
    print(f"Nodes knowing all greetings: {informed}/{len(sim.all_nodes())}")
    print(f"Messages delivered: {sim.counters.messages_delivered}")
    for time, line in sim.message_log:
        print(f"  [{time:6.3f}] {line}")

    print("\nExample 4 complete! Custom protocols executed.")


def example_5_topology_comparison():
    """
    Example 5: Compare different network topologies.

    Runs simulations with different topology strategies.
    """
    print("\n" + "="*80)
    print("EXAMPLE 5: Topology Comparison")
    print("="*80)

    from p2psim import TopologyStrategy

    results = {}

    for strategy in TopologyStrategy:
        print(f"\nTesting {strategy.value} topology...")

        config = {
            "num_nodes": 60,
            "num_blocks": 20,
            "block_interval_s": 1.0,
            "topology": strategy,
            "enable_progress_bar": False,
        }

        scenario = run_mining_scenario(config, output_dir=f"output_{strategy.value}")
        summary = scenario.collector.get_summary()

        results[strategy.value] = {
            "p50_latency": summary["block_propagation"]["p50_latency_s"],
            "p95_latency": summary["block_propagation"]["p95_latency_s"],
            "stale_blocks": summary["consensus"]["stale_blocks"],
            "diameter": summary["network"]["diameter"],
        }

    print("\n" + "="*80)
    print("TOPOLOGY COMPARISON RESULTS")
    print("="*80)

    from tabulate import tabulate
    headers = ["Topology", "P50 Latency (s)", "P95 Latency (s)", "Stale Blocks", "Diameter"]
    rows = [
        [
            topo,
            f"{results[topo]['p50_latency']:.3f}",
            f"{results[topo]['p95_latency']:.3f}",
            results[topo]["stale_blocks"],
            results[topo]["diameter"],
        ]
        for topo in results
    ]
    print(tabulate(rows, headers=headers, tablefmt="grid"))

    print("\nExample 5 complete!")


def main():
    """Run all examples."""
    print("""
╔══════════════════════════════════════════════════════════════════════════════╗
║                      P2P NETWORK SIMULATOR - QUICKSTART                      ║
╚══════════════════════════════════════════════════════════════════════════════╝

This quickstart demonstrates the various capabilities of the simulator.
Choose an example to run:

1. Mining Network (default parameters)
2. Custom Configuration (modify parameters)
3. Partition and Heal (competing chains)
4. Custom Protocol (extensibility)
5. Topology Comparison (different strategies)
6. Run ALL examples

""")

    choice = input("Enter your choice (1-6): ").strip()

    examples = {
        "1": example_1_mining_network,
        "2": example_2_custom_configuration,
        "3": example_3_partition_heal,
        "4": example_4_custom_protocol,
        "5": example_5_topology_comparison,
    }

    if choice in examples:
        examples[choice]()
    elif choice == "6":
        for example_func in examples.values():
            example_func()
    else:
        print("Invalid choice. Please run again and choose 1-6.")


if __name__ == "__main__":
    main()
