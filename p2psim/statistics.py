"""
Statistics collection and reporting.

Tracks block propagation and consensus state and generates tables and
summaries.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
import time

import networkx as nx
import numpy as np
from tabulate import tabulate

from .nakamoto import GENESIS, BlockMessage, NakamotoNodeState, short_id
from .protocol import NodeContext, Protocol
from .simulation import Simulation, SimulationCounters
from .topology import PeerSet
from .underlay import UnderlayMessage
from .world import Entity


@dataclass
class BlockMetrics:
    """Metrics for a single block."""
    block_id: bytes
    miner: str
    creation_time: float
    height: int
    arrival_times: Dict[Entity, float] = field(default_factory=dict)  # node -> latency

    @property
    def propagation_latency_p50(self) -> Optional[float]:
        """Median propagation latency."""
        if not self.arrival_times:
            return None
        return float(np.percentile(list(self.arrival_times.values()), 50))

    @property
    def propagation_latency_p95(self) -> Optional[float]:
        """95th percentile propagation latency."""
        if not self.arrival_times:
            return None
        return float(np.percentile(list(self.arrival_times.values()), 95))

    @property
    def reach(self) -> int:
        """Number of nodes other than the miner the block arrived at."""
        return len(self.arrival_times)


@dataclass
class NodeMetrics:
    """Metrics for a single node."""
    node: Entity
    name: str
    peer_count: int = 0
    tip: str = ""
    tip_height: int = 0
    known_blocks: int = 0
    fork_tips: int = 0
    blocks_mined: int = 0


def build_peer_graph(sim: Simulation) -> nx.Graph:
    """Undirected graph with an edge wherever either node peers with the other."""
    graph = nx.Graph()
    for node in sim.all_nodes():
        graph.add_node(node)
    for node, peer_set in sim.world.iter_components(PeerSet):
        for peer in peer_set:
            if peer in sim.world:
                graph.add_edge(node, peer)
    return graph


class MetricsCollector:
    """
    Collects metrics during simulation.

    Block events are fed by a ConsensusObserver; node and network state is
    snapshotted by update_node_metrics.
    """

    def __init__(self):
        self.block_metrics: Dict[bytes, BlockMetrics] = {}
        self.node_metrics: Dict[Entity, NodeMetrics] = {}
        self.events: List[Dict[str, Any]] = []
        self.network_graph: nx.Graph = nx.Graph()
        self.counters = SimulationCounters()
        self.virtual_time: float = 0.0
        self.total_events: int = 0
        self.start_time: float = 0.0
        self.end_time: float = 0.0

    def start_collection(self):
        """Start metrics collection."""
        self.start_time = time.time()

    def end_collection(self):
        """End metrics collection."""
        self.end_time = time.time()

    def record_block_mined(self, block_id: bytes, miner: str, height: int, sim_time: float):
        """Record when a block is found."""
        self.block_metrics[block_id] = BlockMetrics(
            block_id=block_id,
            miner=miner,
            creation_time=sim_time,
            height=height
        )
        self.record_event("block_mined", sim_time, block=short_id(block_id), miner=miner)

    def record_block_arrival(self, block_id: bytes, node: Entity, sim_time: float):
        """Record the first arrival of a block at a node."""
        metrics = self.block_metrics.get(block_id)
        if metrics is None or node in metrics.arrival_times:
            return
        metrics.arrival_times[node] = sim_time - metrics.creation_time

    def record_event(self, event_type: str, sim_time: float, **kwargs):
        """Record a generic event."""
        self.events.append({
            "type": event_type,
            "time": sim_time,
            **kwargs
        })

    def update_node_metrics(self, sim: Simulation):
        """Snapshot per-node consensus state and the peer graph."""
        mined = {}
        for metrics in self.block_metrics.values():
            mined[metrics.miner] = mined.get(metrics.miner, 0) + 1

        for node in sim.all_nodes():
            state = sim.world.get(node, NakamotoNodeState) or NakamotoNodeState()
            peer_set = sim.world.get(node, PeerSet) or PeerSet()
            name = sim.name(node)
            self.node_metrics[node] = NodeMetrics(
                node=node,
                name=name,
                peer_count=len(peer_set),
                tip=short_id(state.tip),
                tip_height=state.tip_height,
                known_blocks=len(state),
                fork_tips=len(state.fork_tips),
                blocks_mined=mined.get(name, 0)
            )

        self.network_graph = build_peer_graph(sim)
        self.counters = SimulationCounters(**vars(sim.counters))
        self.virtual_time = sim.now
        self.total_events = sim.event_queue.total_events

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics."""
        latencies = sorted(
            latency
            for bm in self.block_metrics.values()
            for latency in bm.arrival_times.values()
        )
        nodes = list(self.node_metrics.values())
        tip_heights = [nm.tip_height for nm in nodes]
        distinct_tips = {nm.tip for nm in nodes}

        graph = self.network_graph
        connected = graph.number_of_nodes() > 0 and nx.is_connected(graph)
        other_nodes = max(len(nodes) - 1, 1)

        summary = {
            "simulation": {
                "wall_time_seconds": self.end_time - self.start_time if self.end_time > 0 else 0,
                "virtual_time_seconds": self.virtual_time,
                "num_nodes": len(nodes),
                "num_events": self.total_events,
                "messages_sent": self.counters.messages_sent,
                "messages_delivered": self.counters.messages_delivered,
                "messages_dropped": self.counters.messages_dropped,
                "handler_errors": self.counters.handler_errors,
                "commands_failed": self.counters.commands_failed,
            },
            "block_propagation": {
                "blocks_mined": len(self.block_metrics),
                "p50_latency_s": float(np.percentile(latencies, 50)) if latencies else 0,
                "p95_latency_s": float(np.percentile(latencies, 95)) if latencies else 0,
                "p99_latency_s": float(np.percentile(latencies, 99)) if latencies else 0,
                "avg_reach": (
                    float(np.mean([bm.reach / other_nodes for bm in self.block_metrics.values()]))
                    if self.block_metrics else 0
                ),
            },
            "consensus": {
                "distinct_tips": len(distinct_tips),
                "converged": len(distinct_tips) == 1,
                "max_tip_height": max(tip_heights, default=0),
                "min_tip_height": min(tip_heights, default=0),
                "total_fork_tips": sum(nm.fork_tips for nm in nodes),
                "stale_blocks": max(len(self.block_metrics) - max(tip_heights, default=0), 0),
            },
            "network": {
                "num_edges": graph.number_of_edges(),
                "avg_degree": 2 * graph.number_of_edges() / graph.number_of_nodes() if graph.number_of_nodes() else 0,
                "connected": connected,
                "diameter": nx.diameter(graph) if connected else None,
            },
        }

        return summary


class ConsensusObserver(Protocol):
    """
    Passive protocol feeding a MetricsCollector.

    Must be installed after NakamotoConsensus so that on a poke the node's
    tip already is the freshly found block.
    """

    message_type = BlockMessage

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def handle_poke(self, node: NodeContext):
        state = node.find(NakamotoNodeState)
        if state is None or state.tip == GENESIS or state.tip in self.collector.block_metrics:
            return
        self.collector.record_block_mined(state.tip, node.name, state.tip_height, node.now)

    def handle_message(self, node: NodeContext, envelope: UnderlayMessage, payload: BlockMessage):
        self.collector.record_block_arrival(payload.item.id, node.entity, node.now)


class Statistics:
    """
    Statistics analyzer and reporter.

    Generates tables and summaries from collected metrics.
    """

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def print_summary(self):
        """Print summary statistics."""
        summary = self.collector.get_summary()

        print("\n" + "="*80)
        print("SIMULATION SUMMARY")
        print("="*80)

        print("\n[Simulation Info]")
        sim = summary["simulation"]
        print(f"  Wall time: {sim['wall_time_seconds']:.2f} seconds")
        print(f"  Virtual time: {sim['virtual_time_seconds']:.2f} seconds")
        print(f"  Nodes: {sim['num_nodes']}")
        print(f"  Events scheduled: {sim['num_events']}")
        print(f"  Messages sent/delivered/dropped: "
              f"{sim['messages_sent']}/{sim['messages_delivered']}/{sim['messages_dropped']}")
        print(f"  Handler errors: {sim['handler_errors']}")

        print("\n[Block Propagation]")
        prop = summary["block_propagation"]
        print(f"  Blocks mined: {prop['blocks_mined']}")
        print(f"  Propagation latency (p50): {prop['p50_latency_s']:.3f} s")
        print(f"  Propagation latency (p95): {prop['p95_latency_s']:.3f} s")
        print(f"  Propagation latency (p99): {prop['p99_latency_s']:.3f} s")
        print(f"  Average reach: {prop['avg_reach']*100:.1f}%")

        print("\n[Consensus]")
        cons = summary["consensus"]
        print(f"  Converged: {'yes' if cons['converged'] else 'no'} ({cons['distinct_tips']} distinct tips)")
        print(f"  Tip height: {cons['min_tip_height']} - {cons['max_tip_height']}")
        print(f"  Fork tips: {cons['total_fork_tips']}")
        print(f"  Stale blocks: {cons['stale_blocks']}")

        print("\n[Network]")
        net = summary["network"]
        print(f"  Edges: {net['num_edges']}")
        print(f"  Average degree: {net['avg_degree']:.2f}")
        print(f"  Connected: {'yes' if net['connected'] else 'no'}")
        if net["diameter"] is not None:
            print(f"  Diameter: {net['diameter']} hops")

        print("="*80 + "\n")

    def print_node_table(self, top_n: int = 20):
        """Print nodes sorted by tip height."""
        if not self.collector.node_metrics:
            print("No node metrics to display")
            return

        print("\n" + "="*80)
        print(f"TOP {top_n} NODES BY TIP HEIGHT")
        print("="*80 + "\n")

        headers = ["Node", "Peers", "Tip", "Height", "Known Blocks", "Fork Tips", "Mined"]

        sorted_nodes = sorted(
            self.collector.node_metrics.values(),
            key=lambda nm: (-nm.tip_height, nm.node)
        )

        rows = [
            [nm.name, nm.peer_count, nm.tip, nm.tip_height, nm.known_blocks, nm.fork_tips, nm.blocks_mined]
            for nm in sorted_nodes[:top_n]
        ]

        print(tabulate(rows, headers=headers, tablefmt="grid"))
        print()

    def print_block_table(self):
        """Print detailed block table."""
        if not self.collector.block_metrics:
            print("No blocks to display")
            return

        print("\n" + "="*80)
        print("BLOCK DETAILS")
        print("="*80 + "\n")

        headers = ["Block", "Height", "Miner", "Found At (s)", "Reach", "P50 Latency (s)", "P95 Latency (s)"]

        rows = []
        for block_id, metrics in self.collector.block_metrics.items():
            rows.append([
                short_id(block_id),
                metrics.height,
                metrics.miner,
                f"{metrics.creation_time:.2f}",
                metrics.reach,
                f"{metrics.propagation_latency_p50:.3f}" if metrics.propagation_latency_p50 is not None else "N/A",
                f"{metrics.propagation_latency_p95:.3f}" if metrics.propagation_latency_p95 is not None else "N/A",
            ])

        print(tabulate(rows, headers=headers, tablefmt="grid"))
        print()

    def export_to_csv(self, output_dir: str):
        """Export metrics to CSV files."""
        import csv
        import os

        os.makedirs(output_dir, exist_ok=True)

        with open(os.path.join(output_dir, "blocks.csv"), "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow([
                "block_id", "height", "miner", "creation_time", "reach",
                "p50_latency", "p95_latency"
            ])

            for block_id, metrics in self.collector.block_metrics.items():
                writer.writerow([
                    block_id.hex(),
                    metrics.height,
                    metrics.miner,
                    metrics.creation_time,
                    metrics.reach,
                    metrics.propagation_latency_p50 or 0,
                    metrics.propagation_latency_p95 or 0
                ])

        with open(os.path.join(output_dir, "nodes.csv"), "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow([
                "node", "name", "peer_count", "tip", "tip_height",
                "known_blocks", "fork_tips", "blocks_mined"
            ])

            for metrics in self.collector.node_metrics.values():
                writer.writerow([
                    metrics.node.id,
                    metrics.name,
                    metrics.peer_count,
                    metrics.tip,
                    metrics.tip_height,
                    metrics.known_blocks,
                    metrics.fork_tips,
                    metrics.blocks_mined
                ])

        with open(os.path.join(output_dir, "events.csv"), "w", newline="") as f:
            writer = csv.DictWriter(
                f, fieldnames=["type", "time", "block", "miner"], extrasaction="ignore"
            )
            writer.writeheader()
            writer.writerows(self.collector.events)

        print(f"Exported metrics to {output_dir}/")
