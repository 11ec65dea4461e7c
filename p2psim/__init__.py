"""
P2P Network Simulator

A deterministic, virtual-time simulator of peer-to-peer protocols (gossip
flooding, Nakamoto consensus) over a dynamically reconfigurable topology.
"""

from .errors import (
    SimulationError,
    SchedulingError,
    NoSuchEntity,
    TopologyError,
    UnknownBlockError,
    ProtocolError,
)
from .events import (
    Event,
    EventQueue,
    Command,
    PeerAdded,
    PeerRemoved,
    MessageArrived,
    NodePoked,
    PeerSetChanged,
)
from .world import Entity, World
from .underlay import (
    UnderlayPosition,
    UnderlayNodeName,
    UnderlayMessage,
    TimeSpan,
    UnderlayLine,
)
from .topology import (
    PeerSet,
    TopologyStrategy,
    AddPeer,
    RemovePeer,
    MakeDelaunayNetwork,
    add_random_nodes_as_peers,
    connect_topology,
)
from .protocol import Protocol, NodeContext
from .simulation import (
    Simulation,
    SimulationConfig,
    SpawnRandomNodes,
    SpawnRandomMessages,
    PokeNode,
    PokeMultipleRandomNodes,
)
from .flooding import SimpleFlooding, FloodingMessage, FloodingState
from .nakamoto import GENESIS, Block, BlockMessage, NakamotoNodeState, NakamotoConsensus
from .view import EdgeMap, EdgeType, message_position, blocks_cutout
from .statistics import Statistics, MetricsCollector, ConsensusObserver
from .visualization import Visualizer

__version__ = "0.1.0"
__all__ = [
    "SimulationError",
    "SchedulingError",
    "NoSuchEntity",
    "TopologyError",
    "UnknownBlockError",
    "ProtocolError",
    "Event",
    "EventQueue",
    "Command",
    "PeerAdded",
    "PeerRemoved",
    "MessageArrived",
    "NodePoked",
    "PeerSetChanged",
    "Entity",
    "World",
    "UnderlayPosition",
    "UnderlayNodeName",
    "UnderlayMessage",
    "TimeSpan",
    "UnderlayLine",
    "PeerSet",
    "TopologyStrategy",
    "AddPeer",
    "RemovePeer",
    "MakeDelaunayNetwork",
    "add_random_nodes_as_peers",
    "connect_topology",
    "Protocol",
    "NodeContext",
    "Simulation",
    "SimulationConfig",
    "SpawnRandomNodes",
    "SpawnRandomMessages",
    "PokeNode",
    "PokeMultipleRandomNodes",
    "SimpleFlooding",
    "FloodingMessage",
    "FloodingState",
    "GENESIS",
    "Block",
    "BlockMessage",
    "NakamotoNodeState",
    "NakamotoConsensus",
    "EdgeMap",
    "EdgeType",
    "message_position",
    "blocks_cutout",
    "Statistics",
    "MetricsCollector",
    "ConsensusObserver",
    "Visualizer",
]
