"""
Peer sets and network topology commands.

Every topology change goes through add_peer/remove_peer, which stamp the
peer set with the current virtual time and notify the installed protocols
at the same virtual instant. Peering is directed: a symmetric link needs
both directions added explicitly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, TYPE_CHECKING
import itertools
import logging

import numpy as np
from scipy.spatial import Delaunay, QhullError

from .errors import TopologyError
from .events import Command, PeerAdded, PeerRemoved, PeerSetChanged
from .underlay import UnderlayNodeName, UnderlayPosition
from .world import Entity

if TYPE_CHECKING:
    from .simulation import Simulation


logger = logging.getLogger(__name__)


class TopologyStrategy(Enum):
    """Network topology generation strategies."""
    DELAUNAY = "delaunay"  # Delaunay triangulation of node positions
    RANDOM = "random"  # Random symmetric peering


class PeerSet:
    """
    The set of peers of one node.

    `last_update` is the virtual time of the latest successful change, used
    by observers to decide whether cached edge layouts are stale.
    """

    def __init__(self, peers: Iterable[Entity] = (), last_update: float = 0.0):
        self._peers: set[Entity] = set(peers)
        self._last_update = last_update

    @classmethod
    def from_peers(cls, peers: Iterable[Entity]) -> "PeerSet":
        return cls(peers)

    def insert(self, peer: Entity, now: float) -> bool:
        """Add a peer. Returns True if the set changed."""
        if peer in self._peers:
            return False
        self._peers.add(peer)
        self._last_update = now
        return True

    def remove(self, peer: Entity, now: float) -> bool:
        """Remove a peer. Returns True if the set changed."""
        if peer not in self._peers:
            return False
        self._peers.remove(peer)
        self._last_update = now
        return True

    def contains(self, peer: Entity) -> bool:
        return peer in self._peers

    def __contains__(self, peer: Entity) -> bool:
        return peer in self._peers

    def __iter__(self) -> Iterator[Entity]:
        return iter(sorted(self._peers))

    def __len__(self) -> int:
        return len(self._peers)

    def __eq__(self, other):
        if not isinstance(other, PeerSet):
            return NotImplemented
        return self._peers == other._peers and self._last_update == other._last_update

    def __repr__(self):
        return f"PeerSet({sorted(self._peers)}, last_update={self._last_update})"

    @property
    def last_update(self) -> float:
        return self._last_update


@dataclass(frozen=True)
class AddPeer(Command):
    """Make `node` peer with `peer` (one direction)."""
    node: Entity
    peer: Entity

    def execute(self, sim: "Simulation"):
        add_peer(sim, self.node, self.peer)


@dataclass(frozen=True)
class RemovePeer(Command):
    """Drop `peer` from the peer set of `node` (one direction)."""
    node: Entity
    peer: Entity

    def execute(self, sim: "Simulation"):
        remove_peer(sim, self.node, self.peer)


@dataclass(frozen=True)
class MakeDelaunayNetwork(Command):
    """Replace all peerings with a Delaunay triangulation of node positions."""

    def execute(self, sim: "Simulation"):
        make_delaunay_network(sim)


def peers(sim: "Simulation", node: Entity) -> PeerSet:
    """Get the peer set of a node, attaching an empty one if missing."""
    peer_set = sim.world.get(node, PeerSet)
    if peer_set is None:
        peer_set = PeerSet()
        sim.world.insert(node, peer_set)
    return peer_set


def add_peer(sim: "Simulation", node: Entity, peer: Entity) -> bool:
    """
    Insert `peer` into the peer set of `node` and notify its protocols.

    Returns:
        True if the peer set changed
    """
    if not peers(sim, node).insert(peer, sim.now):
        return False
    sim.schedule_now(PeerSetChanged(node, PeerAdded(peer)))
    return True


def remove_peer(sim: "Simulation", node: Entity, peer: Entity) -> bool:
    """
    Remove `peer` from the peer set of `node` and notify its protocols.

    Returns:
        True if the peer set changed
    """
    if not peers(sim, node).remove(peer, sim.now):
        return False
    sim.schedule_now(PeerSetChanged(node, PeerRemoved(peer)))
    return True


def delaunay_edges(sim: "Simulation") -> set[tuple[Entity, Entity]]:
    """
    Triangulate all node positions.

    Returns:
        Undirected edges as (smaller, larger) entity pairs

    Raises:
        TopologyError: if no triangulation exists
    """
    nodes = sim.world.query(UnderlayNodeName, UnderlayPosition)
    if len(nodes) < 3:
        raise TopologyError(f"No triangulation exists for {len(nodes)} nodes")

    points = np.array([[pos.x, pos.y] for _, (_, pos) in nodes])
    if len(np.unique(points, axis=0)) < len(points):
        raise TopologyError("No triangulation exists: coincident node positions")
    try:
        triangulation = Delaunay(points)
    except QhullError as e:
        raise TopologyError(f"No triangulation exists: {e}") from e
    if len(triangulation.coplanar):
        raise TopologyError("No triangulation exists: nodes left out of the triangulation")

    edges = set()
    for simplex in triangulation.simplices:
        for i, j in itertools.combinations(simplex, 2):
            a, b = nodes[int(i)][0], nodes[int(j)][0]
            edges.add((min(a, b), max(a, b)))
    return edges


def make_delaunay_network(sim: "Simulation"):
    """
    Rewire the whole network as a Delaunay triangulation.

    The triangulation is computed before any peer set is touched, so a
    failure leaves the topology unchanged.
    """
    edges = delaunay_edges(sim)

    for node in sim.all_nodes():
        for peer in list(peers(sim, node)):
            remove_peer(sim, node, peer)

    for a, b in sorted(edges):
        add_peer(sim, a, b)
        add_peer(sim, b, a)

    logger.info(f"Built Delaunay network: {len(edges)} edges")


def add_random_nodes_as_peers(
    sim: "Simulation",
    node: Entity,
    new_peers_min: int,
    new_peers_max: int
) -> List[Entity]:
    """
    Peer `node` with a random number of randomly chosen other nodes.

    The count is drawn uniformly from [new_peers_min, new_peers_max), both
    bounds clamped to the number of candidates. Peering is one-directional.

    Returns:
        The newly added peers

    Raises:
        ValueError: if new_peers_min is greater than new_peers_max
    """
    if new_peers_min > new_peers_max:
        raise ValueError(f"new_peers_min {new_peers_min} > new_peers_max {new_peers_max}")

    current = peers(sim, node)
    candidates = [c for c in sim.all_other_nodes(node) if c not in current]

    low = min(new_peers_min, len(candidates))
    high = min(new_peers_max, len(candidates))
    count = sim.rng.randrange(low, high) if low < high else low

    new_peers = sim.rng.sample(candidates, count)
    for peer in new_peers:
        add_peer(sim, node, peer)
    return new_peers


def connect_topology(
    sim: "Simulation",
    strategy: TopologyStrategy = TopologyStrategy.DELAUNAY,
    min_peers: int = 2,
    max_peers: int = 4
):
    """
    Generate and apply a symmetric topology over all nodes.

    Args:
        sim: Simulation to rewire
        strategy: Topology strategy
        min_peers: Lower bound of new peers per node (RANDOM only)
        max_peers: Upper bound (exclusive) of new peers per node (RANDOM only)
    """
    if strategy == TopologyStrategy.DELAUNAY:
        make_delaunay_network(sim)
    elif strategy == TopologyStrategy.RANDOM:
        for node in sim.all_nodes():
            for peer in add_random_nodes_as_peers(sim, node, min_peers, max_peers):
                add_peer(sim, peer, node)
    else:
        raise ValueError(f"Unknown topology strategy: {strategy}")
