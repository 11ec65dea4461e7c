"""
Read-only views over the world for renderers.

None of these functions mutate the simulation: they turn peer sets, in-flight
messages and block trees into plain data a renderer can draw.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .nakamoto import NakamotoNodeState
from .topology import PeerSet
from .underlay import TimeSpan, UnderlayLine, UnderlayPosition
from .world import Entity, World


class EdgeType(Enum):
    UNDIRECTED = "undirected"
    LEFT_RIGHT = "left_right"
    RIGHT_LEFT = "right_left"
    PHANTOM = "phantom"  # previously existing, currently removed

    @property
    def is_phantom(self) -> bool:
        return self == EdgeType.PHANTOM


@dataclass(frozen=True, order=True)
class EdgeEndpoints:
    """Unordered pair of nodes, normalized so that left <= right."""
    left: Entity
    right: Entity

    @classmethod
    def of(cls, node1: Entity, node2: Entity) -> "EdgeEndpoints":
        if node1 <= node2:
            return cls(node1, node2)
        return cls(node2, node1)


class EdgeMap:
    """
    Cached layout of all peer edges.

    Rebuilt only when some peer set changed after the last rebuild. Edges
    that disappear are kept as phantom edges so a UI can offer to restore
    them.
    """

    def __init__(self):
        self.edges: Dict[EdgeEndpoints, Tuple[EdgeType, UnderlayLine]] = {}
        self.last_update: float = -1.0

    @classmethod
    def build(cls, world: World, now: float) -> "EdgeMap":
        edge_map = cls()
        edge_map.rebuild(world, now)
        return edge_map

    def needs_rebuild(self, world: World) -> bool:
        return any(
            peer_set.last_update > self.last_update
            for _, peer_set in world.iter_components(PeerSet)
        )

    def rebuild_if_needed(self, world: World, now: float) -> bool:
        if not self.needs_rebuild(world):
            return False
        self.rebuild(world, now)
        return True

    def rebuild(self, world: World, now: float):
        for endpoints, (_, line) in self.edges.items():
            self.edges[endpoints] = (EdgeType.PHANTOM, line)

        for node, peer_set in world.iter_components(PeerSet):
            for peer in peer_set:
                if peer not in world:
                    continue
                endpoints = EdgeEndpoints.of(node, peer)
                direction = EdgeType.LEFT_RIGHT if endpoints.left == node else EdgeType.RIGHT_LEFT
                existing = self.edges.get(endpoints)
                if existing is None:
                    line = UnderlayLine.from_nodes(world, endpoints.left, endpoints.right)
                    self.edges[endpoints] = (direction, line)
                elif existing[0].is_phantom:
                    self.edges[endpoints] = (direction, existing[1])
                elif existing[0] != direction:
                    self.edges[endpoints] = (EdgeType.UNDIRECTED, existing[1])

        self.last_update = now

    def edge_type(self, node1: Entity, node2: Entity) -> Optional[EdgeType]:
        entry = self.edges.get(EdgeEndpoints.of(node1, node2))
        return entry[0] if entry is not None else None


def message_position(line: UnderlayLine, span: TimeSpan, now: float) -> UnderlayPosition:
    """Interpolated position of an in-flight message at virtual time `now`."""
    return line.interpolate(span.progress_clamped(now))


def blocks_cutout(state: NakamotoNodeState, max_depth: int = 5) -> List[List[Optional[bytes]]]:
    """
    Top of a node's block tree, laid out as columns.

    The first column is the best chain from the tip downwards. Every fork
    tip less than `max_depth` blocks below the tip gets its own column,
    padded with None so that equal heights share a row.

    Returns:
        Columns of block ids, each at most `max_depth` long
    """
    def walk(block_id: Optional[bytes], length: int) -> List[Optional[bytes]]:
        column = []
        while len(column) < length and block_id is not None and state.contains(block_id):
            column.append(block_id)
            block_id = state.hash_prev(block_id)
        return column

    result = [walk(state.tip, max_depth)]
    tip_height = state.tip_height
    for fork_tip in sorted(state.fork_tips, key=lambda b: (tip_height - state.height(b), b)):
        height_diff = tip_height - state.height(fork_tip)
        if height_diff >= max_depth:
            continue
        result.append([None] * height_diff + walk(fork_tip, max_depth - height_diff))
    return result
