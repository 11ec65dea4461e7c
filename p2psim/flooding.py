"""
Simple flooding: epidemic dissemination of arbitrary items.

Each node remembers, per peer, which items it sent to or received from that
peer and never sends an item over an edge that has already carried it, so
flooding one item costs at most one send per directed peer edge.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Hashable, Iterable, Optional, TypeVar
import logging

from .events import PeerRemoved, PeerSetUpdate
from .protocol import NodeContext, Protocol
from .underlay import UnderlayMessage
from .world import Entity


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Hashable)


@dataclass(frozen=True)
class FloodingMessage(Generic[T]):
    """Payload of a flooding message."""
    item: T


@dataclass
class PeerRecord:
    """Items known to have crossed the edge to one peer."""
    sent: set = field(default_factory=set)
    received: set = field(default_factory=set)

    def has_seen(self, item: Any) -> bool:
        return item in self.sent or item in self.received


@dataclass
class FloodingState:
    """Per-node flooding bookkeeping: items seen, plus one record per peer."""
    known: set = field(default_factory=set)
    peers: Dict[Entity, PeerRecord] = field(default_factory=dict)

    def record(self, peer: Entity) -> PeerRecord:
        return self.peers.setdefault(peer, PeerRecord())

    def has_seen(self, peer: Entity, item: Any) -> bool:
        record = self.peers.get(peer)
        return record is not None and record.has_seen(item)

    def forget(self, peer: Entity):
        self.peers.pop(peer, None)


class SimpleFlooding(Protocol, Generic[T]):
    """
    Flooding protocol, usable on its own or as transport of another protocol.

    Args:
        message_type: FloodingMessage subclass wrapping the items on the wire
    """

    def __init__(self, message_type: type = FloodingMessage):
        self.message_type = message_type

    def flood(self, node: NodeContext, item: T, exclude: Optional[Entity] = None) -> int:
        """
        Send `item` to every peer that has not seen it yet.

        Returns:
            Number of messages sent
        """
        state = node.get(FloodingState)
        state.known.add(item)
        sent = 0
        for peer in node.peers():
            if peer == exclude or state.has_seen(peer, item):
                continue
            if node.send(peer, self.message_type(item)) is not None:
                state.record(peer).sent.add(item)
                sent += 1
        return sent

    def flood_peer_with(self, node: NodeContext, peer: Entity, items: Iterable[T]) -> int:
        """
        Send `items` to `peer` in order, ignoring what it has already seen.

        Used to bring a newly joined peer up to date.

        Returns:
            Number of messages sent
        """
        state = node.get(FloodingState)
        sent = 0
        for item in items:
            state.known.add(item)
            if node.send(peer, self.message_type(item)) is None:
                break
            state.record(peer).sent.add(item)
            sent += 1
        return sent

    def forget_peer(self, node: NodeContext, peer: Entity):
        """Drop all bookkeeping about `peer`."""
        node.get(FloodingState).forget(peer)

    def inject(self, node: NodeContext, item: T) -> int:
        """Originate a new item at `node`."""
        node.log(f"Flooding new item {item!r}")
        return self.flood(node, item)

    def handle_message(self, node: NodeContext, envelope: UnderlayMessage, payload: FloodingMessage):
        state = node.get(FloodingState)
        if envelope.source in node.peers():
            state.record(envelope.source).received.add(payload.item)
        else:
            logger.debug(f"{node.name}: {payload.item!r} arrived from non-peer {envelope.source!r}")
        self.flood(node, payload.item, exclude=envelope.source)

    def handle_peer_set_update(self, node: NodeContext, update: PeerSetUpdate):
        if isinstance(update, PeerRemoved):
            self.forget_peer(node, update.peer)
