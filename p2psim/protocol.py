"""
Protocol plug-in contract.

A protocol reacts to three kinds of node events: a message arriving, an
external poke, and a change of the node's peer set. Protocol instances hold
only protocol-wide configuration; all per-node state lives in the world as
components of the node entity, reached through a NodeContext.
"""

import random
from typing import Any, Optional, Type, TypeVar, TYPE_CHECKING

from .events import PeerSetUpdate
from .topology import PeerSet, peers
from .underlay import UnderlayMessage
from .world import Entity

if TYPE_CHECKING:
    from .simulation import Simulation


S = TypeVar("S")


class NodeContext:
    """
    Handle to the node a protocol is currently acting for.

    Gives read/write access to the node's own components and lets the
    protocol send messages from it.
    """

    def __init__(self, sim: "Simulation", entity: Entity):
        self.sim = sim
        self.entity = entity

    @property
    def now(self) -> float:
        return self.sim.now

    @property
    def rng(self) -> random.Random:
        return self.sim.rng

    @property
    def name(self) -> str:
        return self.sim.name(self.entity)

    def get(self, state_type: Type[S]) -> S:
        """Get a component of this node, attaching a default one if missing."""
        state = self.sim.world.get(self.entity, state_type)
        if state is None:
            state = state_type()
            self.sim.world.insert(self.entity, state)
        return state

    def find(self, component_type: Type[S]) -> Optional[S]:
        """Get a component of this node without creating it."""
        return self.sim.world.get(self.entity, component_type)

    def peers(self) -> PeerSet:
        return peers(self.sim, self.entity)

    def send(self, dest: Entity, payload: Any) -> Entity:
        """Send a message carrying `payload` to `dest`. Returns the message entity."""
        return self.sim.spawn_message(self.entity, dest, payload)

    def log(self, text: str):
        self.sim.log(f"{self.name}: {text}")

    def __repr__(self):
        return f"NodeContext({self.name}, {self.entity!r})"


class Protocol:
    """
    Base class for protocols installed on a simulation.

    Subclasses set `message_type` to the payload component class they
    consume; a message is routed to a protocol only if it carries a payload
    of exactly that class. Handlers may raise to signal failure: the error is
    logged and does not affect other protocols or nodes.
    """

    message_type: Optional[type] = None

    @property
    def name(self) -> str:
        return type(self).__name__

    def handle_message(
        self,
        node: NodeContext,
        envelope: UnderlayMessage,
        payload: Any
    ):
        """Called when a message for `node` reaches the end of its time span."""

    def handle_poke(self, node: NodeContext):
        """Called on external stimulus, with no message context."""

    def handle_peer_set_update(self, node: NodeContext, update: PeerSetUpdate):
        """Called when a peer was added to or removed from `node`."""
