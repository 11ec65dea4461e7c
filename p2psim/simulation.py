"""
Simulation context tying together the world, the event queue, the random
source and the installed protocols.

Every operation takes the Simulation explicitly; there is no global
simulation instance. Runs are reproducible for a fixed seed and a fixed
sequence of commands.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import random

from .errors import ProtocolError, SimulationError
from .events import (
    Command,
    Event,
    EventQueue,
    MessageArrived,
    NodePoked,
    PeerSetChanged,
    SimSeconds,
)
from .protocol import NodeContext, Protocol
from .topology import PeerSet, add_peer, remove_peer
from .underlay import (
    TimeSpan,
    UnderlayLine,
    UnderlayMessage,
    UnderlayNodeName,
    UnderlayPosition,
    random_node,
)
from .world import Entity, World


logger = logging.getLogger(__name__)

ENVELOPE_TYPES = (UnderlayMessage, TimeSpan, UnderlayLine)


@dataclass
class SimulationConfig:
    """
    Configuration of a simulation.

    Attributes:
        seed: Seed of the simulation's random source (None = nondeterministic)
        underlay_width: Width of the underlay plane
        underlay_height: Height of the underlay plane
        node_buffer_zone: Minimum distance of spawned nodes from the border
        flight_per_second: Underlay distance a message covers per virtual second
        message_log_size: Number of narrative log lines kept for observers
    """
    seed: int | None = None
    underlay_width: float = 1000.0
    underlay_height: float = 600.0
    node_buffer_zone: float = 10.0
    flight_per_second: float = 500.0
    message_log_size: int = 12

    def __post_init__(self):
        """Validate configuration."""
        if self.underlay_width <= 0 or self.underlay_height <= 0:
            raise ValueError("underlay dimensions must be positive")
        if 2 * self.node_buffer_zone >= min(self.underlay_width, self.underlay_height):
            raise ValueError("node_buffer_zone leaves no room to place nodes")
        if self.flight_per_second <= 0:
            raise ValueError("flight_per_second must be positive")
        if self.message_log_size < 0:
            raise ValueError("message_log_size must not be negative")


@dataclass
class SimulationCounters:
    """Running totals maintained by the simulation."""
    messages_sent: int = 0
    messages_delivered: int = 0
    messages_dropped: int = 0
    pokes: int = 0
    handler_errors: int = 0
    commands_failed: int = 0


# =============================================================================
# Commands
# =============================================================================

@dataclass(frozen=True)
class SpawnRandomNodes(Command):
    """Spawn `count` nodes with random names and positions."""
    count: int

    def execute(self, sim: "Simulation"):
        sim.spawn_random_nodes(self.count)


@dataclass(frozen=True)
class SpawnRandomMessages(Command):
    """Send `count` payload-less messages between random pairs of nodes."""
    count: int

    def execute(self, sim: "Simulation"):
        for _ in range(self.count):
            sim.spawn_message_between_random_nodes()


@dataclass(frozen=True)
class PokeNode(Command):
    """External stimulus for one node."""
    node: Entity

    def execute(self, sim: "Simulation"):
        sim.schedule_now(NodePoked(self.node))


@dataclass(frozen=True)
class PokeMultipleRandomNodes(Command):
    """External stimulus for `count` distinct random nodes."""
    count: int

    def execute(self, sim: "Simulation"):
        nodes = sim.all_nodes()
        for node in sim.rng.sample(nodes, min(self.count, len(nodes))):
            sim.schedule_now(NodePoked(node))


# =============================================================================
# Simulation
# =============================================================================

class Simulation:
    """
    A single-threaded, deterministic, virtual-time network simulation.

    Drivers issue commands (do_now / execute) and advance time with
    catch_up; protocols react to the resulting node events.
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        self.world = World()
        self.event_queue = EventQueue()
        self.rng = random.Random(self.config.seed)
        self.protocols: List[Protocol] = []
        self.counters = SimulationCounters()
        self.message_log: deque[Tuple[SimSeconds, str]] = deque(
            maxlen=self.config.message_log_size
        )
        self.failed_commands: List[Tuple[SimSeconds, Command, SimulationError]] = []

        self._handlers: Dict[type, Callable] = {
            MessageArrived: self._handle_message_arrived,
            NodePoked: self._handle_node_poked,
            PeerSetChanged: self._handle_peer_set_changed,
        }

    @property
    def now(self) -> SimSeconds:
        """Current virtual time."""
        return self.event_queue.current_time

    @property
    def underlay_width(self) -> float:
        return self.config.underlay_width

    @property
    def underlay_height(self) -> float:
        return self.config.underlay_height

    def add_protocol(self, protocol: Protocol) -> Protocol:
        """
        Install a protocol on all nodes. Protocols run in installation order.

        Raises:
            ProtocolError: if the instance is not a Protocol or is already installed
        """
        if not isinstance(protocol, Protocol):
            raise ProtocolError(f"Not a protocol: {protocol!r}")
        if any(installed is protocol for installed in self.protocols):
            raise ProtocolError(f"{protocol.name} is already installed")
        self.protocols.append(protocol)
        logger.info(f"Installed protocol {protocol.name}")
        return protocol

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def schedule(self, due_time: SimSeconds, event: Any) -> Event:
        """Schedule a simulation event at an absolute virtual time."""
        return self.event_queue.schedule_at(
            due_time,
            self._apply_event,
            event,
            description=repr(event)
        )

    def schedule_now(self, event: Any) -> Event:
        return self.schedule(self.now, event)

    def do_now(self, command: Command) -> Event:
        """Queue a command to run at the current virtual time."""
        return self.event_queue.schedule_at(
            self.now,
            self._run_command,
            command,
            description=repr(command)
        )

    def execute(self, command: Command):
        """Run a command immediately. Errors propagate to the caller."""
        command.execute(self)

    def catch_up(self, target_time: SimSeconds) -> int:
        """
        Process all events due at or before target_time.

        Returns:
            Number of events processed
        """
        return self.event_queue.run_until(target_time)

    def advance(self, duration: SimSeconds) -> int:
        """Process all events due within `duration` virtual seconds from now."""
        return self.catch_up(self.now + duration)

    # -------------------------------------------------------------------------
    # Spawning
    # -------------------------------------------------------------------------

    def spawn_node(self, position: UnderlayPosition, name: Optional[str] = None) -> Entity:
        """Spawn a node at a given position."""
        if name is None:
            name = f"node{len(self.all_nodes()):04d}"
        return self.world.spawn(UnderlayNodeName(name), position, PeerSet())

    def spawn_random_node(self) -> Entity:
        name, position = random_node(
            self.rng,
            self.config.underlay_width,
            self.config.underlay_height,
            self.config.node_buffer_zone
        )
        return self.world.spawn(name, position, PeerSet())

    def spawn_random_nodes(self, count: int) -> List[Entity]:
        return [self.spawn_random_node() for _ in range(count)]

    def spawn_message(
        self,
        source: Entity,
        dest: Entity,
        payload: Any = None,
        start_time: Optional[SimSeconds] = None
    ) -> Optional[Entity]:
        """
        Spawn an in-flight message and schedule its arrival.

        Flight time is the underlay distance divided by flight_per_second.
        A message to a node that no longer exists is dropped.

        Returns:
            The message entity, or None if it was dropped
        """
        if start_time is None:
            start_time = self.now

        pos_source = self.world.get(source, UnderlayPosition)
        pos_dest = self.world.get(dest, UnderlayPosition)
        if pos_source is None or pos_dest is None:
            self.counters.messages_dropped += 1
            logger.debug(f"Dropping message {source!r} -> {dest!r}: endpoint gone")
            return None

        line = UnderlayLine(pos_source, pos_dest)
        end_time = start_time + line.length / self.config.flight_per_second
        components = [UnderlayMessage(source, dest), TimeSpan(start_time, end_time), line]
        if payload is not None:
            components.append(payload)

        message = self.world.spawn(*components)
        self.counters.messages_sent += 1
        self.schedule(end_time, MessageArrived(message))
        return message

    def spawn_message_between_random_nodes(self) -> Optional[Entity]:
        nodes = self.all_nodes()
        if len(nodes) < 2:
            return None
        source, dest = self.rng.sample(nodes, 2)
        self.log(f"{self.name(source)}: Sending a message to {self.name(dest)}")
        return self.spawn_message(source, dest)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def all_nodes(self) -> List[Entity]:
        return [node for node, _ in self.world.query(UnderlayNodeName)]

    def all_other_nodes(self, node: Entity) -> List[Entity]:
        return [other for other in self.all_nodes() if other != node]

    def name(self, entity: Entity) -> str:
        name = self.world.get(entity, UnderlayNodeName)
        return str(name) if name is not None else f"entity{entity.id}"

    def message_payload(self, message: Entity) -> Any:
        """Protocol payload carried by a message entity, or None."""
        for component in self.world.components(message):
            if not isinstance(component, ENVELOPE_TYPES):
                return component
        return None

    def messages_in_flight(self) -> List[Tuple[Entity, UnderlayMessage, UnderlayLine, TimeSpan]]:
        """All messages currently travelling, with their trajectory and time span."""
        return [
            (message, envelope, line, span)
            for message, (envelope, line, span)
            in self.world.query(UnderlayMessage, UnderlayLine, TimeSpan)
        ]

    # -------------------------------------------------------------------------
    # Convenience commands
    # -------------------------------------------------------------------------

    def add_peer(self, node: Entity, peer: Entity) -> bool:
        return add_peer(self, node, peer)

    def remove_peer(self, node: Entity, peer: Entity) -> bool:
        return remove_peer(self, node, peer)

    def poke(self, node: Entity) -> Event:
        return self.do_now(PokeNode(node))

    def log(self, text: str):
        """Record a narrative line for observers."""
        logger.debug(f"[{self.now:.3f}] {text}")
        self.message_log.appendleft((self.now, text))

    # -------------------------------------------------------------------------
    # Event dispatch
    # -------------------------------------------------------------------------

    def _run_command(self, command: Command):
        try:
            command.execute(self)
        except SimulationError as e:
            self.counters.commands_failed += 1
            self.failed_commands.append((self.now, command, e))
            logger.error(f"Command {command!r} failed at {self.now:.3f}: {e}")

    def _apply_event(self, event: Any):
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown simulation event: {event!r}")
        handler(event)

    def _handle_message_arrived(self, event: MessageArrived):
        envelope = self.world.get(event.message, UnderlayMessage)
        if envelope is None:
            return
        payload = self.message_payload(event.message)
        self.world.despawn(event.message)

        if envelope.dest not in self.world:
            self.counters.messages_dropped += 1
            logger.debug(f"Message {event.message!r} arrived at vanished node {envelope.dest!r}")
            return

        self.counters.messages_delivered += 1
        node = NodeContext(self, envelope.dest)
        for protocol in self.protocols:
            if protocol.message_type is None or type(payload) is not protocol.message_type:
                continue
            self._invoke(
                protocol, node, "handle_message", envelope, payload,
                context=f"message from {self.name(envelope.source)}"
            )

    def _handle_node_poked(self, event: NodePoked):
        if event.node not in self.world:
            return
        self.counters.pokes += 1
        node = NodeContext(self, event.node)
        for protocol in self.protocols:
            self._invoke(protocol, node, "handle_poke", context="poke")

    def _handle_peer_set_changed(self, event: PeerSetChanged):
        if event.node not in self.world:
            return
        node = NodeContext(self, event.node)
        for protocol in self.protocols:
            self._invoke(
                protocol, node, "handle_peer_set_update", event.update,
                context=repr(event.update)
            )

    def _invoke(self, protocol: Protocol, node: NodeContext, hook: str, *args, context: str = "") -> bool:
        """Run one protocol hook, isolating its failure from everything else."""
        try:
            getattr(protocol, hook)(node, *args)
        except Exception as e:
            self.counters.handler_errors += 1
            logger.warning(f"{node.name}: {protocol.name}.{hook} failed on {context}: {e!r}")
            return False
        return True
