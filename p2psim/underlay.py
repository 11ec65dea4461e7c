"""
Underlay data structures.

The underlay is the abstract physical layer beneath the protocols: node
positions in a 2D plane, and the trajectory and flight time of every
message travelling between two nodes.
"""

from dataclasses import dataclass
import math
import random

from .world import Entity, World


@dataclass(frozen=True)
class UnderlayPosition:
    """Position of a node in the underlay plane."""
    x: float
    y: float

    def distance(self, other: "UnderlayPosition") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class UnderlayNodeName:
    """Display name of a node."""
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class UnderlayMessage:
    """
    Transport envelope of an in-flight message.

    Attributes:
        source: Sending node
        dest: Receiving node
    """
    source: Entity
    dest: Entity


@dataclass(frozen=True)
class TimeSpan:
    """Virtual time interval [start, end) during which a message is in flight."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def progress(self, now: float) -> float:
        """Fraction of the span elapsed at `now`, unclamped."""
        if self.duration <= 0:
            return 1.0
        return (now - self.start) / self.duration

    def progress_clamped(self, now: float) -> float:
        """Fraction of the span elapsed at `now`, clamped to [0, 1]."""
        return min(1.0, max(0.0, self.progress(now)))


@dataclass(frozen=True)
class UnderlayLine:
    """Straight-line trajectory between two underlay positions."""
    start: UnderlayPosition
    end: UnderlayPosition

    @classmethod
    def from_nodes(cls, world: World, source: Entity, dest: Entity) -> "UnderlayLine":
        return cls(
            start=world.get(source, UnderlayPosition),
            end=world.get(dest, UnderlayPosition),
        )

    @property
    def length(self) -> float:
        return self.start.distance(self.end)

    def interpolate(self, progress: float) -> UnderlayPosition:
        """Point at the given fraction of the way from start to end."""
        return UnderlayPosition(
            x=self.start.x + (self.end.x - self.start.x) * progress,
            y=self.start.y + (self.end.y - self.start.y) * progress,
        )


def random_node(
    rng: random.Random,
    width: float,
    height: float,
    buffer_zone: float = 10.0
) -> tuple[UnderlayNodeName, UnderlayPosition]:
    """
    Draw the components of a random node.

    Args:
        rng: Random source
        width: Underlay width
        height: Underlay height
        buffer_zone: Minimum distance kept from the underlay border

    Returns:
        (name, position) ready to be spawned
    """
    name = UnderlayNodeName(f"node{rng.randrange(10_000):04d}")
    position = UnderlayPosition(
        x=rng.uniform(buffer_zone, width - buffer_zone),
        y=rng.uniform(buffer_zone, height - buffer_zone),
    )
    return name, position
