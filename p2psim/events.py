"""
Discrete event simulation engine.

Provides the virtual clock and a priority queue of pending events, plus the
event and command types the simulation dispatches. Events due at the same
virtual time fire in the order they were scheduled.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TYPE_CHECKING

from .errors import SchedulingError
from .world import Entity

if TYPE_CHECKING:
    from .simulation import Simulation


logger = logging.getLogger(__name__)

SimSeconds = float


@dataclass(order=True)
class Event:
    """
    An event in the simulation.

    Attributes:
        time: When the event occurs (virtual seconds)
        sequence: Scheduling order, breaks ties between equal times
        handler: Function to call when event fires
        args: Positional arguments for handler
        kwargs: Keyword arguments for handler
        description: Human-readable description
    """
    time: SimSeconds
    sequence: int
    handler: Callable = field(compare=False)
    args: tuple = field(default_factory=tuple, compare=False)
    kwargs: dict = field(default_factory=dict, compare=False)
    description: str = field(default="", compare=False)

    def execute(self) -> Any:
        """Execute the event handler."""
        return self.handler(*self.args, **self.kwargs)


class EventQueue:
    """
    Priority queue for managing simulation events.

    Owns the virtual clock. There is no cancellation: once scheduled, an
    event always fires.
    """

    def __init__(self):
        self._queue: list[Event] = []
        self._current_time: SimSeconds = 0.0
        self._sequence = itertools.count()
        self._event_count: int = 0

    def schedule(
        self,
        delay: SimSeconds,
        handler: Callable,
        *args,
        description: str = "",
        **kwargs
    ) -> Event:
        """
        Schedule an event to occur after a delay.

        Args:
            delay: Virtual seconds from now when event should fire
            handler: Function to call when event fires
            *args: Positional arguments for handler
            description: Human-readable description
            **kwargs: Keyword arguments for handler

        Returns:
            The created Event object
        """
        if delay < 0:
            raise SchedulingError(f"Negative delay: {delay}")
        return self.schedule_at(
            self._current_time + delay,
            handler,
            *args,
            description=description,
            **kwargs
        )

    def schedule_at(
        self,
        time: SimSeconds,
        handler: Callable,
        *args,
        description: str = "",
        **kwargs
    ) -> Event:
        """
        Schedule an event to occur at an absolute time.

        Raises:
            SchedulingError: if time lies before the current virtual time
        """
        if time < self._current_time:
            raise SchedulingError(
                f"Cannot schedule {description or handler} at {time:.3f}, "
                f"clock is already at {self._current_time:.3f}"
            )
        event = Event(
            time=time,
            sequence=next(self._sequence),
            handler=handler,
            args=args,
            kwargs=kwargs,
            description=description
        )
        heapq.heappush(self._queue, event)
        self._event_count += 1
        return event

    def pop(self) -> Event | None:
        """Get and remove the next event, or None if queue is empty."""
        if not self._queue:
            return None
        return heapq.heappop(self._queue)

    def peek(self) -> Event | None:
        """Get the next event without removing it."""
        if not self._queue:
            return None
        return self._queue[0]

    def advance_to(self, time: SimSeconds):
        """Advance current time without processing events."""
        self._current_time = max(self._current_time, time)

    @property
    def current_time(self) -> SimSeconds:
        """Current simulation time in virtual seconds."""
        return self._current_time

    @property
    def size(self) -> int:
        """Number of pending events."""
        return len(self._queue)

    @property
    def total_events(self) -> int:
        """Total number of events created."""
        return self._event_count

    def is_empty(self) -> bool:
        return len(self._queue) == 0

    def run_until(self, end_time: SimSeconds, max_events: int | None = None) -> int:
        """
        Process every event due at or before end_time.

        Events scheduled by handlers are served in the same run if they are
        due in time. The clock ends at end_time unless it is already later
        or max_events cut the run short.

        Returns:
            Number of events processed
        """
        events_processed = 0

        while not self.is_empty():
            event = self.peek()
            if event.time > end_time:
                break
            if max_events is not None and events_processed >= max_events:
                return events_processed

            event = self.pop()
            self._current_time = event.time
            if event.description:
                logger.debug(f"[{event.time:.3f}] {event.description}")
            event.execute()
            events_processed += 1

        self.advance_to(end_time)
        return events_processed


# =============================================================================
# Simulation event types
# =============================================================================

@dataclass(frozen=True)
class PeerAdded:
    peer: Entity


@dataclass(frozen=True)
class PeerRemoved:
    peer: Entity


PeerSetUpdate = PeerAdded | PeerRemoved


@dataclass(frozen=True)
class MessageArrived:
    """A message entity reached the end of its time span."""
    message: Entity


@dataclass(frozen=True)
class NodePoked:
    """External stimulus for a single node."""
    node: Entity


@dataclass(frozen=True)
class PeerSetChanged:
    """A node's peer set gained or lost a member."""
    node: Entity
    update: PeerSetUpdate


class Command:
    """
    A discrete operation issued by a driver (script, scenario or UI).

    Commands run at the current virtual time, either queued through
    Simulation.do_now or synchronously through Simulation.execute.
    """

    def execute(self, sim: "Simulation"):
        raise NotImplementedError
