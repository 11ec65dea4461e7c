"""
Exceptions raised by the simulation kernel.
"""


class SimulationError(Exception):
    """Base class for all simulator errors."""


class SchedulingError(SimulationError):
    """An event was scheduled before the current virtual time."""


class NoSuchEntity(SimulationError, KeyError):
    """An operation referenced an entity that is not in the world."""

    def __init__(self, entity):
        super().__init__(f"No such entity: {entity!r}")
        self.entity = entity


class TopologyError(SimulationError):
    """A topology could not be constructed from the current node set."""


class UnknownBlockError(SimulationError, KeyError):
    """A consensus query referenced a block the node does not know."""

    def __init__(self, block_id: bytes):
        super().__init__(f"Unknown block: {block_id.hex()[:16]}")
        self.block_id = block_id


class ProtocolError(SimulationError):
    """A protocol cannot be installed on the simulation."""
