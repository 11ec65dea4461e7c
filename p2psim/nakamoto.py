"""
Nakamoto consensus on top of simple flooding.

Each node keeps the tree of blocks it knows, follows the longest chain and
remembers the heads of competing chains as fork tips. Poking a node makes it
find a block on top of its current tip. Block identities are random 256-bit
tags, not hashes of block content.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple
import logging
import random

from .errors import UnknownBlockError
from .events import PeerAdded, PeerRemoved, PeerSetUpdate
from .flooding import FloodingMessage, SimpleFlooding
from .protocol import NodeContext, Protocol
from .underlay import UnderlayMessage


logger = logging.getLogger(__name__)

HASH_SIZE = 32  # 256 bit
GENESIS = bytes(HASH_SIZE)


def short_id(block_id: bytes) -> str:
    return block_id.hex()[:8]


def to_number(block_id: bytes) -> int:
    """Small integer derived from a block id, e.g. for picking a color."""
    return int.from_bytes(block_id[:4], "big")


@dataclass(frozen=True)
class Block:
    """
    A block: its identity and the identity of its predecessor.

    Attributes:
        id: Random 256-bit identity
        id_prev: Identity of the previous block (GENESIS for the first block)
    """
    id: bytes
    id_prev: bytes = GENESIS

    @classmethod
    def new(cls, id_prev: bytes, rng: random.Random) -> "Block":
        """Create a block on top of `id_prev` with a freshly drawn identity."""
        return cls(id=rng.randbytes(HASH_SIZE), id_prev=id_prev)

    def __repr__(self):
        return f"Block({short_id(self.id)} <- {short_id(self.id_prev)})"


@dataclass(frozen=True)
class BlockMessage(FloodingMessage[Block]):
    """Flooding payload carrying one block."""


@dataclass
class NakamotoNodeState:
    """
    Block tree of one node.

    Attributes:
        blocks: Block id -> (height, block) for every known block
        tip: Head of the best chain (GENESIS while no block is known)
        fork_tips: Heads of known chains other than the best one
    """
    blocks: Dict[bytes, Tuple[int, Block]] = field(default_factory=dict)
    tip: bytes = GENESIS
    fork_tips: Set[bytes] = field(default_factory=set)

    def register_block(self, block: Block) -> bool:
        """
        Add a block to the tree.

        Longest chain wins; of two chains with equal height the one seen
        first stays the tip. A block whose predecessor is unknown is dropped.

        Returns:
            True if the block was stored and became the new tip
        """
        if block.id in self.blocks or block.id == GENESIS:
            return False

        if block.id_prev == self.tip:
            self.blocks[block.id] = (self.height(self.tip) + 1, block)
            self.tip = block.id
            return True

        if block.id_prev != GENESIS and block.id_prev not in self.blocks:
            logger.debug(f"Dropping orphan {block!r}")
            return False

        self.blocks[block.id] = (self.height(block.id_prev) + 1, block)
        self.fork_tips.discard(block.id_prev)
        self.fork_tips.add(block.id)

        if self.height(block.id) > self.height(self.tip):
            old_tip = self.tip
            self.tip = block.id
            self.fork_tips.discard(block.id)
            self.fork_tips.add(old_tip)
            return True
        return False

    def contains(self, block_id: bytes) -> bool:
        return block_id in self.blocks

    def __len__(self) -> int:
        return len(self.blocks)

    def height(self, block_id: bytes) -> int:
        """
        Number of blocks from genesis up to and including `block_id`.

        Raises:
            UnknownBlockError: for an unknown block other than GENESIS
        """
        if block_id == GENESIS:
            return 0
        entry = self.blocks.get(block_id)
        if entry is None:
            raise UnknownBlockError(block_id)
        return entry[0]

    @property
    def tip_height(self) -> int:
        return self.height(self.tip)

    def hash_prev(self, block_id: bytes) -> Optional[bytes]:
        """Predecessor of a known block, or None if the block is unknown."""
        entry = self.blocks.get(block_id)
        return entry[1].id_prev if entry is not None else None

    def all_blocks_sorted(self) -> List[Block]:
        """All known blocks, forks included, lowest height first."""
        entries = sorted(self.blocks.values(), key=lambda entry: entry[0])
        return [block for _, block in entries]

    def chain(self, block_id: Optional[bytes] = None) -> List[bytes]:
        """Ids from `block_id` (default: the tip) back to, excluding, GENESIS."""
        result = []
        current = self.tip if block_id is None else block_id
        while current != GENESIS:
            result.append(current)
            current = self.hash_prev(current)
            if current is None:
                raise UnknownBlockError(result[-1])
        return result


class NakamotoConsensus(Protocol):
    """Longest-chain consensus, using simple flooding to spread blocks."""

    message_type = BlockMessage

    def __init__(self):
        self.flooding = SimpleFlooding(BlockMessage)

    def handle_message(self, node: NodeContext, envelope: UnderlayMessage, payload: BlockMessage):
        node.get(NakamotoNodeState).register_block(payload.item)
        self.flooding.handle_message(node, envelope, payload)

    def handle_poke(self, node: NodeContext):
        state = node.get(NakamotoNodeState)
        block = Block.new(state.tip, node.rng)
        state.register_block(block)
        node.log(f"Got poked, so I found a new block {short_id(block.id)} at height {state.tip_height}!")
        self.flooding.flood(node, block)

    def handle_peer_set_update(self, node: NodeContext, update: PeerSetUpdate):
        if isinstance(update, PeerAdded):
            all_blocks = node.get(NakamotoNodeState).all_blocks_sorted()
            self.flooding.flood_peer_with(node, update.peer, all_blocks)
        elif isinstance(update, PeerRemoved):
            self.flooding.forget_peer(node, update.peer)
