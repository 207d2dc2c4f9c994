"""
state.py - In-memory miner state.

Holds one MiningSession per user address plus the shared block-number counter
and the rolling discovery-time history. Nothing here is persisted; after a
restart the counter is re-seeded from the chain and sessions are recreated as
users start mining again.

Mutation discipline:
 - DiscoveryScheduler appends pending blocks and counts hash attempts
 - SettlementScheduler and the acknowledge endpoint remove pending blocks,
   both through MinerStateStore.remove_blocks()
 - SessionControl toggles `active` and sets `plan`
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional

logger = logging.getLogger("state")

BLOCK_TIME_HISTORY = 50


def normalize_address(address: Optional[str]) -> str:
    """Canonical (stripped, lowercase) form of an account address."""
    return (address or "").strip().lower()


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class PseudoBlock:
    block_number: int
    nonce: int
    local_hash: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "blockNumber": self.block_number,
            "nonce": self.nonce,
            "localHash": self.local_hash,
            "timestamp": int(self.timestamp * 1000),
        }


@dataclass
class MiningSession:
    address: str
    active: bool = False
    plan: int = 0
    hash_attempts: int = 0
    pending_blocks: List[PseudoBlock] = field(default_factory=list)

    def pending_numbers(self) -> List[int]:
        return [b.block_number for b in self.pending_blocks]


# ---------------------------------------------------------------------------
# Shared block-number counter
# ---------------------------------------------------------------------------


class BlockCounter:
    """Issues strictly increasing block numbers shared by all sessions."""

    def __init__(self, start: int = 0):
        self._next = int(start)

    @property
    def value(self) -> int:
        """The number the next discovered block will receive."""
        return self._next

    def next(self) -> int:
        number = self._next
        self._next += 1
        return number

    def reset(self, value: int):
        self._next = int(value)

    def sync(self, confirmed_count: int) -> int:
        """Move up to the chain's confirmed block count. Never moves backwards,
        so numbers already handed to pending blocks are not reissued."""
        confirmed_count = int(confirmed_count)
        if confirmed_count > self._next:
            logger.info("Block counter re-synced %d -> %d", self._next, confirmed_count)
            self._next = confirmed_count
        return self._next


# ---------------------------------------------------------------------------
# Rolling block-time history
# ---------------------------------------------------------------------------


class BlockTimeTracker:
    """Bounded history of discovery timestamps for average block time."""

    def __init__(self, capacity: int = BLOCK_TIME_HISTORY):
        self._timestamps: Deque[float] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._timestamps)

    def record(self, timestamp: Optional[float] = None):
        self._timestamps.append(time.time() if timestamp is None else timestamp)

    def average(self) -> str:
        """Mean seconds between consecutive discoveries, as "%.2f", or "N/A"."""
        if len(self._timestamps) < 2:
            return "N/A"
        stamps = list(self._timestamps)
        total = sum(b - a for a, b in zip(stamps, stamps[1:]))
        return "%.2f" % (total / (len(stamps) - 1))


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


class MinerStateStore:
    """address -> MiningSession, keyed by normalized address."""

    def __init__(self):
        self._sessions: Dict[str, MiningSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, address: str) -> bool:
        return normalize_address(address) in self._sessions

    def get(self, address: str) -> Optional[MiningSession]:
        return self._sessions.get(normalize_address(address))

    def view(self, address: str) -> MiningSession:
        """Session for `address`, or an empty inactive one that is not stored."""
        addr = normalize_address(address)
        session = self._sessions.get(addr)
        if session is None:
            return MiningSession(address=addr)
        return session

    def get_or_create(self, address: str) -> MiningSession:
        addr = normalize_address(address)
        session = self._sessions.get(addr)
        if session is None:
            session = MiningSession(address=addr)
            self._sessions[addr] = session
            logger.debug("Created session for %s", addr)
        return session

    def remove(self, address: str) -> Optional[MiningSession]:
        return self._sessions.pop(normalize_address(address), None)

    def sessions(self) -> List[MiningSession]:
        """Snapshot of all sessions in insertion order."""
        return list(self._sessions.values())

    def active_sessions(self) -> List[MiningSession]:
        return [s for s in self._sessions.values() if s.active]

    def total_pending(self) -> int:
        return sum(len(s.pending_blocks) for s in self._sessions.values())

    # -------------------------------------------------------------------
    # Pending-block mutation
    # -------------------------------------------------------------------

    def append_block(self, address: str, block: PseudoBlock):
        self.get_or_create(address).pending_blocks.append(block)

    def record_attempt(self, address: str):
        self.get_or_create(address).hash_attempts += 1

    def remove_blocks(self, address: str, block_numbers: Iterable[int]) -> int:
        """Drop the given block numbers from the pending list.

        Shared by scheduled settlement and client acknowledgement. Unknown
        numbers are ignored. Returns the number of blocks still pending.
        """
        session = self.get(address)
        if session is None:
            return 0
        targets = set(int(n) for n in block_numbers)
        before = len(session.pending_blocks)
        session.pending_blocks = [
            b for b in session.pending_blocks if b.block_number not in targets
        ]
        removed = before - len(session.pending_blocks)
        if removed:
            logger.debug("Removed %d pending blocks for %s", removed, session.address)
        return len(session.pending_blocks)
