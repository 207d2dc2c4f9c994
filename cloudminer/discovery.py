"""
discovery.py - Probabilistic block discovery.

Every tick walks all sessions in store order. Active sessions get their
subscription re-checked on-chain, then a Bernoulli trial scaled by plan tier
decides whether a new pseudo-block is appended. One pass finishes before the
next starts, so ticks for the same address never overlap.
"""

import asyncio
import logging
import random
import secrets
import time
from typing import TYPE_CHECKING, Callable, List, Optional

from cloudminer.chain import ChainError
from cloudminer.plans import find_probability
from cloudminer.state import PseudoBlock

if TYPE_CHECKING:
    from cloudminer.chain import ChainGateway
    from cloudminer.state import BlockCounter, BlockTimeTracker, MinerStateStore

logger = logging.getLogger("discovery")

DEFAULT_INTERVAL = 10.0
MAX_NONCE = 10**9


class DiscoveryScheduler:
    """Periodic discovery pass over all mining sessions."""

    def __init__(
        self,
        store: "MinerStateStore",
        chain: "ChainGateway",
        counter: "BlockCounter",
        block_times: "BlockTimeTracker",
        interval: float = DEFAULT_INTERVAL,
        rng: Optional[random.Random] = None,
        probability: Callable[[int], float] = find_probability,
    ):
        self._store = store
        self._chain = chain
        self._counter = counter
        self._block_times = block_times
        self.interval = interval
        self._rng = rng or random.Random()
        self._probability = probability
        self.ticks = 0

    def _make_block(self) -> PseudoBlock:
        return PseudoBlock(
            block_number=self._counter.next(),
            nonce=self._rng.randrange(MAX_NONCE),
            local_hash="0x" + secrets.token_hex(32),
            timestamp=time.time(),
        )

    async def tick(self) -> List[PseudoBlock]:
        """Run one discovery pass. Returns the blocks found."""
        found: List[PseudoBlock] = []
        for session in self._store.sessions():
            if not session.active:
                continue
            address = session.address

            try:
                subscribed = await self._chain.is_subscription_active(address)
            except ChainError as e:
                logger.warning("Subscription check failed for %s: %s", address, e)
                continue
            if not subscribed:
                session.active = False
                logger.info("%s lost subscription, stopping mining", address)
                continue
            # Stopped while the check was in flight
            if not session.active:
                continue

            if self._rng.random() < self._probability(session.plan):
                block = self._make_block()
                self._store.append_block(address, block)
                self._block_times.record(block.timestamp)
                found.append(block)
                logger.info("%s found block #%d", address, block.block_number)
            self._store.record_attempt(address)

        self.ticks += 1
        return found

    async def run(self):
        """Tick forever at the configured interval."""
        logger.info("Discovery loop started (interval=%.1fs)", self.interval)
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Error in discovery loop")
            await asyncio.sleep(self.interval)
