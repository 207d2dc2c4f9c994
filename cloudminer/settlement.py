"""
settlement.py - Settlement engine.

Periodically mints each user's pending pseudo-blocks on-chain in one batch
signed by the service key. Before submitting, every pending block number is
checked with the contract; numbers already consumed (by an earlier settlement
or by the user minting from their own wallet) are dropped, never resubmitted.

Only the block numbers snapshotted at the start of a user's settlement are
removed afterwards, so a block discovered while the transaction was in flight
stays pending for the next run. A failed submission leaves the pending list
as it was.
"""

import asyncio
import logging
import time
from collections import deque
from typing import TYPE_CHECKING, Deque, List, Optional

from cloudminer.chain import ChainError

if TYPE_CHECKING:
    from cloudminer.chain import ChainGateway
    from cloudminer.state import BlockCounter, MinerStateStore

logger = logging.getLogger("settlement")

DEFAULT_INTERVAL = 900.0  # 15 minutes
MAX_SETTLEMENT_HISTORY = 200


class SettlementScheduler:
    """Batches pending blocks into on-chain mints."""

    def __init__(
        self,
        store: "MinerStateStore",
        chain: "ChainGateway",
        counter: "BlockCounter",
        interval: float = DEFAULT_INTERVAL,
    ):
        self._store = store
        self._chain = chain
        self._counter = counter
        self.interval = interval
        self._history: Deque[dict] = deque(maxlen=MAX_SETTLEMENT_HISTORY)

    async def settle_user(self, address: str) -> Optional[dict]:
        """Reconcile and mint one user's pending blocks.

        Returns the settlement record, or None when nothing was submitted.
        Raises ChainError if any chain call fails before the mint confirms.
        """
        session = self._store.get(address)
        if session is None or not session.pending_blocks:
            return None
        snapshot = list(session.pending_blocks)

        fresh = []
        stale = []
        for block in snapshot:
            if await self._chain.is_block_consumed(session.address, block.block_number):
                stale.append(block.block_number)
            else:
                fresh.append(block)
        if stale:
            logger.debug("Blocks %s already used for %s, skipping", stale, session.address)

        if not fresh:
            self._store.remove_blocks(session.address, stale)
            return None

        block_numbers = [b.block_number for b in fresh]
        nonces = [b.nonce for b in fresh]
        logger.info("Minting %d blocks for %s...", len(block_numbers), session.address)
        receipt = await self._chain.submit_batch(session.address, block_numbers, nonces)

        remaining = self._store.remove_blocks(
            session.address, [b.block_number for b in snapshot],
        )

        try:
            confirmed = await self._chain.get_confirmed_block_count()
            self._counter.sync(confirmed)
        except ChainError as e:
            logger.warning("Counter re-sync failed after mint for %s: %s", session.address, e)

        record = {
            "address": session.address,
            "block_numbers": block_numbers,
            "stale_dropped": len(stale),
            "tx_hash": receipt.get("tx_hash", ""),
            "remaining": remaining,
            "settled_at": time.time(),
        }
        self._history.append(record)
        logger.info(
            "Settled %d blocks for %s in tx %s (dropped=%d remaining=%d)",
            len(block_numbers), session.address, record["tx_hash"], len(stale), remaining,
        )
        return record

    async def tick(self) -> List[dict]:
        """Settle every user with pending blocks. One user's failure does not
        stop the others."""
        records = []
        for session in self._store.sessions():
            if not session.pending_blocks:
                continue
            try:
                record = await self.settle_user(session.address)
            except ChainError as e:
                logger.error("Error minting for %s: %s", session.address, e)
                continue
            if record:
                records.append(record)
        return records

    def list_settlements(self, limit: Optional[int] = None) -> List[dict]:
        """Most recent settlements first."""
        items = list(reversed(self._history))
        if limit is not None:
            items = items[:limit]
        return items

    async def run(self):
        """Settle on a fixed interval. The first run happens one interval
        after start."""
        logger.info("Settlement loop started (interval=%.0fs)", self.interval)
        while True:
            await asyncio.sleep(self.interval)
            logger.info("Checking blocks for automatic minting...")
            try:
                records = await self.tick()
                logger.info("Settlement pass done (%d users minted)", len(records))
            except Exception:
                logger.exception("Error in settlement loop")
