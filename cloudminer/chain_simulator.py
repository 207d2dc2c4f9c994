"""
chain_simulator.py - In-memory ShareCoin contract simulator.

Stands in for the on-chain contract for fully offline runs and tests:
 - subscriptions with a plan tier and optional expiry
 - block history (getBlockHistoryLength) and balances
 - per-user consumed block numbers (blockAlreadyUsed)
 - server batch mint on behalf of a user, rejecting duplicates like a revert
 - direct client self-mint (the path a wallet takes without the server)

Implements ChainGateway so the mining server can run against it unchanged.
Extra HTTP endpoints (registered on the server's app):
 - GET  /chain/stats
 - GET  /chain/blocks?account=&limit=
 - GET  /chain/subscription/{address}
 - POST /chain/subscribe      {address, plan, days}
 - POST /chain/unsubscribe    {address}
 - POST /chain/mint           {address, blockNumbers, nonces}

Usage (integrated into the mining server):
    python -m cloudminer.server --simulate-chain
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from cloudminer.chain import ChainError, ChainGateway
from cloudminer.plans import Plan, is_valid_plan

logger = logging.getLogger("chain")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BLOCK_REWARD = 10.0
SECONDS_PER_DAY = 86400
MAX_BATCH_SIZE = 500

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class ChainBlock:
    index: int
    block_number: int
    miner: str
    nonce: int
    block_hash: str
    reward: float
    via_server: bool
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "block_number": self.block_number,
            "miner": self.miner,
            "nonce": self.nonce,
            "block_hash": self.block_hash,
            "reward": self.reward,
            "via_server": self.via_server,
            "timestamp": self.timestamp,
        }


@dataclass
class Subscription:
    plan: int
    expires_at: Optional[float] = None  # None = never (lifetime)

    def is_active(self, now: float) -> bool:
        if self.plan <= 0:
            return False
        return self.expires_at is None or now < self.expires_at


# ---------------------------------------------------------------------------
# Chain Simulator
# ---------------------------------------------------------------------------


class ChainSimulator(ChainGateway):
    """Mock ShareCoin contract held in memory."""

    def __init__(self, initial_block_count: int = 0, block_reward: float = BLOCK_REWARD):
        self._block_reward = block_reward
        self._subscriptions: Dict[str, Subscription] = {}
        self._history: List[ChainBlock] = []
        self._used: Set[Tuple[str, int]] = set()
        self._balances: Dict[str, float] = {}
        self._tx_count = 0
        # Block numbers minted before this simulator started
        self._base_count = int(initial_block_count)

        # Failure injection for tests
        self.offline = False
        self.failing_addresses: Set[str] = set()

        logger.info("Chain simulator initialized (confirmed blocks=%d)", self._base_count)

    # -------------------------------------------------------------------
    # Admin helpers (not part of the gateway)
    # -------------------------------------------------------------------

    def subscribe(self, address: str, plan: int, days: Optional[float] = None) -> Subscription:
        if not is_valid_plan(plan):
            raise ValueError(f"Invalid plan {plan}")
        expires_at = None
        if days is not None and int(plan) != Plan.LIFETIME:
            expires_at = time.time() + float(days) * SECONDS_PER_DAY
        sub = Subscription(plan=int(plan), expires_at=expires_at)
        self._subscriptions[address.lower()] = sub
        logger.info("Subscription set: %s plan=%d expires=%s", address.lower(), sub.plan, expires_at)
        return sub

    def set_plan(self, address: str, plan: int):
        """Write a raw plan value, including out-of-range ones."""
        sub = self._subscriptions.setdefault(address.lower(), Subscription(plan=0))
        sub.plan = int(plan)

    def unsubscribe(self, address: str):
        self._subscriptions.pop(address.lower(), None)
        logger.info("Subscription removed: %s", address.lower())

    def get_balance(self, address: str) -> float:
        return self._balances.get(address.lower(), 0.0)

    def get_blocks(self, account: Optional[str] = None, limit: int = 100) -> List[dict]:
        blocks = self._history
        if account:
            addr_lower = account.lower()
            blocks = [b for b in blocks if b.miner == addr_lower]
        return [b.to_dict() for b in reversed(blocks)][:limit]

    def get_subscription(self, address: str) -> dict:
        sub = self._subscriptions.get(address.lower())
        return {
            "address": address.lower(),
            "active": bool(sub and sub.is_active(time.time())),
            "plan": sub.plan if sub else 0,
            "expires_at": sub.expires_at if sub else None,
        }

    def get_stats(self) -> dict:
        now = time.time()
        return {
            "confirmed_blocks": self._base_count + len(self._history),
            "minted_here": len(self._history),
            "server_mints": sum(1 for b in self._history if b.via_server),
            "client_mints": sum(1 for b in self._history if not b.via_server),
            "active_subscriptions": sum(1 for s in self._subscriptions.values() if s.is_active(now)),
            "transactions": self._tx_count,
        }

    def mint_directly(
        self, address: str, block_numbers: Sequence[int], nonces: Sequence[int],
    ) -> Dict[str, Any]:
        """Client self-mint: the user submits with their own wallet."""
        return self._mint(address, block_numbers, nonces, via_server=False)

    # -------------------------------------------------------------------
    # ChainGateway
    # -------------------------------------------------------------------

    def _check(self, address: str = ""):
        if self.offline:
            raise ChainError("Chain simulator offline")
        if address and address.lower() in self.failing_addresses:
            raise ChainError(f"Simulated RPC failure for {address.lower()}")

    async def is_subscription_active(self, address: str) -> bool:
        self._check(address)
        sub = self._subscriptions.get(address.lower())
        return bool(sub and sub.is_active(time.time()))

    async def get_plan(self, address: str) -> int:
        self._check(address)
        sub = self._subscriptions.get(address.lower())
        return sub.plan if sub else 0

    async def get_confirmed_block_count(self) -> int:
        self._check()
        return self._base_count + len(self._history)

    async def is_block_consumed(self, address: str, block_number: int) -> bool:
        self._check(address)
        return (address.lower(), int(block_number)) in self._used

    async def submit_batch(
        self, address: str, block_numbers: Sequence[int], nonces: Sequence[int],
    ) -> Dict[str, Any]:
        self._check(address)
        return self._mint(address, block_numbers, nonces, via_server=True)

    # -------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------

    def _mint(
        self, address: str, block_numbers: Sequence[int], nonces: Sequence[int], via_server: bool,
    ) -> Dict[str, Any]:
        addr_lower = address.lower()
        numbers = [int(n) for n in block_numbers]
        nonce_values = [int(n) for n in nonces]
        if not numbers:
            raise ChainError("revert: empty batch")
        if len(numbers) != len(nonce_values):
            raise ChainError("revert: length mismatch")
        if len(numbers) > MAX_BATCH_SIZE:
            raise ChainError(f"revert: batch larger than {MAX_BATCH_SIZE}")
        if len(set(numbers)) != len(numbers):
            raise ChainError("revert: duplicate block in batch")
        sub = self._subscriptions.get(addr_lower)
        if not (sub and sub.is_active(time.time())):
            raise ChainError("revert: no active subscription")
        for n in numbers:
            if (addr_lower, n) in self._used:
                raise ChainError(f"revert: block {n} already used")

        for n, nonce in zip(numbers, nonce_values):
            block = ChainBlock(
                index=self._base_count + len(self._history),
                block_number=n,
                miner=addr_lower,
                nonce=nonce,
                block_hash="0x" + secrets.token_hex(32),
                reward=self._block_reward,
                via_server=via_server,
            )
            self._history.append(block)
            self._used.add((addr_lower, n))
        self._balances[addr_lower] = self._balances.get(addr_lower, 0.0) + self._block_reward * len(numbers)
        self._tx_count += 1

        tx_hash = "0x" + secrets.token_hex(32)
        logger.info(
            "Minted %d blocks for %s (%s) tx=%s..%s",
            len(numbers), addr_lower, "server" if via_server else "client", tx_hash[:10], tx_hash[-4:],
        )
        return {"tx_hash": tx_hash, "block_number": self._tx_count, "status": 1}

    # -------------------------------------------------------------------
    # FastAPI route registration
    # -------------------------------------------------------------------

    def register_routes(self, app):
        """Register simulator endpoints on an existing FastAPI app."""
        from fastapi.responses import JSONResponse

        @app.get("/chain/stats")
        async def chain_stats():
            return self.get_stats()

        @app.get("/chain/blocks")
        async def chain_blocks(account: Optional[str] = None, limit: int = 100):
            return self.get_blocks(account=account, limit=limit)

        @app.get("/chain/subscription/{address}")
        async def chain_subscription(address: str):
            result = self.get_subscription(address)
            result["balance"] = self.get_balance(address)
            return result

        @app.post("/chain/subscribe")
        async def chain_subscribe(payload: dict):
            address = payload.get("address", "")
            if not address:
                return JSONResponse(status_code=400, content={"error": "Missing address"})
            try:
                self.subscribe(address, payload.get("plan", Plan.BASIC), payload.get("days"))
            except (TypeError, ValueError) as e:
                return JSONResponse(status_code=400, content={"error": str(e)})
            return self.get_subscription(address)

        @app.post("/chain/unsubscribe")
        async def chain_unsubscribe(payload: dict):
            self.unsubscribe(payload.get("address", ""))
            return {"success": True}

        @app.post("/chain/mint")
        async def chain_mint(payload: dict):
            try:
                receipt = self.mint_directly(
                    payload.get("address", ""),
                    payload.get("blockNumbers", []),
                    payload.get("nonces", []),
                )
            except (ChainError, TypeError, ValueError) as e:
                return JSONResponse(status_code=400, content={"error": str(e)})
            return receipt

        logger.info("Chain simulator routes registered on FastAPI app")
