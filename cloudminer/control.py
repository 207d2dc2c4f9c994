"""
control.py - Session control service.

Start/stop mining for an address, report status, and accept client
acknowledgements for blocks the client minted itself. The plan a session mines
with always comes from the chain, never from the request.
"""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from web3 import AsyncWeb3

from cloudminer import plans
from cloudminer.state import normalize_address

if TYPE_CHECKING:
    from cloudminer.chain import ChainGateway
    from cloudminer.state import BlockTimeTracker, MinerStateStore

logger = logging.getLogger("control")


class ControlError(Exception):
    """A request the control service refuses. Carries the HTTP status."""

    status_code = 400


class MissingAddressError(ControlError):
    status_code = 400

    def __init__(self):
        super().__init__("Missing userAddress")


class InvalidAddressError(ControlError):
    status_code = 400

    def __init__(self, address):
        super().__init__(f"Invalid userAddress: {address}")


class NotSubscribedError(ControlError):
    status_code = 403

    def __init__(self):
        super().__init__("No active subscription on-chain.")


class InvalidPlanError(ControlError):
    status_code = 403

    def __init__(self, plan):
        super().__init__(f"Invalid plan tier on-chain: {plan}")
        self.plan = plan


class SessionNotFoundError(ControlError):
    status_code = 404

    def __init__(self):
        super().__init__("No miner state found")


class SessionControl:
    """Request-side operations on the miner state store."""

    def __init__(
        self,
        store: "MinerStateStore",
        chain: "ChainGateway",
        block_times: "BlockTimeTracker",
    ):
        self._store = store
        self._chain = chain
        self._block_times = block_times

    @staticmethod
    def _require_address(address: Optional[str]) -> str:
        addr = normalize_address(address)
        if not addr:
            raise MissingAddressError()
        # Lowercased, so no checksum is enforced
        if not AsyncWeb3.is_address(addr):
            raise InvalidAddressError(address.strip())
        return addr

    async def start(self, address: str, requested_plan: Optional[int] = None) -> int:
        """Activate mining after verifying the subscription on-chain.

        Returns the verified on-chain plan. Raises NotSubscribedError,
        InvalidPlanError, or ChainError when the chain cannot be reached.
        """
        addr = self._require_address(address)
        if not await self._chain.is_subscription_active(addr):
            raise NotSubscribedError()
        plan = await self._chain.get_plan(addr)
        if not plans.is_valid_plan(plan):
            raise InvalidPlanError(plan)
        if requested_plan is not None and requested_plan != plan:
            logger.info(
                "%s requested plan %s, using on-chain plan %d", addr, requested_plan, plan,
            )

        session = self._store.get_or_create(addr)
        session.plan = plan
        session.active = True
        logger.info("Mining started for %s (plan=%s)", addr, plans.plan_name(plan))
        return plan

    def stop(self, address: str):
        addr = self._require_address(address)
        session = self._store.get(addr)
        if session is not None and session.active:
            session.active = False
            logger.info("Mining stopped for %s", addr)

    def status(self, address: Optional[str]) -> dict:
        session = self._store.view(address)
        return {
            "active": session.active,
            "plan": session.plan,
            "hashAttempts": session.hash_attempts,
            "blocksFound": [b.to_dict() for b in session.pending_blocks],
            "hashRate": plans.hash_rate(session.plan),
        }

    def acknowledge_settled(self, address: str, block_numbers: Iterable[int]) -> int:
        """Forget blocks the client minted itself. Returns blocks still pending."""
        addr = self._require_address(address)
        if addr not in self._store:
            raise SessionNotFoundError()
        numbers: List[int] = list(block_numbers)
        remaining = self._store.remove_blocks(addr, numbers)
        logger.info("Removed minted blocks for %s. Remaining: %d", addr, remaining)
        return remaining

    def network_hash_rate(self) -> int:
        return sum(plans.hash_rate(s.plan) for s in self._store.active_sessions())

    def average_block_interval(self) -> str:
        return self._block_times.average()
