"""
chain.py - Chain gateway.

Thin async wrapper around the ShareCoin contract calls the simulator needs:
 - subscriptionActiveFor(address)      -> bool
 - userPlan(address)                   -> uint8 plan tier
 - getBlockHistoryLength()             -> confirmed block count
 - blockAlreadyUsed(address, uint256)  -> bool
 - serverSubmitMultipleMinedBlocksAndMintOnBehalf(user, blocks[], nonces[])

Writes are signed locally with the service key and sent as raw transactions.
Every failure (transport, timeout, revert, bad response) is raised as
ChainError so callers only handle one exception type.
"""

import abc
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3

logger = logging.getLogger("chain")

DEFAULT_TIMEOUT = 30.0
RECEIPT_TIMEOUT = 120.0


class ChainError(Exception):
    """A chain read or write failed or timed out."""


def _fn(name: str, inputs: List[tuple], outputs: List[str], mutability: str = "view") -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


SHARECOIN_ABI = [
    _fn("subscriptionActiveFor", [("user", "address")], ["bool"]),
    _fn("userPlan", [("user", "address")], ["uint8"]),
    _fn("getBlockHistoryLength", [], ["uint256"]),
    _fn("blockAlreadyUsed", [("user", "address"), ("blockNumber", "uint256")], ["bool"]),
    _fn(
        "serverSubmitMultipleMinedBlocksAndMintOnBehalf",
        [("user", "address"), ("blockNumbers", "uint256[]"), ("nonces", "uint256[]")],
        [],
        mutability="nonpayable",
    ),
]


class ChainGateway(abc.ABC):
    """Operations the mining backend performs against the ledger."""

    async def connect(self):
        """Verify the ledger is reachable. Raises ChainError if not."""

    async def close(self):
        """Release any transport resources."""

    @abc.abstractmethod
    async def is_subscription_active(self, address: str) -> bool:
        ...

    @abc.abstractmethod
    async def get_plan(self, address: str) -> int:
        ...

    @abc.abstractmethod
    async def get_confirmed_block_count(self) -> int:
        ...

    @abc.abstractmethod
    async def is_block_consumed(self, address: str, block_number: int) -> bool:
        ...

    @abc.abstractmethod
    async def submit_batch(
        self, address: str, block_numbers: Sequence[int], nonces: Sequence[int],
    ) -> Dict[str, Any]:
        """Mint `block_numbers` for `address` in one transaction signed by the
        service key. Returns a receipt dict (tx_hash, block_number, status)."""


class Web3ChainGateway(ChainGateway):
    """ChainGateway backed by a JSON-RPC node through web3.py."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        receipt_timeout: float = RECEIPT_TIMEOUT,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        # Retries happen on the next scheduler tick, not inside the provider
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, exception_retry_configuration=None))
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=SHARECOIN_ABI,
        )
        self._account = Account.from_key(private_key) if private_key else None

    @property
    def service_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    @staticmethod
    def _checksum(address: str) -> str:
        try:
            return AsyncWeb3.to_checksum_address(address)
        except (TypeError, ValueError) as exc:
            raise ChainError(f"Invalid address {address!r}") from exc

    async def _call(self, label: str, awaitable, timeout: Optional[float] = None):
        try:
            return await asyncio.wait_for(awaitable, timeout or self.timeout)
        except ChainError:
            raise
        except asyncio.TimeoutError as exc:
            raise ChainError(f"{label} timed out") from exc
        except Exception as exc:
            raise ChainError(f"{label} failed: {exc}") from exc

    async def connect(self):
        connected = await self._call("is_connected", self.w3.is_connected())
        if not connected:
            raise ChainError(f"Cannot reach RPC endpoint {self.rpc_url}")
        chain_id = await self._call("chain_id", self.w3.eth.chain_id)
        logger.info(
            "Connected to %s (chain_id=%s, contract=%s, signer=%s)",
            self.rpc_url, chain_id, self.contract.address, self.service_address or "none",
        )

    async def close(self):
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def is_subscription_active(self, address: str) -> bool:
        user = self._checksum(address)
        result = await self._call(
            "subscriptionActiveFor",
            self.contract.functions.subscriptionActiveFor(user).call(),
        )
        return bool(result)

    async def get_plan(self, address: str) -> int:
        user = self._checksum(address)
        result = await self._call("userPlan", self.contract.functions.userPlan(user).call())
        return int(result)

    async def get_confirmed_block_count(self) -> int:
        result = await self._call(
            "getBlockHistoryLength",
            self.contract.functions.getBlockHistoryLength().call(),
        )
        return int(result)

    async def is_block_consumed(self, address: str, block_number: int) -> bool:
        user = self._checksum(address)
        result = await self._call(
            "blockAlreadyUsed",
            self.contract.functions.blockAlreadyUsed(user, int(block_number)).call(),
        )
        return bool(result)

    async def submit_batch(
        self, address: str, block_numbers: Sequence[int], nonces: Sequence[int],
    ) -> Dict[str, Any]:
        if self._account is None:
            raise ChainError("No service key configured for batch submission")
        if len(block_numbers) != len(nonces):
            raise ChainError("block_numbers and nonces length mismatch")
        user = self._checksum(address)
        fn = self.contract.functions.serverSubmitMultipleMinedBlocksAndMintOnBehalf(
            user, [int(n) for n in block_numbers], [int(n) for n in nonces],
        )
        sender = self._account.address
        tx_nonce = await self._call(
            "get_transaction_count", self.w3.eth.get_transaction_count(sender, "pending"),
        )
        tx = await self._call(
            "build_transaction", fn.build_transaction({"from": sender, "nonce": tx_nonce}),
        )
        try:
            signed = self._account.sign_transaction(tx)
        except Exception as exc:
            raise ChainError(f"Signing batch for {user} failed: {exc}") from exc
        tx_hash = await self._call(
            "send_raw_transaction", self.w3.eth.send_raw_transaction(signed.raw_transaction),
        )
        receipt = await self._call(
            "wait_for_transaction_receipt",
            self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout),
            timeout=self.receipt_timeout + self.timeout,
        )
        try:
            tx_hex = AsyncWeb3.to_hex(tx_hash)
            status = int(receipt["status"])
            mined_in = int(receipt["blockNumber"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainError(f"Malformed receipt for batch mint: {exc!r}") from exc
        if status != 1:
            raise ChainError(f"Transaction {tx_hex} reverted")
        logger.info(
            "Batch mint for %s confirmed: %d blocks tx=%s", user, len(block_numbers), tx_hex,
        )
        return {
            "tx_hash": tx_hex,
            "block_number": mined_in,
            "status": status,
        }
