"""
test_chain_simulator.py - Unit tests for the in-memory ShareCoin simulator.

Covers subscriptions, consumed-block tracking, batch mint validation and
failure injection.
"""

import pytest

from cloudminer.chain import ChainError
from cloudminer.chain_simulator import ChainSimulator
from cloudminer.plans import Plan

pytestmark = pytest.mark.asyncio


class TestSubscriptions:

    async def test_unknown_address_not_subscribed(self, chain, user_a):
        assert await chain.is_subscription_active(user_a) is False
        assert await chain.get_plan(user_a) == 0

    async def test_subscribe_is_case_insensitive(self, chain, user_a):
        chain.subscribe(user_a, Plan.PREMIUM, days=1)
        assert await chain.is_subscription_active(user_a.lower()) is True
        assert await chain.get_plan(user_a.lower()) == Plan.PREMIUM

    async def test_expired(self, chain, user_a):
        chain.subscribe(user_a, Plan.BASIC, days=-0.5)
        assert await chain.is_subscription_active(user_a) is False
        # Plan stays readable after expiry
        assert await chain.get_plan(user_a) == Plan.BASIC

    async def test_lifetime_never_expires(self, chain, user_a):
        chain.subscribe(user_a, Plan.LIFETIME, days=-10)
        assert await chain.is_subscription_active(user_a) is True

    async def test_invalid_plan_rejected(self, chain, user_a):
        with pytest.raises(ValueError):
            chain.subscribe(user_a, 0)

    async def test_unsubscribe(self, chain, user_a):
        chain.subscribe(user_a, Plan.BASIC)
        chain.unsubscribe(user_a)
        assert chain.get_subscription(user_a)["active"] is False


class TestMinting:

    async def test_batch_mint_records_history(self, subscribed, user_a):
        chain = subscribed
        receipt = await chain.submit_batch(user_a, [260, 261], [5, 6])
        assert receipt["status"] == 1
        assert receipt["tx_hash"].startswith("0x")
        assert await chain.get_confirmed_block_count() == 262
        assert await chain.is_block_consumed(user_a, 261) is True
        blocks = chain.get_blocks(account=user_a)
        assert [b["block_number"] for b in blocks] == [261, 260]
        assert all(b["via_server"] for b in blocks)

    async def test_consumed_is_per_user(self, subscribed, user_a, user_b):
        await subscribed.submit_batch(user_a, [300], [1])
        assert await subscribed.is_block_consumed(user_a, 300) is True
        assert await subscribed.is_block_consumed(user_b, 300) is False

    async def test_duplicate_rejected(self, subscribed, user_a):
        subscribed.mint_directly(user_a, [300], [1])
        with pytest.raises(ChainError, match="already used"):
            await subscribed.submit_batch(user_a, [299, 300], [1, 2])
        # Whole batch reverted
        assert await subscribed.is_block_consumed(user_a, 299) is False

    async def test_duplicate_within_batch(self, subscribed, user_a):
        with pytest.raises(ChainError, match="duplicate"):
            await subscribed.submit_batch(user_a, [5, 5], [1, 2])

    async def test_validation(self, subscribed, user_a):
        with pytest.raises(ChainError, match="empty"):
            await subscribed.submit_batch(user_a, [], [])
        with pytest.raises(ChainError, match="length"):
            await subscribed.submit_batch(user_a, [1, 2], [1])

    async def test_bad_nonce_writes_nothing(self, subscribed, user_a):
        with pytest.raises(ValueError):
            subscribed.mint_directly(user_a, [1, 2], [5, "x"])
        assert subscribed.get_blocks(account=user_a) == []
        assert await subscribed.is_block_consumed(user_a, 1) is False
        assert subscribed.get_stats()["transactions"] == 0

    async def test_requires_subscription(self, chain, user_a):
        with pytest.raises(ChainError, match="subscription"):
            await chain.submit_batch(user_a, [1], [1])

    async def test_client_mint_marked(self, subscribed, user_a):
        subscribed.mint_directly(user_a, [400], [9])
        stats = subscribed.get_stats()
        assert stats["client_mints"] == 1
        assert stats["server_mints"] == 0
        assert subscribed.get_balance(user_a) == pytest.approx(10.0)


class TestFailureInjection:

    async def test_offline(self, chain, user_a):
        chain.offline = True
        with pytest.raises(ChainError):
            await chain.get_confirmed_block_count()
        with pytest.raises(ChainError):
            await chain.is_subscription_active(user_a)

    async def test_failing_address(self, chain, user_a, user_b):
        chain.failing_addresses.add(user_a.lower())
        with pytest.raises(ChainError):
            await chain.get_plan(user_a)
        assert await chain.get_plan(user_b) == 0

    async def test_initial_count(self):
        assert await ChainSimulator(initial_block_count=42).get_confirmed_block_count() == 42
