"""Shared fixtures for the cloudminer unit tests."""

import random

import pytest

from cloudminer.chain_simulator import ChainSimulator
from cloudminer.control import SessionControl
from cloudminer.discovery import DiscoveryScheduler
from cloudminer.plans import Plan
from cloudminer.settlement import SettlementScheduler
from cloudminer.state import BlockCounter, BlockTimeTracker, MinerStateStore

INITIAL_CHAIN_BLOCKS = 260


def always(plan: int) -> float:
    """Discovery probability that always finds a block."""
    return 1.0


# ── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def user_a():
    """A mixed-case user address."""
    return "0xAbCdEf0123456789AbCdEf0123456789AbCdEf01"


@pytest.fixture
def user_b():
    return "0x24691E54aFafe2416a8252097C9Ca67557271475"


@pytest.fixture
def chain():
    return ChainSimulator(initial_block_count=INITIAL_CHAIN_BLOCKS)


@pytest.fixture
def store():
    return MinerStateStore()


@pytest.fixture
def counter():
    return BlockCounter(INITIAL_CHAIN_BLOCKS)


@pytest.fixture
def block_times():
    return BlockTimeTracker()


@pytest.fixture
def control(store, chain, block_times):
    return SessionControl(store, chain, block_times)


@pytest.fixture
def discovery(store, chain, counter, block_times):
    """Discovery scheduler that finds a block on every trial."""
    return DiscoveryScheduler(
        store, chain, counter, block_times,
        rng=random.Random(42), probability=always,
    )


@pytest.fixture
def settlement(store, chain, counter):
    return SettlementScheduler(store, chain, counter)


@pytest.fixture
def subscribed(chain, user_a, user_b):
    """Both users subscribed on-chain (A: Standard, B: Premium)."""
    chain.subscribe(user_a, Plan.STANDARD, days=30)
    chain.subscribe(user_b, Plan.PREMIUM, days=30)
    return chain
