"""
Shared fixtures for cloudminer integration tests.

Provides a MiningServer wired to the in-memory chain simulator, a FastAPI
TestClient for its app, and the test accounts used across modules.
"""

import random

import pytest
import pytest_asyncio

from cloudminer.chain_simulator import ChainSimulator
from cloudminer.config import Settings
from cloudminer.server import MiningServer

INITIAL_CHAIN_BLOCKS = 260

USER_A = "0xAbCdEf0123456789AbCdEf0123456789AbCdEf01"
USER_B = "0x24691E54aFafe2416a8252097C9Ca67557271475"


@pytest.fixture
def chain():
    return ChainSimulator(initial_block_count=INITIAL_CHAIN_BLOCKS)


@pytest.fixture
def server(chain):
    srv = MiningServer(Settings(simulate_chain=True), chain=chain)
    srv.counter.reset(INITIAL_CHAIN_BLOCKS)
    return srv


@pytest.fixture
def lucky_server(server):
    """Server whose discovery finds a block on every trial."""
    server.discovery._probability = lambda plan: 1.0
    server.discovery._rng = random.Random(1)
    return server


@pytest.fixture
def client(server):
    from fastapi.testclient import TestClient
    return TestClient(server.app)


@pytest.fixture
def user_a():
    return USER_A


@pytest.fixture
def user_b():
    return USER_B


@pytest_asyncio.fixture
async def ready_server(server):
    """Server after the startup chain sync, stopped on teardown."""
    server.counter.reset(0)
    await server.init_chain()
    yield server
    await server.stop()
