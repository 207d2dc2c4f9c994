"""
test_config.py - Unit tests for environment and CLI settings.
"""

import pytest

from cloudminer.chain import ChainError
from cloudminer.config import ConfigError, Settings
from cloudminer.server import MiningServer, main, parse_args

ENV_VARS = [
    "PULSECHAIN_RPC", "PULSECHAIN_PRIVATE_KEY", "CONTRACT_ADDRESS", "PORT",
    "DISCOVERY_INTERVAL", "SETTLEMENT_INTERVAL", "CHAIN_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    s = Settings.from_env(dotenv=False)
    assert s.rpc_url == "http://127.0.0.1:8545"
    assert s.port == 3001
    assert s.discovery_interval == 10.0
    assert s.settlement_interval == 900.0
    assert s.private_key is None


def test_reads_environment(clean_env):
    clean_env.setenv("PULSECHAIN_RPC", "https://rpc.example:8545")
    clean_env.setenv("CONTRACT_ADDRESS", "0x" + "22" * 20)
    clean_env.setenv("PORT", "4000")
    clean_env.setenv("SETTLEMENT_INTERVAL", "60")
    s = Settings.from_env(dotenv=False)
    assert s.rpc_url == "https://rpc.example:8545"
    assert s.contract_address == "0x" + "22" * 20
    assert s.port == 4000
    assert s.settlement_interval == 60.0


def test_bad_numbers_rejected(clean_env):
    clean_env.setenv("DISCOVERY_INTERVAL", "often")
    with pytest.raises(ConfigError):
        Settings.from_env(dotenv=False)
    clean_env.setenv("DISCOVERY_INTERVAL", "-1")
    with pytest.raises(ConfigError):
        Settings.from_env(dotenv=False)
    clean_env.setenv("DISCOVERY_INTERVAL", "5")
    clean_env.setenv("PORT", "http")
    with pytest.raises(ConfigError):
        Settings.from_env(dotenv=False)


def test_validate_real_chain_needs_contract_and_key():
    with pytest.raises(ConfigError, match="CONTRACT_ADDRESS"):
        Settings().validate()
    with pytest.raises(ConfigError, match="PRIVATE_KEY"):
        Settings(contract_address="0x" + "22" * 20).validate()
    Settings(contract_address="0x" + "22" * 20, private_key="0x01").validate()


def test_validate_simulated_chain():
    Settings(simulate_chain=True).validate()
    with pytest.raises(ConfigError):
        Settings(simulate_chain=True, discovery_interval=0).validate()


def test_cli_overrides_environment():
    base = Settings(port=3001, settlement_interval=900.0)
    s = parse_args(["--port", "5000", "--settlement-interval", "30", "--simulate-chain"], settings=base)
    assert s.port == 5000
    assert s.settlement_interval == 30.0
    assert s.simulate_chain is True
    assert s.discovery_interval == 10.0


def test_main_exits_on_bad_config(clean_env):
    clean_env.setenv("PORT", "not-a-port")
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 2


def test_main_exits_when_chain_unreachable(clean_env):
    async def unreachable(self):
        raise ChainError("Cannot reach RPC endpoint")

    clean_env.setattr(MiningServer, "init_chain", unreachable)
    with pytest.raises(SystemExit) as exc:
        main(["--simulate-chain"])
    assert exc.value.code == 1
