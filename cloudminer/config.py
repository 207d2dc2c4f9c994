"""
config.py - Runtime settings.

Read from the environment (a local .env file is loaded first), then
overridable from the command line in server.main().
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_PORT = 3001


class ConfigError(ValueError):
    """Settings are missing or malformed."""


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    private_key: Optional[str] = None
    contract_address: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    discovery_interval: float = 10.0
    settlement_interval: float = 900.0
    chain_timeout: float = 30.0
    simulate_chain: bool = False

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            rpc_url=os.getenv("PULSECHAIN_RPC") or DEFAULT_RPC_URL,
            private_key=os.getenv("PULSECHAIN_PRIVATE_KEY") or None,
            contract_address=os.getenv("CONTRACT_ADDRESS") or None,
            port=_env_int("PORT", DEFAULT_PORT),
            discovery_interval=_env_float("DISCOVERY_INTERVAL", 10.0),
            settlement_interval=_env_float("SETTLEMENT_INTERVAL", 900.0),
            chain_timeout=_env_float("CHAIN_TIMEOUT", 30.0),
        )

    def validate(self):
        """Check the settings needed to talk to a real chain."""
        for name in ("discovery_interval", "settlement_interval", "chain_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.simulate_chain:
            return
        if not self.contract_address:
            raise ConfigError("CONTRACT_ADDRESS is required unless --simulate-chain is set")
        if not self.private_key:
            raise ConfigError("PULSECHAIN_PRIVATE_KEY is required unless --simulate-chain is set")
