"""
ShareCoin Cloud Mining - Server Package

Backend for the cloud mining dapp: simulates probabilistic block discovery for
subscribed users and periodically mints the discovered blocks on-chain.
Includes the chain gateway, an in-memory chain simulator, and the REST API.
"""

__version__ = "0.1.0"

__all__ = [
    "chain",
    "chain_simulator",
    "config",
    "control",
    "discovery",
    "plans",
    "server",
    "settlement",
    "state",
]
