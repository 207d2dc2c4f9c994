#!/usr/bin/env python3
"""
mock_users.py - Simulated dapp users against a running mining server.

Targets a server started with --simulate-chain. Each user subscribes on the
simulated chain, starts mining, polls its stats, and now and then mints its
pending blocks from its own "wallet" (POST /chain/mint) before acknowledging
them with /api/clearMinedBlocks. Blocks left alone are picked up by the
server's settlement loop.

Usage:
    python scripts/mock_users.py --users 5 --server http://localhost:3001 --poll 5
"""

import argparse
import logging
import random
import signal
import time
import uuid
from dataclasses import dataclass
from typing import List

import requests

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("users")

REQUEST_TIMEOUT = 10


@dataclass
class SimUser:
    address: str
    plan: int
    self_mint_ratio: float
    self_minted: int = 0


def make_eth_address() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8]


class UserSimulator:
    def __init__(self, n_users: int, server: str, poll_interval: float):
        self.server = server.rstrip("/")
        self.poll_interval = poll_interval
        self.session = requests.Session()
        self.users: List[SimUser] = [
            SimUser(
                address=make_eth_address(),
                plan=random.choice([1, 2, 3]),
                self_mint_ratio=random.uniform(0.0, 0.5),
            )
            for _ in range(n_users)
        ]
        self._stop = False

    def _post(self, path: str, body: dict) -> dict:
        resp = self.session.post(self.server + path, json=body, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json()

    def _get(self, path: str, **params) -> dict:
        resp = self.session.get(self.server + path, params=params, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json()

    def setup(self):
        for u in self.users:
            self._post("/chain/subscribe", {"address": u.address, "plan": u.plan, "days": 30})
            # Ask for a higher tier than paid for; the server uses the chain's
            result = self._post("/api/startMining", {"userAddress": u.address, "plan": 3})
            logger.info("%s started (paid plan=%d verified=%d)", u.address[:12], u.plan, result["verifiedPlan"])

    def poll_user(self, u: SimUser):
        stats = self._get("/api/minerStats", userAddress=u.address)
        blocks = stats["blocksFound"]
        if blocks and random.random() < u.self_mint_ratio:
            numbers = [b["blockNumber"] for b in blocks]
            nonces = [b["nonce"] for b in blocks]
            try:
                self._post("/chain/mint", {"address": u.address, "blockNumbers": numbers, "nonces": nonces})
            except requests.HTTPError as e:
                # Settlement may have minted some of them first
                logger.warning("%s self-mint rejected: %s", u.address[:12], e)
                return
            result = self._post("/api/clearMinedBlocks", {"userAddress": u.address, "blockNumbers": numbers})
            u.self_minted += len(numbers)
            logger.info("%s self-minted %d blocks (remaining=%d)", u.address[:12], len(numbers), result["remainingBlocks"])
        else:
            logger.info(
                "%s attempts=%d pending=%d hashrate=%d",
                u.address[:12], stats["hashAttempts"], len(blocks), stats["hashRate"],
            )

    def run(self):
        self.setup()
        while not self._stop:
            for u in self.users:
                try:
                    self.poll_user(u)
                except requests.RequestException as e:
                    logger.error("%s poll failed: %s", u.address[:12], e)
            network = self._get("/api/networkHashRate")
            avg = self._get("/api/averageBlockTime")
            logger.info("network hashrate=%s avg block time=%s", network["networkHashRate"], avg["average"])
            time.sleep(self.poll_interval)

    def stop(self, *_):
        self._stop = True
        for u in self.users:
            try:
                self._post("/api/stopMining", {"userAddress": u.address})
            except requests.RequestException:
                logger.warning("Could not stop %s", u.address[:12])


def main():
    parser = argparse.ArgumentParser(description="Simulated cloud mining users")
    parser.add_argument("--users", type=int, default=3, help="Number of users (default: 3)")
    parser.add_argument("--server", default="http://localhost:3001", help="Mining server base URL")
    parser.add_argument("--poll", type=float, default=5.0, help="Seconds between polls (default: 5)")
    args = parser.parse_args()

    sim = UserSimulator(args.users, args.server, args.poll)
    signal.signal(signal.SIGINT, sim.stop)
    signal.signal(signal.SIGTERM, sim.stop)
    sim.run()


if __name__ == "__main__":
    main()
