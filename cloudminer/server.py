"""
server.py - Mining server entry point.

Single-process server combining:
 - In-memory miner state (sessions, shared block counter, block-time history)
 - Discovery loop (probabilistic block finds, every few seconds)
 - Settlement loop (batched on-chain mints, every few minutes)
 - REST control API (FastAPI on uvicorn, port 3001)
 - Optional embedded ShareCoin chain simulator for offline runs

Usage:
    python -m cloudminer.server [--port 3001] [--rpc-url URL] [--contract ADDR]
    python -m cloudminer.server --simulate-chain --discovery-interval 2
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Ensure project root is on sys.path so imports work both ways
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from cloudminer import __version__
from cloudminer.chain import ChainError, ChainGateway, Web3ChainGateway
from cloudminer.chain_simulator import ChainSimulator
from cloudminer.config import Settings
from cloudminer.control import ControlError, SessionControl
from cloudminer.discovery import DiscoveryScheduler
from cloudminer.routers import register_all_routers
from cloudminer.settlement import SettlementScheduler
from cloudminer.state import BlockCounter, BlockTimeTracker, MinerStateStore

logger = logging.getLogger("server")


def configure_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s",
        datefmt="%H:%M:%S",
    )


def build_gateway(settings: Settings) -> ChainGateway:
    if settings.simulate_chain:
        return ChainSimulator()
    return Web3ChainGateway(
        rpc_url=settings.rpc_url,
        contract_address=settings.contract_address,
        private_key=settings.private_key,
        timeout=settings.chain_timeout,
    )


# ---------------------------------------------------------------------------
# Mining server
# ---------------------------------------------------------------------------

class MiningServer:
    """Owns the shared state, both schedulers and the FastAPI app."""

    def __init__(self, settings: Optional[Settings] = None, chain: Optional[ChainGateway] = None):
        self.settings = settings or Settings()
        self.chain = chain if chain is not None else build_gateway(self.settings)

        self.store = MinerStateStore()
        self.counter = BlockCounter()
        self.block_times = BlockTimeTracker()

        self.discovery = DiscoveryScheduler(
            self.store, self.chain, self.counter, self.block_times,
            interval=self.settings.discovery_interval,
        )
        self.settlement = SettlementScheduler(
            self.store, self.chain, self.counter,
            interval=self.settings.settlement_interval,
        )
        self.control = SessionControl(self.store, self.chain, self.block_times)

        self._tasks = []
        self._uvicorn_server: Optional[uvicorn.Server] = None

        # FastAPI app
        self.app = FastAPI(title="ShareCoin Mining Server", version=__version__)
        self.app.state.server = self
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self._register_error_handlers()
        register_all_routers(self.app)

        if isinstance(self.chain, ChainSimulator):
            self.chain.register_routes(self.app)
            logger.info("Chain simulator embedded on mining server")

    @property
    def simulated(self) -> bool:
        return isinstance(self.chain, ChainSimulator)

    def _register_error_handlers(self):
        @self.app.exception_handler(ControlError)
        async def control_error(request, exc: ControlError):
            return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

        @self.app.exception_handler(ChainError)
        async def chain_error(request, exc: ChainError):
            logger.error("Chain call failed during %s %s: %s", request.method, request.url.path, exc)
            return JSONResponse(status_code=503, content={"error": f"Chain unavailable: {exc}"})

    async def init_chain(self):
        """Connect and seed the block counter. Any ChainError aborts startup."""
        await self.chain.connect()
        count = await self.chain.get_confirmed_block_count()
        self.counter.reset(count)
        logger.info("Initialized next block number to %d", count)

    # -------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------

    async def start(self):
        """Sync with the chain, start both loops, and serve the API."""
        await self.init_chain()

        self._tasks = [
            asyncio.create_task(self.discovery.run()),
            asyncio.create_task(self.settlement.run()),
        ]

        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_level="info",
        )
        self._uvicorn_server = uvicorn.Server(config)
        logger.info("REST API starting on port %d", self.settings.port)
        try:
            await self._uvicorn_server.serve()
        finally:
            await self.stop()

    async def stop(self):
        """Cancel the loops and release the chain connection."""
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.chain.close()
        if self._uvicorn_server is not None:
            self._uvicorn_server.should_exit = True


def parse_args(argv=None, settings: Optional[Settings] = None) -> Settings:
    """Apply CLI flags on top of environment settings."""
    settings = settings or Settings.from_env()
    parser = argparse.ArgumentParser(description="ShareCoin Mining Server")
    parser.add_argument("--port", type=int, default=settings.port, help=f"REST API port (default: {settings.port})")
    parser.add_argument("--host", default=settings.host, help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--rpc-url", default=settings.rpc_url, help="JSON-RPC endpoint (env PULSECHAIN_RPC)")
    parser.add_argument("--contract", default=settings.contract_address, help="ShareCoin contract address (env CONTRACT_ADDRESS)")
    parser.add_argument("--discovery-interval", type=float, default=settings.discovery_interval, help="Seconds between discovery ticks")
    parser.add_argument("--settlement-interval", type=float, default=settings.settlement_interval, help="Seconds between settlement runs")
    parser.add_argument("--chain-timeout", type=float, default=settings.chain_timeout, help="Per-call chain timeout in seconds")
    parser.add_argument("--simulate-chain", action="store_true", help="Use the in-memory chain simulator instead of an RPC node")
    args = parser.parse_args(argv)

    settings.port = args.port
    settings.host = args.host
    settings.rpc_url = args.rpc_url
    settings.contract_address = args.contract
    settings.discovery_interval = args.discovery_interval
    settings.settlement_interval = args.settlement_interval
    settings.chain_timeout = args.chain_timeout
    settings.simulate_chain = args.simulate_chain
    return settings


def main(argv=None):
    """CLI entry point for the mining server."""
    configure_logging()
    try:
        settings = parse_args(argv)
        settings.validate()
        server = MiningServer(settings)
    except ValueError as e:  # ConfigError or a malformed key/address
        logger.error("Configuration error: %s", e)
        sys.exit(2)

    logger.info("=" * 60)
    logger.info("  ShareCoin Mining Server")
    logger.info("  REST API:    http://localhost:%d", settings.port)
    logger.info("  Chain:       %s", "simulated" if settings.simulate_chain else settings.rpc_url)
    logger.info("  Discovery:   every %.1fs", settings.discovery_interval)
    logger.info("  Settlement:  every %.0fs", settings.settlement_interval)
    logger.info("=" * 60)

    try:
        asyncio.run(server.start())
    except ChainError as e:
        logger.error("Failed to initialize chain connection: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
