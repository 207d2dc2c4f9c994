"""Overview router: service banner and status summary."""

from fastapi import APIRouter
from starlette.requests import Request

from cloudminer import __version__
from cloudminer.deps import get_server

router = APIRouter()


@router.get("/")
async def root(request: Request):
    srv = get_server(request)
    return {
        "service": "ShareCoin Mining Server",
        "version": __version__,
        "chain": "simulated" if srv.simulated else srv.settings.rpc_url,
        "uptime": "running",
    }


@router.get("/api/status")
async def server_status(request: Request):
    srv = get_server(request)
    sessions = srv.store.sessions()
    return {
        "sessions": len(sessions),
        "active_sessions": sum(1 for s in sessions if s.active),
        "pending_blocks": srv.store.total_pending(),
        "next_block_number": srv.counter.value,
        "discovery_ticks": srv.discovery.ticks,
        "network_hash_rate": srv.control.network_hash_rate(),
        "settlements": len(srv.settlement.list_settlements()),
    }
