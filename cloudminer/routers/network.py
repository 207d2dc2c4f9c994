"""Network router: aggregate figures shown on the dashboard."""

from fastapi import APIRouter, Query
from starlette.requests import Request

from cloudminer.deps import get_server

router = APIRouter()


@router.get("/api/networkHashRate")
async def network_hash_rate(request: Request):
    srv = get_server(request)
    return {"networkHashRate": srv.control.network_hash_rate()}


@router.get("/api/averageBlockTime")
async def average_block_time(request: Request):
    srv = get_server(request)
    return {"average": srv.control.average_block_interval()}


@router.get("/api/settlements")
async def list_settlements(
    request: Request,
    limit: int = Query(default=50, ge=1, le=200),
):
    srv = get_server(request)
    return srv.settlement.list_settlements(limit=limit)
