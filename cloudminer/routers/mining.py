"""Mining router: per-user session endpoints under /api."""

from typing import Optional

from fastapi import APIRouter, Query
from starlette.requests import Request

from cloudminer.deps import get_server
from cloudminer.models import ClearBlocksRequest, StartMiningRequest, StopMiningRequest

router = APIRouter()


@router.post("/api/startMining")
async def start_mining(req: StartMiningRequest, request: Request):
    srv = get_server(request)
    plan = await srv.control.start(req.user_address, req.plan)
    return {"success": True, "verifiedPlan": plan}


@router.post("/api/stopMining")
async def stop_mining(req: StopMiningRequest, request: Request):
    srv = get_server(request)
    srv.control.stop(req.user_address)
    return {"success": True}


@router.get("/api/minerStats")
async def miner_stats(
    request: Request,
    user_address: Optional[str] = Query(default="", alias="userAddress", max_length=128),
):
    srv = get_server(request)
    return srv.control.status(user_address)


@router.post("/api/clearMinedBlocks")
async def clear_mined_blocks(req: ClearBlocksRequest, request: Request):
    srv = get_server(request)
    remaining = srv.control.acknowledge_settled(req.user_address, req.block_numbers)
    return {"success": True, "remainingBlocks": remaining}
