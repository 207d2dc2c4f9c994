"""Router package: collects all API routers and registers them on the FastAPI app."""

from fastapi import FastAPI

from cloudminer.routers import mining, network, overview


def register_all_routers(app: FastAPI):
    app.include_router(overview.router)
    app.include_router(mining.router)
    app.include_router(network.router)
