"""HTTP app: REST API mounted under /api."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from memograph.server.api import router
from memograph.state import closeState, initState


@asynccontextmanager
async def lifespan(app: FastAPI):
    await initState()
    yield
    closeState()


def createApp() -> FastAPI:
    app = FastAPI(title="Memograph", lifespan=lifespan)
    app.include_router(router, prefix="/api")
    return app
