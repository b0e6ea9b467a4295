from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import build_default_clients, router
from logging_config import configure_logging


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    try:
        yield
    finally:
        if build_default_clients.cache_info().currsize:
            build_default_clients().close()
        build_default_clients.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Smart Energy Gateway",
        description="HTTP dashboard over the climate, solar and lighting telemetry services.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
