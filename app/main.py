from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.factory import build_default_store
from logging_config import configure_logging
from services.ingestion import build_default_ingestor
from services.registry import build_default_registry
from services.resolver import build_default_resolver


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # Load the registry before serving so a bad sensors file fails startup.
    build_default_registry()
    store = build_default_store()
    try:
        yield
    finally:
        store.close()
        build_default_resolver.cache_clear()
        build_default_ingestor.cache_clear()
        build_default_store.cache_clear()
        build_default_registry.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Temperature Telemetry",
        description="Current and historical temperature readings for a fleet of sensors.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
