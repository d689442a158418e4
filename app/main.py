"""ASGI entry point of the telemetry receiver (``app.main:app``)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from app.api import get_store, router
from datastore.measurement_store import MeasurementStore, build_default_store
from logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _default_store_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    store = build_default_store()
    logger.info("Telemetry receiver started", extra={"record_count": store.count()})
    try:
        yield
    finally:
        logger.info("Telemetry receiver stopped", extra={"record_count": store.count()})
        build_default_store.cache_clear()


def create_app(store: Optional[MeasurementStore] = None) -> FastAPI:
    """Build the receiver. ``store`` replaces the process-wide default store."""
    configure_logging()
    app = FastAPI(
        title="Telemetry Receiver",
        description="Local stand-in for the telemetry API targeted by the HTTP sink.",
        version="0.1.0",
        lifespan=_default_store_lifespan if store is None else None,
    )
    app.include_router(router)
    if store is not None:
        app.dependency_overrides[get_store] = lambda: store
    return app


app = create_app()
