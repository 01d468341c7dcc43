"""Точка входа FastAPI-приложения."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from .backend import KVBackend, build_backend
from .config import Settings, settings as default_settings
from .faults import FaultEngine, FaultyBackend
from .http import routes_blob, routes_query
from .http.sse import SSEManager
from .pipelines.metrics import MetricAggregator
from .storage import BlobStorage


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[KVBackend] = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="chunkvault",
        description="Хранение больших blob в KV-хранилище: чанки + метаданные в одной транзакции.",
        version="0.1.0",
        default_response_class=ORJSONResponse,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    faults = FaultEngine()
    app.state.settings = settings
    app.state.faults = faults
    app.state.backend = FaultyBackend(backend or build_backend(settings), faults)
    app.state.storage = BlobStorage(app.state.backend, settings)
    app.state.metrics = MetricAggregator(settings.metrics_window_seconds)
    app.state.sse = SSEManager(settings.sse_queue_size)

    app.include_router(routes_blob.router, prefix="/api")
    app.include_router(routes_query.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "service": "chunkvault",
            "metadata_key": settings.metadata_key,
            "chunk_size": settings.chunk_size,
        }

    return app


app = create_app()
