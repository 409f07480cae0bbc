from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.mediscript.api.v1.routes_documents import router as documents_router_v1
from src.mediscript.api.v1.routes_records import router as records_router_v1
from src.mediscript.api.v1.routes_system import router as system_router_v1
from src.mediscript.config import settings
from src.mediscript.infra.storage.backends import get_kv_backend_from_env
from src.mediscript.infra.storage.record_store import RecordStore
from src.mediscript.services.batch.orchestrator import BatchPolicy
from src.mediscript.services.extraction.backends import RecognitionBackend, get_recognition_backend_from_env

logger = logging.getLogger(__name__)


def create_app(
    *,
    store: Optional[RecordStore] = None,
    recognition: Optional[RecognitionBackend] = None,
    batch_policy: Optional[BatchPolicy] = None,
) -> FastAPI:
    """Build the API application.

    The record store, recognition backend and batch policy default to the
    environment configuration; tests pass their own. The store is opened when
    the application starts and closed when it stops, and routers reach it through
    ``app.state`` rather than a module-level singleton.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        record_store: RecordStore = app.state.record_store
        if not record_store.is_open:
            await record_store.open()
        logger.info(
            "MediScript API started (recognition=%s, batch_policy=%s)",
            type(app.state.recognition_backend).__name__,
            app.state.batch_policy.value,
        )
        try:
            yield
        finally:
            await record_store.close()

    app = FastAPI(title="MediScript Document Review API", lifespan=lifespan)
    app.state.record_store = store or RecordStore(get_kv_backend_from_env())
    app.state.recognition_backend = recognition or get_recognition_backend_from_env()
    app.state.batch_policy = batch_policy or BatchPolicy(settings.batch_policy.lower())

    # CORS configuration: permissive by default for development. Tighten via
    # CORS_ALLOW_ORIGINS in production deployments.
    allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        """Basic liveness probe for the API root."""
        return {"status": "ok"}

    # Versioned API routers
    app.include_router(system_router_v1, prefix="/api/v1")
    app.include_router(documents_router_v1, prefix="/api/v1")
    app.include_router(records_router_v1, prefix="/api/v1")

    return app


app = create_app()
