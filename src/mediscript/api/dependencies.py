from __future__ import annotations

from fastapi import Request

from src.mediscript.infra.storage.record_store import RecordStore
from src.mediscript.services.batch.orchestrator import BatchOrchestrator


def get_record_store(request: Request) -> RecordStore:
    """Return the record store owned by the running application."""

    return request.app.state.record_store


def get_batch_orchestrator(request: Request) -> BatchOrchestrator:
    state = request.app.state
    return BatchOrchestrator(
        state.recognition_backend,
        state.record_store,
        policy=state.batch_policy,
    )
