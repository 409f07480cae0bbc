from __future__ import annotations

from typing import List, NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.mediscript.api.dependencies import get_record_store
from src.mediscript.api.v1.schemas import RecordSummary, ReviewRequest
from src.mediscript.domain.errors import (
    EditorError,
    EditorErrorKind,
    GateError,
    MediScriptError,
    SchemaError,
    StoreError,
)
from src.mediscript.domain.models.document_record import DocumentRecord, RecordStatus
from src.mediscript.infra.storage.record_store import RecordStore
from src.mediscript.services.audit.service import audit_service
from src.mediscript.services.review.approval import approve
from src.mediscript.services.review.editor import apply_edits

router = APIRouter(prefix="/records", tags=["records"])


def _raise_http(exc: MediScriptError) -> NoReturn:
    if isinstance(exc, StoreError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if isinstance(exc, GateError) or (
        isinstance(exc, EditorError) and exc.kind == EditorErrorKind.RECORD_NOT_EDITABLE
    ):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


async def _load_record(store: RecordStore, record_id: UUID) -> DocumentRecord:
    try:
        record = await store.get(record_id)
    except StoreError as exc:
        _raise_http(exc)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record


@router.get("/", response_model=List[RecordSummary])
async def list_records(
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    store: RecordStore = Depends(get_record_store),
) -> List[RecordSummary]:
    try:
        records = await store.list()
    except StoreError as exc:
        _raise_http(exc)
    return [
        RecordSummary.from_record(record)
        for record in records
        if status_filter is None or record.status == status_filter
    ]


@router.get("/{record_id}", response_model=DocumentRecord)
async def get_record(record_id: UUID, store: RecordStore = Depends(get_record_store)) -> DocumentRecord:
    return await _load_record(store, record_id)


@router.post("/{record_id}/preview", response_model=DocumentRecord)
async def preview_record(
    record_id: UUID,
    payload: ReviewRequest,
    store: RecordStore = Depends(get_record_store),
) -> DocumentRecord:
    """Apply reviewer edits without persisting anything.

    Discarding a review is simply never calling approve.
    """

    record = await _load_record(store, record_id)
    try:
        return apply_edits(record, payload.edits)
    except EditorError as exc:
        _raise_http(exc)


@router.post("/{record_id}/approve", response_model=DocumentRecord)
async def approve_record(
    record_id: UUID,
    payload: ReviewRequest,
    store: RecordStore = Depends(get_record_store),
) -> DocumentRecord:
    """Apply reviewer edits, approve the record and save it in place."""

    record = await _load_record(store, record_id)
    try:
        corrected = apply_edits(record, payload.edits)
        approved = approve(corrected)
        saved = await store.upsert(approved)
    except (EditorError, GateError, SchemaError, StoreError) as exc:
        _raise_http(exc)

    audit_service.log_event(
        action="approve",
        resource_type="document_record",
        resource_id=str(saved.id),
        subject=payload.reviewer,
        extra={"edit_count": len(payload.edits), "medication_count": len(saved.medications)},
    )
    return saved
