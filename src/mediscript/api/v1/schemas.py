from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.mediscript.domain.models.document_record import DocumentRecord, RecordStatus
from src.mediscript.services.review.editor import EditOperation


class RecordSummary(BaseModel):
    id: UUID
    document_type: str
    status: RecordStatus
    patient_name: str
    prescriber_name: str
    medication_count: int
    created_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "RecordSummary":
        return cls(
            id=record.id,
            document_type=record.document_type,
            status=record.status,
            patient_name=record.patient.name or "Unknown Patient",
            prescriber_name=record.prescriber.name or "N/A",
            medication_count=len(record.medications),
            created_at=record.created_at,
        )


class DocumentFailureDetail(BaseModel):
    document: str
    kind: str
    message: str


class BatchUploadResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    cancelled: bool = False
    records: List[RecordSummary]
    failures: List[DocumentFailureDetail] = Field(default_factory=list)
    # Uploaded files that were not PDFs and were never processed.
    skipped: List[str] = Field(default_factory=list)


class ReviewRequest(BaseModel):
    edits: List[EditOperation] = Field(default_factory=list)
    # Identity of the reviewer, supplied by the authenticated caller.
    reviewer: Optional[str] = None
