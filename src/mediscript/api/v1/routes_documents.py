from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from src.mediscript.api.dependencies import get_batch_orchestrator
from src.mediscript.api.v1.schemas import BatchUploadResponse, DocumentFailureDetail, RecordSummary
from src.mediscript.config import settings
from src.mediscript.domain.errors import BatchAbortedError, StoreError
from src.mediscript.services.batch.orchestrator import BatchOrchestrator
from src.mediscript.services.extraction.backends import SourceDocument

router = APIRouter(prefix="/documents", tags=["documents"])

PDF_CONTENT_TYPE = "application/pdf"


@router.post("/batch", response_model=BatchUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_batch(
    files: List[UploadFile] = File(...),
    orchestrator: BatchOrchestrator = Depends(get_batch_orchestrator),
) -> BatchUploadResponse:
    """Extract and store every uploaded PDF as a pending draft.

    Files that are not PDFs are skipped and listed in the response. Under the
    fail-fast policy the first failing document aborts the batch with a 502
    naming that document; drafts stored before it are kept.
    """

    documents: List[SourceDocument] = []
    skipped: List[str] = []
    for upload in files:
        filename = upload.filename or "document.pdf"
        if upload.content_type != PDF_CONTENT_TYPE:
            skipped.append(filename)
            continue

        content = await upload.read()
        if len(content) > settings.max_upload_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Uploaded file {filename!r} too large.",
            )
        documents.append(SourceDocument(filename=filename, content=content, content_type=PDF_CONTENT_TYPE))

    if not documents:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No PDF documents in upload; expected application/pdf.",
        )

    try:
        report = await orchestrator.run(documents)
    except BatchAbortedError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": "Failed to process one or more documents.",
                "document": exc.document,
                "succeeded": exc.succeeded,
                "total": exc.total,
                "kind": getattr(getattr(exc.cause, "kind", None), "value", type(exc.cause).__name__),
                "skipped": skipped,
            },
        ) from exc
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return BatchUploadResponse(
        total=report.total,
        succeeded=report.succeeded,
        failed=report.failed,
        cancelled=report.cancelled,
        records=[RecordSummary.from_record(r) for r in report.records],
        failures=[
            DocumentFailureDetail(document=f.document, kind=f.kind, message=str(f.error))
            for f in report.failures
        ],
        skipped=skipped,
    )
