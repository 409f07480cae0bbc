from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from src.mediscript.domain.errors import BatchAbortedError, ExtractionError, StoreError
from src.mediscript.domain.models.document_record import DocumentRecord
from src.mediscript.infra.storage.record_store import RecordStore
from src.mediscript.services.audit.service import AuditService, audit_service
from src.mediscript.services.extraction.adapter import adapt
from src.mediscript.services.extraction.backends import RecognitionBackend, SourceDocument

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Union[None, Awaitable[None]]]


class BatchPolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    BEST_EFFORT = "best_effort"


@dataclass
class DocumentFailure:
    document: str
    error: Exception

    @property
    def kind(self) -> str:
        kind = getattr(self.error, "kind", None)
        return kind.value if kind is not None else type(self.error).__name__


@dataclass
class BatchReport:
    total: int
    records: List[DocumentRecord] = field(default_factory=list)
    failures: List[DocumentFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.records)

    @property
    def failed(self) -> int:
        return len(self.failures)


class BatchOrchestrator:
    """Drive uploaded documents through recognition and initial persistence.

    Documents are processed strictly one at a time in input order. Each
    successful document is stored as a pending draft. Progress is reported
    as ``(completed, total)`` after every document, whether it succeeded or
    failed.

    Failure policy:

    - ``FAIL_FAST`` (default): the first document whose recognition or
      adaptation fails aborts the batch with :class:`BatchAbortedError`;
      drafts stored before it stay stored, later documents are never tried.
    - ``BEST_EFFORT``: failures are collected in the report and the batch
      carries on.

    Store failures are never per-document and propagate unchanged under
    either policy.
    """

    def __init__(
        self,
        recognition: RecognitionBackend,
        store: RecordStore,
        *,
        policy: BatchPolicy = BatchPolicy.FAIL_FAST,
        audit: Optional[AuditService] = None,
    ) -> None:
        self._recognition = recognition
        self._store = store
        self._policy = policy
        self._audit = audit or audit_service

    @property
    def policy(self) -> BatchPolicy:
        return self._policy

    async def run(
        self,
        documents: Sequence[SourceDocument],
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchReport:
        total = len(documents)
        report = BatchReport(total=total)

        for position, document in enumerate(documents):
            # Cancellation is only honoured between documents.
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.info("Batch cancelled after %d of %d document(s)", position, total)
                break

            try:
                draft = await self._extract(document)
            except Exception as exc:
                await _notify(on_progress, position + 1, total)
                if isinstance(exc, ExtractionError):
                    exc.document = document.filename
                logger.warning("Extraction failed for document %d of %d: %s", position + 1, total, exc)
                if self._policy is BatchPolicy.FAIL_FAST:
                    self._audit.log_event(
                        action="batch_aborted",
                        resource_type="batch",
                        extra={"succeeded": report.succeeded, "total": total, "failed_position": position},
                    )
                    raise BatchAbortedError(
                        succeeded=report.succeeded,
                        total=total,
                        document=document.filename,
                        cause=exc,
                    ) from exc
                report.failures.append(DocumentFailure(document=document.filename, error=exc))
                continue

            try:
                stored = await self._store.upsert(draft)
            except StoreError:
                await _notify(on_progress, position + 1, total)
                raise

            report.records.append(stored)
            self._audit.log_event(
                action="create",
                resource_type="document_record",
                resource_id=str(stored.id),
                extra={"medication_count": len(stored.medications)},
            )
            await _notify(on_progress, position + 1, total)

        self._audit.log_event(
            action="batch_finished",
            resource_type="batch",
            extra={
                "total": total,
                "succeeded": report.succeeded,
                "failed": report.failed,
                "cancelled": report.cancelled,
            },
        )
        return report

    async def _extract(self, document: SourceDocument) -> DocumentRecord:
        raw = await self._recognition.extract(document)
        return adapt(raw)


async def _notify(callback: Optional[ProgressCallback], completed: int, total: int) -> None:
    if callback is None:
        return
    result = callback(completed, total)
    if inspect.isawaitable(result):
        await result
