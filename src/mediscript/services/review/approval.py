from __future__ import annotations

from src.mediscript.domain.errors import GateError, GateErrorKind
from src.mediscript.domain.models.document_record import DocumentRecord, RecordStatus


def approve(record: DocumentRecord) -> DocumentRecord:
    """Move a pending record to approved.

    Re-approval is rejected so the transition stays a single auditable event.
    Field completeness is not checked: the reviewer decides whether the
    record is sufficient. Persisting the result is up to the caller.
    """

    if record.status != RecordStatus.PENDING:
        raise GateError(GateErrorKind.ALREADY_APPROVED, f"Record {record.id} is already approved")
    return record.model_copy(update={"status": RecordStatus.APPROVED})
