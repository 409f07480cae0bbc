import pytest

from src.mediscript.domain.errors import GateError, GateErrorKind
from src.mediscript.domain.models.document_record import (
    DocumentRecord,
    MedicationLine,
    Patient,
    Prescriber,
    RecordStatus,
)
from src.mediscript.services.review.approval import approve


@pytest.fixture
def draft() -> DocumentRecord:
    return DocumentRecord(
        document_type="Fax Cover",
        patient=Patient(),
        prescriber=Prescriber(),
        medications=[MedicationLine(drug_name="Atorvastatin")],
    )


def test_approve_changes_only_status(draft):
    approved = approve(draft)

    assert approved.status == RecordStatus.APPROVED
    assert approved.model_dump(exclude={"status"}) == draft.model_dump(exclude={"status"})
    assert draft.status == RecordStatus.PENDING


def test_record_with_null_fields_can_be_approved(draft):
    approved = approve(draft)

    assert approved.patient.name is None
    assert approved.issue_date is None


def test_approval_is_not_idempotent(draft):
    with pytest.raises(GateError) as exc_info:
        approve(approve(draft))

    assert exc_info.value.kind == GateErrorKind.ALREADY_APPROVED
