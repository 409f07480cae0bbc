from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.mediscript.domain.errors import SchemaError, SchemaErrorKind
from src.mediscript.domain.models.document_record import (
    DocumentRecord,
    MedicationLine,
    Patient,
    Prescriber,
    RecordStatus,
)
from src.mediscript.domain.validation import validate_record


def _candidate(**overrides):
    candidate = {
        "document_type": "Refill Request",
        "issue_date": "2024-01-15",
        "patient": {"name": "John Roe", "date_of_birth": "1975-05-05", "health_card_number": None, "address": None},
        "prescriber": {"name": "Dr. Who", "license_id": "L-1", "clinic_name": None, "phone": None, "fax": None},
        "medications": [{"drug_name": "Metformin", "strength": "500mg"}],
        "status": "pending",
    }
    candidate.update(overrides)
    return candidate


def test_valid_candidate_returns_record_with_missing_optionals_as_none():
    record = validate_record(_candidate())

    assert record.document_type == "Refill Request"
    assert record.status == RecordStatus.PENDING
    assert record.id is None
    assert record.patient.health_card_number is None
    assert record.medications == [MedicationLine(drug_name="Metformin", strength="500mg")]
    line = record.medications[0]
    assert line.form is None and line.din is None and line.fill_date is None


def test_empty_sections_are_coerced_to_all_null():
    record = validate_record(_candidate(patient={}, prescriber={}, medications=[{}]))

    assert record.patient == Patient()
    assert record.prescriber == Prescriber()
    assert record.medications == [MedicationLine()]


def test_validating_a_record_returns_an_equal_record():
    original = DocumentRecord(
        id=uuid4(),
        document_type="Transfer Report",
        patient=Patient(name="A"),
        prescriber=Prescriber(),
        medications=[MedicationLine(drug_name="X"), MedicationLine(drug_name="X")],
        status=RecordStatus.APPROVED,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    assert validate_record(original) == original


def test_missing_status_defaults_to_pending():
    candidate = _candidate()
    del candidate["status"]

    assert validate_record(candidate).status == RecordStatus.PENDING


@pytest.mark.parametrize("field", ["document_type", "patient", "prescriber", "medications"])
def test_missing_required_field(field):
    candidate = _candidate()
    del candidate[field]

    with pytest.raises(SchemaError) as exc_info:
        validate_record(candidate)

    assert exc_info.value.kind == SchemaErrorKind.MISSING_REQUIRED_FIELD
    assert exc_info.value.field == field


@pytest.mark.parametrize("field", ["document_type", "patient", "prescriber", "medications"])
def test_null_required_field_is_missing(field):
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(**{field: None}))

    assert exc_info.value.kind == SchemaErrorKind.MISSING_REQUIRED_FIELD


def test_blank_document_type_is_missing():
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(document_type="   "))

    assert exc_info.value.kind == SchemaErrorKind.MISSING_REQUIRED_FIELD


def test_section_that_is_not_an_object_is_missing():
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(patient=["Jane"]))

    assert exc_info.value.kind == SchemaErrorKind.MISSING_REQUIRED_FIELD
    assert exc_info.value.field == "patient"


@pytest.mark.parametrize("medications", ["Amoxicillin", {"drug_name": "X"}, 3])
def test_medications_must_be_a_list(medications):
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(medications=medications))

    assert exc_info.value.kind == SchemaErrorKind.MALFORMED_SEQUENCE


def test_medication_lines_must_be_objects():
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(medications=[{"drug_name": "X"}, "Y"]))

    assert exc_info.value.kind == SchemaErrorKind.MALFORMED_SEQUENCE
    assert exc_info.value.field == "medications.1"


def test_malformed_leaf_inside_medication_line():
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(medications=[{"drug_name": {"nested": True}}]))

    assert exc_info.value.kind == SchemaErrorKind.MALFORMED_SEQUENCE


@pytest.mark.parametrize("status", ["draft", "APPROVED", "rejected", 1])
def test_unknown_status_is_invalid_enum(status):
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(status=status))

    assert exc_info.value.kind == SchemaErrorKind.INVALID_ENUM


def test_malformed_leaf_outside_medications_is_invalid_field():
    with pytest.raises(SchemaError) as exc_info:
        validate_record(_candidate(patient={"name": ["Jane", "Doe"]}))

    assert exc_info.value.kind == SchemaErrorKind.INVALID_FIELD
    assert exc_info.value.field == "patient.name"


def test_null_optional_leaves_never_fail():
    record = validate_record(
        _candidate(
            issue_date=None,
            patient={"name": None, "date_of_birth": None, "health_card_number": None, "address": None},
            medications=[],
        )
    )

    assert record.issue_date is None
    assert record.patient.name is None
    assert record.medications == []


def test_blank_leaves_become_none_and_numbers_become_text():
    record = validate_record(_candidate(medications=[{"drug_name": "  ", "quantity": 21, "refills": 0}]))

    line = record.medications[0]
    assert line.drug_name is None
    assert line.quantity == "21"
    assert line.refills == "0"
