from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Callable, Dict, Iterable, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.mediscript.domain.errors import EditorError, EditorErrorKind
from src.mediscript.domain.models.document_record import DocumentRecord, MedicationLine, normalize_leaf


class RecordField(str, Enum):
    """Scalar leaves of a record that a reviewer may correct."""

    DOCUMENT_TYPE = "document_type"
    ISSUE_DATE = "issue_date"
    PATIENT_NAME = "patient.name"
    PATIENT_DATE_OF_BIRTH = "patient.date_of_birth"
    PATIENT_HEALTH_CARD_NUMBER = "patient.health_card_number"
    PATIENT_ADDRESS = "patient.address"
    PRESCRIBER_NAME = "prescriber.name"
    PRESCRIBER_LICENSE_ID = "prescriber.license_id"
    PRESCRIBER_CLINIC_NAME = "prescriber.clinic_name"
    PRESCRIBER_PHONE = "prescriber.phone"
    PRESCRIBER_FAX = "prescriber.fax"


class MedicationField(str, Enum):
    DRUG_NAME = "drug_name"
    STRENGTH = "strength"
    FORM = "form"
    SIG_INSTRUCTIONS = "sig_instructions"
    QUANTITY = "quantity"
    REFILLS = "refills"
    DIN = "din"
    FILL_DATE = "fill_date"


Setter = Callable[[DocumentRecord, Optional[str]], DocumentRecord]
LineSetter = Callable[[MedicationLine, Optional[str]], MedicationLine]


def _with_patient(record: DocumentRecord, **changes: Optional[str]) -> DocumentRecord:
    return record.model_copy(update={"patient": record.patient.model_copy(update=changes)})


def _with_prescriber(record: DocumentRecord, **changes: Optional[str]) -> DocumentRecord:
    return record.model_copy(update={"prescriber": record.prescriber.model_copy(update=changes)})


_FIELD_SETTERS: Dict[RecordField, Setter] = {
    RecordField.DOCUMENT_TYPE: lambda r, v: r.model_copy(update={"document_type": v}),
    RecordField.ISSUE_DATE: lambda r, v: r.model_copy(update={"issue_date": v}),
    RecordField.PATIENT_NAME: lambda r, v: _with_patient(r, name=v),
    RecordField.PATIENT_DATE_OF_BIRTH: lambda r, v: _with_patient(r, date_of_birth=v),
    RecordField.PATIENT_HEALTH_CARD_NUMBER: lambda r, v: _with_patient(r, health_card_number=v),
    RecordField.PATIENT_ADDRESS: lambda r, v: _with_patient(r, address=v),
    RecordField.PRESCRIBER_NAME: lambda r, v: _with_prescriber(r, name=v),
    RecordField.PRESCRIBER_LICENSE_ID: lambda r, v: _with_prescriber(r, license_id=v),
    RecordField.PRESCRIBER_CLINIC_NAME: lambda r, v: _with_prescriber(r, clinic_name=v),
    RecordField.PRESCRIBER_PHONE: lambda r, v: _with_prescriber(r, phone=v),
    RecordField.PRESCRIBER_FAX: lambda r, v: _with_prescriber(r, fax=v),
}

_MEDICATION_SETTERS: Dict[MedicationField, LineSetter] = {
    MedicationField.DRUG_NAME: lambda m, v: m.model_copy(update={"drug_name": v}),
    MedicationField.STRENGTH: lambda m, v: m.model_copy(update={"strength": v}),
    MedicationField.FORM: lambda m, v: m.model_copy(update={"form": v}),
    MedicationField.SIG_INSTRUCTIONS: lambda m, v: m.model_copy(update={"sig_instructions": v}),
    MedicationField.QUANTITY: lambda m, v: m.model_copy(update={"quantity": v}),
    MedicationField.REFILLS: lambda m, v: m.model_copy(update={"refills": v}),
    MedicationField.DIN: lambda m, v: m.model_copy(update={"din": v}),
    MedicationField.FILL_DATE: lambda m, v: m.model_copy(update={"fill_date": v}),
}


def _ensure_editable(record: DocumentRecord) -> None:
    if record.is_approved:
        raise EditorError(
            EditorErrorKind.RECORD_NOT_EDITABLE,
            f"Record {record.id} is approved and can no longer be edited",
        )


def _ensure_index(record: DocumentRecord, index: int) -> None:
    if not 0 <= index < len(record.medications):
        raise EditorError(
            EditorErrorKind.INDEX_OUT_OF_RANGE,
            f"Medication index {index} out of range for {len(record.medications)} line(s)",
        )


def _clean_value(value: Any) -> Optional[str]:
    cleaned = normalize_leaf(value)
    if cleaned is not None and not isinstance(cleaned, str):
        raise EditorError(EditorErrorKind.INVALID_VALUE, f"Expected text or null, got {type(value).__name__}")
    return cleaned


def _resolve(enum_cls: type[Enum], field: Union[str, Enum]) -> Any:
    try:
        return enum_cls(field)
    except ValueError:
        raise EditorError(EditorErrorKind.UNKNOWN_PATH, f"Unknown field path {str(field)!r}") from None


def set_field(record: DocumentRecord, field: Union[RecordField, str], value: Any) -> DocumentRecord:
    _ensure_editable(record)
    resolved = _resolve(RecordField, field)
    cleaned = _clean_value(value)
    if resolved is RecordField.DOCUMENT_TYPE and cleaned is None:
        raise EditorError(EditorErrorKind.INVALID_VALUE, "document_type is required and cannot be cleared")
    return _FIELD_SETTERS[resolved](record, cleaned)


def set_medication_field(
    record: DocumentRecord,
    index: int,
    field: Union[MedicationField, str],
    value: Any,
) -> DocumentRecord:
    _ensure_editable(record)
    _ensure_index(record, index)
    resolved = _resolve(MedicationField, field)
    cleaned = _clean_value(value)
    medications = list(record.medications)
    medications[index] = _MEDICATION_SETTERS[resolved](medications[index], cleaned)
    return record.model_copy(update={"medications": medications})


def add_medication(record: DocumentRecord) -> DocumentRecord:
    _ensure_editable(record)
    return record.model_copy(update={"medications": [*record.medications, MedicationLine()]})


def remove_medication(record: DocumentRecord, index: int) -> DocumentRecord:
    _ensure_editable(record)
    _ensure_index(record, index)
    medications = [line for i, line in enumerate(record.medications) if i != index]
    return record.model_copy(update={"medications": medications})


# Typed edit operations, as submitted by the review surface.


class SetFieldEdit(BaseModel):
    op: Literal["set_field"] = "set_field"
    field: str
    value: Optional[str] = None


class SetMedicationFieldEdit(BaseModel):
    op: Literal["set_medication_field"] = "set_medication_field"
    index: int
    field: str
    value: Optional[str] = None


class AddMedicationEdit(BaseModel):
    op: Literal["add_medication"] = "add_medication"


class RemoveMedicationEdit(BaseModel):
    op: Literal["remove_medication"] = "remove_medication"
    index: int


EditOperation = Annotated[
    Union[SetFieldEdit, SetMedicationFieldEdit, AddMedicationEdit, RemoveMedicationEdit],
    Field(discriminator="op"),
]


def apply_edits(record: DocumentRecord, edits: Iterable[EditOperation]) -> DocumentRecord:
    """Apply reviewer edits in order.

    The first failing edit raises and the caller's record is left as it was;
    there is no partially edited result.
    """

    current = record
    for edit in edits:
        if isinstance(edit, SetFieldEdit):
            current = set_field(current, edit.field, edit.value)
        elif isinstance(edit, SetMedicationFieldEdit):
            current = set_medication_field(current, edit.index, edit.field, edit.value)
        elif isinstance(edit, AddMedicationEdit):
            current = add_medication(current)
        elif isinstance(edit, RemoveMedicationEdit):
            current = remove_medication(current, edit.index)
        else:
            raise EditorError(EditorErrorKind.UNKNOWN_PATH, f"Unsupported edit operation {edit!r}")
    return current
