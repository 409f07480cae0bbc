from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecordStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


def normalize_leaf(value: Any) -> Any:
    """Normalize a textual leaf so that "unknown" is always ``None``.

    Blank strings become ``None`` and numbers (which recognition services
    occasionally return for quantities or refills) become strings. Anything
    else is returned untouched and left to pydantic to accept or reject.
    """

    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class _LeafSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Any:
        return normalize_leaf(value)


class Patient(_LeafSection):
    name: Optional[str] = None
    date_of_birth: Optional[str] = None  # YYYY-MM-DD
    health_card_number: Optional[str] = None
    address: Optional[str] = None


class Prescriber(_LeafSection):
    name: Optional[str] = None
    license_id: Optional[str] = None
    clinic_name: Optional[str] = None
    phone: Optional[str] = None
    fax: Optional[str] = None


class MedicationLine(_LeafSection):
    drug_name: Optional[str] = None
    strength: Optional[str] = None
    form: Optional[str] = None  # e.g. TAB, CAP, CRM
    sig_instructions: Optional[str] = None
    quantity: Optional[str] = None
    refills: Optional[str] = None
    din: Optional[str] = None
    fill_date: Optional[str] = None  # YYYY-MM-DD


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(BaseModel):
    """Structured extraction of one scanned medical document.

    A record is created as a pending draft from the recognition output,
    corrected by a human reviewer and approved exactly once. Instances are
    frozen; every change produces a new record so callers can keep their own
    history for undo.

    ``id`` stays ``None`` until the record store assigns one on first insert.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    document_type: str
    issue_date: Optional[str] = None  # YYYY-MM-DD
    patient: Patient
    prescriber: Prescriber
    medications: List[MedicationLine]
    status: RecordStatus = RecordStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("document_type", "issue_date", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Any:
        return normalize_leaf(value)

    @property
    def is_approved(self) -> bool:
        return self.status == RecordStatus.APPROVED
