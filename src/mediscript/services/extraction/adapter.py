from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.mediscript.domain.errors import ExtractionError, ExtractionErrorKind, SchemaError
from src.mediscript.domain.models.document_record import DocumentRecord, RecordStatus
from src.mediscript.domain.validation import validate_record
from src.mediscript.services.extraction.backends import RawExtraction

logger = logging.getLogger(__name__)

# Recognition wire key -> record field, per section.
_PATIENT_KEYS = {
    "name": "name",
    "dob": "date_of_birth",
    "hcn": "health_card_number",
    "address": "address",
}
_PRESCRIBER_KEYS = {
    "name": "name",
    "license_id": "license_id",
    "clinic_name": "clinic_name",
    "phone": "phone",
    "fax": "fax",
}
_MEDICATION_KEYS = {
    "drug_name": "drug_name",
    "strength": "strength",
    "form": "form",
    "sig_instructions": "sig_instructions",
    "quantity": "quantity",
    "refills": "refills",
    "din": "din",
    "fill_date": "fill_date",
}


def _map_section(raw: Any, keys: Mapping[str, str]) -> Any:
    # Leave non-mappings alone so validation reports them precisely.
    if not isinstance(raw, Mapping):
        return raw
    return {field: raw.get(wire) for wire, field in keys.items()}


def _map_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    mapped: Dict[str, Any] = {"issue_date": payload.get("issue_date")}
    if "document_type" in payload:
        mapped["document_type"] = payload["document_type"]
    if "patient" in payload:
        mapped["patient"] = _map_section(payload["patient"], _PATIENT_KEYS)
    if "prescriber" in payload:
        mapped["prescriber"] = _map_section(payload["prescriber"], _PRESCRIBER_KEYS)
    if "medications" in payload:
        medications = payload["medications"]
        if isinstance(medications, list):
            medications = [_map_section(line, _MEDICATION_KEYS) for line in medications]
        mapped["medications"] = medications
    return mapped


def _decode(raw: RawExtraction) -> Mapping[str, Any]:
    if raw is None:
        raise ExtractionError(ExtractionErrorKind.EMPTY_RESPONSE, "Recognition service returned no payload")

    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        if not text.strip():
            raise ExtractionError(ExtractionErrorKind.EMPTY_RESPONSE, "Recognition service returned no payload")
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ExtractionError(
                ExtractionErrorKind.SCHEMA_MISMATCH,
                f"Recognition payload is not valid JSON: {exc.msg}",
            ) from exc

    if not isinstance(raw, Mapping):
        raise ExtractionError(
            ExtractionErrorKind.SCHEMA_MISMATCH,
            f"Recognition payload must be an object, got {type(raw).__name__}",
        )
    if not raw:
        raise ExtractionError(ExtractionErrorKind.EMPTY_RESPONSE, "Recognition service returned an empty payload")
    return raw


def adapt(raw: RawExtraction, *, now: Optional[datetime] = None) -> DocumentRecord:
    """Turn one recognition response into a pending draft record.

    Null or absent leaves stay ``None``: redacted or unreadable values are
    never filled in. The draft has no ``id`` (the record store assigns it),
    ``status`` is always pending and ``created_at`` is the adaptation time.
    """

    payload = _decode(raw)
    mapped = _map_payload(payload)
    mapped["status"] = RecordStatus.PENDING
    mapped["created_at"] = now or datetime.now(timezone.utc)

    try:
        record = validate_record(mapped)
    except SchemaError as exc:
        logger.warning("Recognition payload failed schema validation: %s", exc.kind.value)
        raise ExtractionError(
            ExtractionErrorKind.SCHEMA_MISMATCH,
            f"Recognition payload does not match the record schema ({exc})",
        ) from exc

    return record
