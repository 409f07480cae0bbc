from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Dict, Union

from pydantic import BaseModel, ValidationError

from src.mediscript.domain.errors import SchemaError, SchemaErrorKind
from src.mediscript.domain.models.document_record import DocumentRecord, RecordStatus, normalize_leaf

REQUIRED_FIELDS = ("document_type", "patient", "prescriber", "medications")
_SECTIONS = ("patient", "prescriber")


def validate_record(candidate: Union[DocumentRecord, Mapping[str, Any]]) -> DocumentRecord:
    """Validate a candidate record and return it as a :class:`DocumentRecord`.

    Missing optional leaves are coerced to ``None``; only the structural
    contract can fail:

    - ``MISSING_REQUIRED_FIELD`` when ``document_type``, ``patient``,
      ``prescriber`` or ``medications`` is absent (or ``document_type`` is
      blank, or a section is not a mapping).
    - ``MALFORMED_SEQUENCE`` when ``medications`` is not a list of mappings.
    - ``INVALID_ENUM`` when ``status`` is not ``pending``/``approved``.
    - ``INVALID_FIELD`` for any other value of the wrong shape.
    """

    if isinstance(candidate, DocumentRecord):
        candidate = candidate.model_dump()
    if not isinstance(candidate, Mapping):
        raise SchemaError(
            SchemaErrorKind.MISSING_REQUIRED_FIELD,
            f"Record must be a mapping, got {type(candidate).__name__}",
        )

    data: Dict[str, Any] = dict(candidate)

    for name in REQUIRED_FIELDS:
        if data.get(name) is None:
            raise SchemaError(SchemaErrorKind.MISSING_REQUIRED_FIELD, f"'{name}' is required", field=name)

    if normalize_leaf(data["document_type"]) is None:
        raise SchemaError(
            SchemaErrorKind.MISSING_REQUIRED_FIELD,
            "'document_type' must not be blank",
            field="document_type",
        )

    for name in _SECTIONS:
        if not isinstance(data[name], (Mapping, BaseModel)):
            raise SchemaError(
                SchemaErrorKind.MISSING_REQUIRED_FIELD,
                f"'{name}' must be an object",
                field=name,
            )

    medications = data["medications"]
    if isinstance(medications, (str, bytes)) or not isinstance(medications, Sequence):
        raise SchemaError(
            SchemaErrorKind.MALFORMED_SEQUENCE,
            "'medications' must be a list",
            field="medications",
        )
    for index, line in enumerate(medications):
        if not isinstance(line, (Mapping, BaseModel)):
            raise SchemaError(
                SchemaErrorKind.MALFORMED_SEQUENCE,
                f"medication line {index} must be an object",
                field=f"medications.{index}",
            )
    data["medications"] = list(medications)

    if data.get("status") is None:
        data.pop("status", None)
    else:
        try:
            data["status"] = RecordStatus(data["status"])
        except ValueError:
            raise SchemaError(
                SchemaErrorKind.INVALID_ENUM,
                f"'status' must be one of {[s.value for s in RecordStatus]}, got {data['status']!r}",
                field="status",
            ) from None

    if data.get("created_at") is None:
        data.pop("created_at", None)

    try:
        return DocumentRecord.model_validate(data)
    except ValidationError as exc:
        raise _schema_error_from(exc) from exc


def _schema_error_from(exc: ValidationError) -> SchemaError:
    first = exc.errors()[0]
    loc = [str(part) for part in first.get("loc", ())]
    path = ".".join(loc)
    message = f"{path or 'record'}: {first.get('msg', 'invalid value')}"
    if loc and loc[0] == "medications":
        return SchemaError(SchemaErrorKind.MALFORMED_SEQUENCE, message, field=path)
    if first.get("type") == "missing":
        return SchemaError(SchemaErrorKind.MISSING_REQUIRED_FIELD, message, field=path)
    return SchemaError(SchemaErrorKind.INVALID_FIELD, message, field=path)
