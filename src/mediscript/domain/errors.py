from __future__ import annotations

from enum import Enum
from typing import Optional


class MediScriptError(Exception):
    """Base class for all domain errors raised by the review pipeline."""

    def __init__(self, kind: Enum, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class SchemaErrorKind(str, Enum):
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_ENUM = "INVALID_ENUM"
    MALFORMED_SEQUENCE = "MALFORMED_SEQUENCE"
    INVALID_FIELD = "INVALID_FIELD"


class SchemaError(MediScriptError):
    def __init__(self, kind: SchemaErrorKind, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(kind, message)
        self.field = field


class ExtractionErrorKind(str, Enum):
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    SCHEMA_MISMATCH = "SCHEMA_MISMATCH"


class ExtractionError(MediScriptError):
    """The recognition service returned nothing usable for one document.

    ``document`` names the source document once the batch orchestrator has
    attributed the failure.
    """

    def __init__(
        self,
        kind: ExtractionErrorKind,
        message: str,
        *,
        document: Optional[str] = None,
    ) -> None:
        super().__init__(kind, message)
        self.document = document


class EditorErrorKind(str, Enum):
    UNKNOWN_PATH = "UNKNOWN_PATH"
    INDEX_OUT_OF_RANGE = "INDEX_OUT_OF_RANGE"
    RECORD_NOT_EDITABLE = "RECORD_NOT_EDITABLE"
    INVALID_VALUE = "INVALID_VALUE"


class EditorError(MediScriptError):
    pass


class GateErrorKind(str, Enum):
    ALREADY_APPROVED = "ALREADY_APPROVED"


class GateError(MediScriptError):
    pass


class StoreErrorKind(str, Enum):
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    NOT_OPEN = "NOT_OPEN"


class StoreError(MediScriptError):
    pass


class BatchAbortedError(Exception):
    """Fail-fast batch abort: one document failed, the rest were not attempted."""

    def __init__(self, *, succeeded: int, total: int, document: str, cause: Exception) -> None:
        super().__init__(
            f"Batch aborted at document {document!r} after {succeeded} of {total} succeeded: {cause}"
        )
        self.succeeded = succeeded
        self.total = total
        self.document = document
        self.cause = cause
