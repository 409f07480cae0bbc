from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import pytest

from src.mediscript.infra.storage.backends import InMemoryKeyValueBackend
from src.mediscript.infra.storage.record_store import RecordStore
from src.mediscript.services.extraction.backends import RawExtraction, SourceDocument

RAW_PAYLOAD: Dict[str, Any] = {
    "document_type": "New Prescription",
    "issue_date": "2024-03-01",
    "patient": {"name": "Jane Doe", "dob": "1980-01-01", "hcn": "1234567890", "address": "123 Main St"},
    "prescriber": {
        "name": "Dr. Smith",
        "license_id": "98765",
        "clinic_name": "City Clinic",
        "phone": "555-1234",
        "fax": "555-5678",
    },
    "medications": [
        {
            "drug_name": "Amoxicillin",
            "strength": "500mg",
            "form": "CAP",
            "sig_instructions": "Take one capsule three times daily",
            "quantity": "21",
            "refills": "0",
            "din": "123456",
            "fill_date": "2024-03-01",
        }
    ],
}


class ScriptedRecognitionBackend:
    """Recognition backend returning pre-scripted responses in call order.

    An ``Exception`` instance in the script is raised instead of returned.
    """

    def __init__(self, responses: List[Any]) -> None:
        self._responses = list(responses)
        self.calls: List[str] = []

    async def extract(self, document: SourceDocument) -> RawExtraction:
        self.calls.append(document.filename)
        response = self._responses[len(self.calls) - 1]
        if isinstance(response, Exception):
            raise response
        return response


class FlakyBackend(InMemoryKeyValueBackend):
    """In-memory backend whose writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise ConnectionError("backend unreachable")
        return super().get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise ConnectionError("backend unreachable")
        super().set(key, value)


@pytest.fixture
def make_raw():
    def _make(**overrides: Any) -> Dict[str, Any]:
        payload = copy.deepcopy(RAW_PAYLOAD)
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def scripted_backend():
    return ScriptedRecognitionBackend


@pytest.fixture
def flaky_backend() -> FlakyBackend:
    return FlakyBackend()


@pytest.fixture
def pdf():
    def _pdf(name: str) -> SourceDocument:
        return SourceDocument(filename=name, content=b"%PDF-1.4 fake")

    return _pdf


@pytest.fixture
async def store():
    async with RecordStore(InMemoryKeyValueBackend(), key="test_records") as record_store:
        yield record_store
