from __future__ import annotations

import base64
import copy
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from src.mediscript.config import settings

# Raw recognition output: a JSON-shaped mapping, the JSON text an LLM
# returned, or nothing at all.
RawExtraction = Union[Mapping[str, Any], str, None]


@dataclass(frozen=True)
class SourceDocument:
    """One uploaded document as handed to a recognition backend."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"


class RecognitionBackend(Protocol):
    """Protocol for document recognition backends.

    Implementations take one document and return a payload matching the
    recognition output contract (``document_type``, ``issue_date``,
    ``patient``, ``prescriber``, ``medications``). They do not validate it;
    that is the extraction adapter's job.
    """

    async def extract(self, document: SourceDocument) -> RawExtraction:  # pragma: no cover - interface
        raise NotImplementedError


EXTRACTION_INSTRUCTIONS = """You are an expert medical documentation assistant. Extract prescription data from the attached scanned document into strict JSON.

Rules:
1. Redactions: patient names and addresses may be covered by black boxes. If a field is redacted, unreadable or absent, return null for it. Never invent a value.
2. Noise: ignore fax headers and footers and focus on the original clinical content.
3. Handwriting: transcribe handwritten sig instructions and drug names accurately.
4. Multiple medications: extract every listed drug into the "medications" array, in document order.
5. Document type: one of "New Prescription", "Refill Request", "Transfer Report" or "Fax Cover".

Every leaf is a string or null. Dates use YYYY-MM-DD. Medication forms use short codes such as TAB, CAP or CRM.

Reference example (Transfer Report):
Input text: "RX TRANSFER REPORT... Patient: Jane Doe... Drug: Amoxicillin 500mg... Qty: 21"
Correct JSON:
{"document_type": "Transfer Report", "issue_date": "2023-10-10",
 "patient": {"name": "Jane Doe", "dob": "1980-01-01", "hcn": "1234567890", "address": "123 Main St"},
 "prescriber": {"name": "Dr. Smith", "license_id": "98765", "clinic_name": "City Clinic", "phone": "555-1234", "fax": "555-5678"},
 "medications": [{"drug_name": "Amoxicillin", "strength": "500mg", "form": "CAP", "sig_instructions": "Take one capsule three times daily", "quantity": "21", "refills": "0", "din": "123456", "fill_date": "2023-10-09"}]}"""


def _nullable_strings(*names: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": ["string", "null"]} for name in names},
        "required": list(names),
        "additionalProperties": False,
    }


# JSON schema for the recognition output contract. Strict structured output
# requires every property to be listed in ``required``; optional leaves are
# nullable instead.
EXTRACTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "document_type": {"type": "string"},
        "issue_date": {"type": ["string", "null"], "description": "YYYY-MM-DD"},
        "patient": _nullable_strings("name", "dob", "hcn", "address"),
        "prescriber": _nullable_strings("name", "license_id", "clinic_name", "phone", "fax"),
        "medications": {
            "type": "array",
            "items": _nullable_strings(
                "drug_name", "strength", "form", "sig_instructions", "quantity", "refills", "din", "fill_date"
            ),
        },
    },
    "required": ["document_type", "issue_date", "patient", "prescriber", "medications"],
    "additionalProperties": False,
}


_DEMO_PAYLOAD: Mapping[str, Any] = {
    "document_type": "Transfer Report",
    "issue_date": "2023-10-10",
    # Patient name and address are redacted on the demo scan.
    "patient": {"name": None, "dob": "1980-01-01", "hcn": "1234567890", "address": None},
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
            "fill_date": "2023-10-09",
        }
    ],
}


class DemoRecognitionBackend:
    """Deterministic, offline recognition backend.

    Returns the same transfer-report payload for every document so tests and
    local development do not need network access or an API key.
    """

    async def extract(self, document: SourceDocument) -> RawExtraction:
        return copy.deepcopy(dict(_DEMO_PAYLOAD))


class LLMRecognitionBackend:
    """Recognition backend that sends the PDF to an LLM via the OpenAI client.

    The document is attached as an inline base64 file and the response is
    constrained to ``EXTRACTION_SCHEMA`` through strict structured output; the
    raw text is returned untouched for the adapter to parse. Requires
    ``OPENAI_API_KEY`` and the ``openai`` package.
    """

    def __init__(self, model: str | None = None, temperature: Optional[float] = None) -> None:
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature if temperature is None else temperature

    async def extract(self, document: SourceDocument) -> RawExtraction:
        api_key = settings.openai_api_key
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY must be set to use LLMRecognitionBackend")

        try:
            from openai import AsyncOpenAI
        except ImportError as exc:
            raise RuntimeError(
                "LLMRecognitionBackend requires the 'openai' package. "
                "Install it with 'pip install openai'"
            ) from exc

        encoded = base64.b64encode(document.content).decode("ascii")
        async with AsyncOpenAI(api_key=api_key) as client:
            response = await client.responses.create(
                model=self._model,
                instructions=EXTRACTION_INSTRUCTIONS,
                temperature=self._temperature,
                text={
                    "format": {
                        "type": "json_schema",
                        "name": "prescription_extraction",
                        "schema": EXTRACTION_SCHEMA,
                        "strict": True,
                    }
                },
                input=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "input_file",
                                "filename": document.filename,
                                "file_data": f"data:{document.content_type};base64,{encoded}",
                            },
                            {
                                "type": "input_text",
                                "text": "Analyze the attached medical document and extract the data into the JSON schema.",
                            },
                        ],
                    }
                ],
            )
        return response.output_text or None


demo_recognition_backend = DemoRecognitionBackend()


def get_recognition_backend_from_env() -> RecognitionBackend:
    """Select a recognition backend based on RECOGNITION_BACKEND.

    - RECOGNITION_BACKEND=llm → LLMRecognitionBackend
    - Anything else (or unset) → DemoRecognitionBackend
    """

    backend_name = settings.recognition_backend.lower()
    if backend_name == "llm":
        return LLMRecognitionBackend()
    return demo_recognition_backend
