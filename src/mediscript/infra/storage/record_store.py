from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from src.mediscript.config import settings
from src.mediscript.domain.errors import GateError, GateErrorKind, SchemaError, StoreError, StoreErrorKind
from src.mediscript.domain.models.document_record import DocumentRecord
from src.mediscript.domain.validation import validate_record
from src.mediscript.infra.storage.backends import KeyValueBackend

logger = logging.getLogger(__name__)


class RecordStore:
    """Upsert/lookup of document records on top of a key-value backend.

    The whole collection lives under one namespaced key as a JSON array,
    most recently inserted first. Every operation reads the full array,
    changes it in memory and writes it back in one ``set`` call, so callers
    see an upsert either fully applied or not at all.

    The store is the only place record ids are assigned. It must be opened
    before use and closed when the owner shuts down::

        async with RecordStore(InMemoryKeyValueBackend()) as store:
            saved = await store.upsert(draft)
    """

    def __init__(self, backend: KeyValueBackend, *, key: Optional[str] = None) -> None:
        self._backend = backend
        self._key = key or settings.storage_key
        self._lock = asyncio.Lock()
        self._is_open = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def is_open(self) -> bool:
        return self._is_open

    async def open(self) -> "RecordStore":
        # Load once so an unreachable backend or a corrupt payload surfaces
        # at startup rather than on the first request.
        self._is_open = True
        try:
            async with self._lock:
                self._load()
        except StoreError:
            self._is_open = False
            raise
        logger.debug("Record store opened on key %s", self._key)
        return self

    async def close(self) -> None:
        if not self._is_open:
            return
        self._is_open = False
        self._backend.close()
        logger.debug("Record store on key %s closed", self._key)

    async def __aenter__(self) -> "RecordStore":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Operations

    async def upsert(self, record: DocumentRecord) -> DocumentRecord:
        """Insert or replace ``record`` and return the stored version.

        - No ``id``: a fresh id is assigned and the record goes to the head.
        - Known ``id``: replaced in place, keeping its position and its
          original ``created_at``.
        - Unknown ``id``: inserted at the head as a new record.

        An approved entry is never replaced by a pending copy of itself;
        that raises ``GateError(ALREADY_APPROVED)`` and leaves the store
        unchanged.
        """

        self._ensure_open()
        record = validate_record(record)
        async with self._lock:
            records = self._load()

            if record.id is None:
                existing_ids = {r.id for r in records}
                new_id = uuid4()
                while new_id in existing_ids:
                    new_id = uuid4()
                stored = record.model_copy(update={"id": new_id})
                records.insert(0, stored)
            else:
                index = _index_of(records, record.id)
                if index is None:
                    stored = record
                    records.insert(0, stored)
                else:
                    current = records[index]
                    if current.is_approved and not record.is_approved:
                        raise GateError(
                            GateErrorKind.ALREADY_APPROVED,
                            f"Record {record.id} is approved and cannot be reverted to pending",
                        )
                    stored = record.model_copy(update={"created_at": current.created_at})
                    records[index] = stored

            self._save(records)

        logger.debug("Upserted record %s (status=%s)", stored.id, stored.status.value)
        return stored

    async def list(self) -> List[DocumentRecord]:
        """Return all records, most recently inserted first."""

        self._ensure_open()
        async with self._lock:
            return self._load()

    async def get(self, record_id: UUID) -> Optional[DocumentRecord]:
        self._ensure_open()
        async with self._lock:
            records = self._load()
        index = _index_of(records, record_id)
        return records[index] if index is not None else None

    async def clear(self) -> None:
        """Drop every stored record. Used for maintenance and tests."""

        self._ensure_open()
        async with self._lock:
            self._save([])

    # Helpers

    def _ensure_open(self) -> None:
        if not self._is_open:
            raise StoreError(StoreErrorKind.NOT_OPEN, "Record store is not open")

    def _load(self) -> List[DocumentRecord]:
        try:
            raw = self._backend.get(self._key)
        except (OSError, SQLAlchemyError) as exc:
            raise StoreError(StoreErrorKind.BACKEND_UNAVAILABLE, f"Could not read {self._key!r}: {exc}") from exc

        if raw is None:
            return []

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(StoreErrorKind.MALFORMED_PAYLOAD, f"Stored payload is not valid JSON: {exc.msg}") from exc
        if not isinstance(items, list):
            raise StoreError(StoreErrorKind.MALFORMED_PAYLOAD, "Stored payload must be a JSON array")

        records: List[DocumentRecord] = []
        for position, item in enumerate(items):
            try:
                record = validate_record(item)
            except SchemaError as exc:
                raise StoreError(
                    StoreErrorKind.MALFORMED_PAYLOAD,
                    f"Stored record at position {position} is invalid ({exc})",
                ) from exc
            if record.id is None:
                raise StoreError(StoreErrorKind.MALFORMED_PAYLOAD, f"Stored record at position {position} has no id")
            records.append(record)
        return records

    def _save(self, records: List[DocumentRecord]) -> None:
        payload = json.dumps([r.model_dump(mode="json") for r in records])
        try:
            self._backend.set(self._key, payload)
        except (OSError, SQLAlchemyError) as exc:
            raise StoreError(StoreErrorKind.BACKEND_UNAVAILABLE, f"Could not write {self._key!r}: {exc}") from exc


def _index_of(records: List[DocumentRecord], record_id: UUID) -> Optional[int]:
    for index, record in enumerate(records):
        if record.id == record_id:
            return index
    return None
