from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from sqlalchemy import Engine

from src.mediscript.config import settings
from src.mediscript.infra.db.models import KeyValueEntryORM
from src.mediscript.infra.db.session import SessionFactory, create_sqlalchemy_session_factory


class KeyValueBackend(ABC):
    """Whole-value key-value persistence used by the record store.

    Values are opaque text; the store keeps one JSON array per key and always
    reads and writes it in full.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Replace the value for ``key``. Either fully applied or not at all."""
        raise NotImplementedError

    def close(self) -> None:
        """Release any held resources. Default is a no-op."""


class InMemoryKeyValueBackend(KeyValueBackend):
    """Process-local backend, intended for tests and local development."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class FileKeyValueBackend(KeyValueBackend):
    """Stores each key as a JSON file under ``base_dir``."""

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self._base: Path = Path(base_dir) if base_dir is not None else settings.storage_dir
        self._base.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self._base / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)  # atomic on same filesystem


class SqlKeyValueBackend(KeyValueBackend):
    """Stores values in the ``kv_entries`` table through SQLAlchemy."""

    def __init__(self, database_url: str | None = None) -> None:
        db_url = database_url or settings.database_url
        if not db_url:
            raise ValueError("SqlKeyValueBackend requires DATABASE_URL to be configured")
        self._engine: Engine
        self._session_factory: SessionFactory
        self._engine, self._session_factory = create_sqlalchemy_session_factory(db_url)

    def get(self, key: str) -> Optional[str]:
        session = self._session_factory()
        try:
            entry = session.get(KeyValueEntryORM, key)
            return entry.value if entry is not None else None
        finally:
            session.close()

    def set(self, key: str, value: str) -> None:
        session = self._session_factory()
        try:
            entry = session.get(KeyValueEntryORM, key)
            now = datetime.now(timezone.utc)
            if entry is None:
                session.add(KeyValueEntryORM(key=key, value=value, updated_at=now))
            else:
                entry.value = value
                entry.updated_at = now
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self._engine.dispose()


def get_kv_backend_from_env() -> KeyValueBackend:
    """Select a persistence backend based on STORAGE_BACKEND.

    - STORAGE_BACKEND=file → FileKeyValueBackend (STORAGE_DIR)
    - STORAGE_BACKEND=sql → SqlKeyValueBackend (DATABASE_URL)
    - Anything else (or unset) → InMemoryKeyValueBackend
    """

    backend_name = settings.storage_backend.lower()
    if backend_name == "file":
        return FileKeyValueBackend()
    if backend_name == "sql":
        return SqlKeyValueBackend()
    return InMemoryKeyValueBackend()
