from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Recognition backend selection: "demo" (default) or "llm".
    recognition_backend: str = os.getenv("RECOGNITION_BACKEND", "demo")

    # Optional settings for the LLM recognition backend.
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4.1-mini")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.1"))

    # Persistence backend for the record store: "memory" (default), "file"
    # or "sql".
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory")
    # Directory used by the file backend, one JSON document per key.
    storage_dir: Path = Path(os.getenv("STORAGE_DIR", "data"))
    # Database URL used by the SQL backend (e.g. sqlite:///mediscript.db).
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    # Namespaced key holding the full serialized list of records.
    storage_key: str = os.getenv("STORAGE_KEY", "mediscript_prescriptions")

    # Batch failure policy: "fail_fast" (default) or "best_effort".
    batch_policy: str = os.getenv("BATCH_POLICY", "fail_fast")

    # Request size limit per uploaded document (in bytes).
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))

    # CORS configuration: comma-separated origins. Default is "*" (allow all)
    # which is acceptable for local development only.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    audit_log_level: str = os.getenv("AUDIT_LOG_LEVEL", "INFO")


settings = Settings()
