from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.mediscript.config import settings

logger = logging.getLogger("audit")
logger.setLevel(settings.audit_log_level.upper())


@dataclass
class AuditEvent:
    """One review-trail entry: who did what to which record or batch.

    Entries carry record ids, statuses and counts. Patient names, health card
    numbers and medication details never go into an entry.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    subject: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None

    def to_log_line(self) -> str:
        payload = asdict(self)
        try:
            return json.dumps(payload)
        except TypeError:
            # Unserializable metadata is dropped rather than the whole entry.
            payload["extra"] = None
            return json.dumps(payload)


class AuditService:
    """Writes the review trail to the ``audit`` logger as JSON lines."""

    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        subject: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Record one step of the document lifecycle and return the entry.

        ``action`` is what happened ("create", "approve", "batch_aborted",
        "batch_finished"); ``resource_type`` is "document_record" or "batch".
        ``subject`` names the reviewer when the caller supplied one.
        """

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            subject=subject,
            extra=extra,
        )
        logger.info(event.to_log_line())
        return event


audit_service = AuditService()
