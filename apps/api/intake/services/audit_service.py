"""Audit logging service - security and compliance event tracking.

Security guidelines:
- NEVER log patient answers or signatures
- Client IPs only as HMAC hashes (see core.encryption.hash_client_ip)
- Use submission ids and references instead of raw data
- IP: Trust X-Forwarded-For only in production behind LB
"""

import json
import logging
from typing import Any, Protocol

from fastapi import Request
from sqlalchemy.orm import Session

from intake.core.config import settings
from intake.db.enums import AuditEntityType
from intake.db.models import AuditLog

logger = logging.getLogger(__name__)


class AuditLogger(Protocol):
    def log(
        self,
        event: str,
        entity_id: str | int | None,
        details: dict[str, Any] | None = None,
        *,
        entity_type: str | None = None,
    ) -> None: ...


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if not request:
        return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def canonical_json(obj: dict | None) -> str:
    """
    Serialize object to canonical JSON for consistent hashing and storage.

    Uses sorted keys, compact separators, and str() for non-JSON types.
    """
    return json.dumps(obj or {}, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False)


class DbAuditLogger:
    """Writes audit events to the ``audit_logs`` table."""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        event: str,
        entity_id: str | int | None,
        details: dict[str, Any] | None = None,
        *,
        entity_type: str | None = None,
    ) -> None:
        entry = AuditLog(
            event_type=event,
            entity_type=entity_type or AuditEntityType.SUBMISSION.value,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=json.loads(canonical_json(details)) if details else None,
        )
        self.db.add(entry)
        self.db.commit()


class InMemoryAuditLogger:
    """Keeps events in a list; used where no database is available."""

    def __init__(self):
        self.events: list[tuple[str, str | int | None, dict[str, Any] | None]] = []

    def log(
        self,
        event: str,
        entity_id: str | int | None,
        details: dict[str, Any] | None = None,
        *,
        entity_type: str | None = None,
    ) -> None:
        self.events.append((event, entity_id, details))
        logger.debug("Audit event recorded in memory", extra={"event_type": event})
