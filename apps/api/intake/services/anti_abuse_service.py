"""Bot and abuse gates that run before any submitted data is looked at.

Checks run in a fixed order and the first failure wins:

1. rate limit per (bucket, hashed client ip)
2. honeypot decoy fields (answered with a fake success)
3. minimum fill time, measured with the render-time form token
"""

import base64
import binascii
import logging
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from intake.core.config import settings
from intake.core.encryption import hash_client_ip
from intake.core.rate_limit import SubmissionRateLimiter
from intake.db.enums import AuditEntityType, AuditEventType
from intake.services.audit_service import AuditLogger
from intake.utils.normalization import is_empty

logger = logging.getLogger(__name__)

FORM_SUBMIT_BUCKET = "form_submit"
HONEYPOT_FIELDS = ("website_url", "email_confirm")
FORM_TOKEN_FIELD = "form_token"

MSG_RATE_LIMITED = "Zu viele Anfragen. Bitte warten Sie {seconds} Sekunden."
MSG_TOO_FAST = "Bitte nehmen Sie sich etwas mehr Zeit zum Ausfüllen."
MSG_FAKE_SUCCESS = "Anfrage gesendet."


class GuardVerdict(str, Enum):
    ALLOWED = "allowed"
    RATE_LIMITED = "rate_limited"
    HONEYPOT = "honeypot"
    TOO_FAST = "too_fast"


@dataclass(frozen=True)
class GuardOutcome:
    verdict: GuardVerdict
    message: str = ""
    retry_after: int | None = None
    reference: str | None = None

    @property
    def allowed(self) -> bool:
        return self.verdict is GuardVerdict.ALLOWED


def mint_form_token(now: float | None = None) -> str:
    """Opaque render-time token ``base64("<unix_ts>_<random>")``."""
    issued_at = int(now if now is not None else time.time())
    return base64.b64encode(f"{issued_at}_{secrets.token_hex(8)}".encode()).decode()


def decode_form_token(token: Any) -> int | None:
    """Issue timestamp of a form token, or None when it cannot be read."""
    if not isinstance(token, str) or not token.strip():
        return None
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode("ascii")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    parts = decoded.split("_")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0])
    except ValueError:
        return None


def fake_reference() -> str:
    return f"REF{secrets.randbelow(900000) + 100000}"


class AntiAbuseGuard:
    def __init__(
        self,
        rate_limiter: SubmissionRateLimiter,
        audit: AuditLogger | None = None,
        *,
        min_fill_seconds: int | None = None,
        bucket: str = FORM_SUBMIT_BUCKET,
    ):
        self.rate_limiter = rate_limiter
        self.audit = audit
        if min_fill_seconds is None:
            min_fill_seconds = settings.MIN_FORM_TIME_SECONDS
        self.min_fill_seconds = min_fill_seconds
        self.bucket = bucket

    def check(
        self, data: Mapping[str, Any], client_ip: str | None, *, now: float | None = None
    ) -> GuardOutcome:
        client_key = hash_client_ip(client_ip)

        result = self.rate_limiter.attempt(self.bucket, client_key)
        if not result.allowed:
            logger.warning(
                "Form submission rate limited",
                extra={"bucket": self.bucket, "attempts": result.current},
            )
            if self.audit is not None:
                try:
                    self.audit.log(
                        AuditEventType.FORM_SUBMIT_RATE_LIMITED.value,
                        None,
                        {"ip_hash": client_key, "attempts": result.current},
                        entity_type=AuditEntityType.SECURITY.value,
                    )
                except Exception:
                    logger.exception(
                        "Rate-limit audit event could not be written",
                        extra={"bucket": self.bucket},
                    )
            return GuardOutcome(
                GuardVerdict.RATE_LIMITED,
                MSG_RATE_LIMITED.format(seconds=result.retry_after),
                retry_after=result.retry_after,
            )

        if any(not is_empty(data.get(field)) for field in HONEYPOT_FIELDS):
            # Bots must not be able to tell this apart from a real success
            self.rate_limiter.increment(self.bucket, client_key)
            logger.info("Honeypot triggered", extra={"bucket": self.bucket})
            return GuardOutcome(
                GuardVerdict.HONEYPOT, MSG_FAKE_SUCCESS, reference=fake_reference()
            )

        issued_at = decode_form_token(data.get(FORM_TOKEN_FIELD))
        if issued_at is not None:
            current = now if now is not None else time.time()
            if current - issued_at < self.min_fill_seconds:
                return GuardOutcome(GuardVerdict.TOO_FAST, MSG_TOO_FAST)

        return GuardOutcome(GuardVerdict.ALLOWED)
