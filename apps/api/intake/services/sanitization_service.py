"""Per-key cleaning of submitted patient data before it is stored.

The rule for a key is picked by what the key means: control keys are
dropped, free-text keys keep their line breaks, ``email`` is normalized,
``signature_data`` must be an image data URI, everything else is reduced to
a single line of plain text.
"""

import base64
import binascii
import html
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import nh3
from email_validator import EmailNotValidError, validate_email

from intake.schemas.forms import EffectiveFieldMap
from intake.utils.normalization import normalize_key

# Consumed as control data by the pipeline, never stored
EXCLUDED_KEYS = frozenset(
    {
        "nonce",
        "csrf_token",
        "action",
        "uploaded_files",
        "form_token",
        "dsgvo_consent",
        "website_url",
        "email_confirm",
    }
)

TEXTAREA_KEYS = frozenset(
    {
        "allergien_welche",
        "medikamente_liste",
        "anmerkungen",
        "diagnose",
        "brille_probleme",
        "dokument_beschreibung",
        "autoimmun_andere",
        "blutgerinnung_welche",
        "infektionen_andere",
    }
)

SIGNATURE_KEY = "signature_data"
OPAQUE_KEYS = frozenset({"medikamente_strukturiert"})

_SIGNATURE_RE = re.compile(r"^data:image/(png|jpeg);base64,([A-Za-z0-9+/=\s]+)$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_INLINE_WS_RE = re.compile(r"[ \t\r\f\v]+")


class SanitizeKind(str, Enum):
    EXCLUDED = "excluded"
    SIGNATURE = "signature"
    OPAQUE = "opaque"
    EMAIL = "email"
    TEXTAREA = "textarea"
    TEXT = "text"


def _strip_markup(value: str) -> str:
    # nh3 escapes what it keeps; stored values are plain text
    return html.unescape(nh3.clean(value, tags=set()))


def sanitize_text(value: Any) -> str:
    """Single line plain text: markup, control characters and extra whitespace removed."""
    if value is None:
        return ""
    text = _strip_markup(str(value))
    text = _CONTROL_CHARS_RE.sub("", text)
    return " ".join(text.split())


def sanitize_textarea(value: Any) -> str:
    """Like ``sanitize_text`` but line breaks survive."""
    if value is None:
        return ""
    text = _strip_markup(str(value)).replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS_RE.sub("", text)
    lines = [_INLINE_WS_RE.sub(" ", line).strip() for line in text.split("\n")]
    return "\n".join(lines).strip()


def sanitize_email(value: Any) -> str:
    """Normalized, lowercased address or ``""`` when the address is not valid."""
    if value is None:
        return ""
    candidate = str(value).strip()
    if not candidate:
        return ""
    try:
        result = validate_email(candidate, check_deliverability=False)
    except EmailNotValidError:
        return ""
    return result.normalized.lower()


def sanitize_signature(value: Any) -> str | None:
    """The data URI unchanged when it is a well-formed png/jpeg payload, else None."""
    if not isinstance(value, str):
        return None
    match = _SIGNATURE_RE.match(value.strip())
    if not match:
        return None
    try:
        base64.b64decode("".join(match.group(2).split()), validate=True)
    except (binascii.Error, ValueError):
        return None
    return value.strip()


def sanitize_opaque(value: Any) -> str:
    if value is None:
        return ""
    return _CONTROL_CHARS_RE.sub("", str(value)).strip()


@dataclass
class SanitizationPolicy:
    """Rule table mapping submitted keys to cleaning rules."""

    textarea_keys: frozenset[str] = TEXTAREA_KEYS
    excluded_keys: frozenset[str] = EXCLUDED_KEYS
    extra_textarea_keys: set[str] = field(default_factory=set)

    @classmethod
    def for_fields(cls, effective_fields: EffectiveFieldMap | None) -> "SanitizationPolicy":
        """Policy that also keeps line breaks for custom textarea fields."""
        policy = cls()
        for field_id, definition in (effective_fields or {}).items():
            if definition.type == "textarea" and definition.is_custom:
                policy.extra_textarea_keys.add(field_id)
        return policy

    def kind_for(self, key: str) -> SanitizeKind:
        if key in self.excluded_keys:
            return SanitizeKind.EXCLUDED
        if key == SIGNATURE_KEY:
            return SanitizeKind.SIGNATURE
        if key in OPAQUE_KEYS:
            return SanitizeKind.OPAQUE
        if key == "email":
            return SanitizeKind.EMAIL
        if key in self.textarea_keys or key in self.extra_textarea_keys:
            return SanitizeKind.TEXTAREA
        return SanitizeKind.TEXT

    def sanitize_value(self, key: str, value: Any) -> Any:
        kind = self.kind_for(key)
        if isinstance(value, (list, tuple)):
            return [sanitize_text(item) for item in value if not isinstance(item, (dict, list))]
        if isinstance(value, Mapping):
            return {normalize_key(k): sanitize_text(v) for k, v in value.items()}
        if kind is SanitizeKind.SIGNATURE:
            return sanitize_signature(value)
        if kind is SanitizeKind.OPAQUE:
            return sanitize_opaque(value)
        if kind is SanitizeKind.EMAIL:
            return sanitize_email(value)
        if kind is SanitizeKind.TEXTAREA:
            return sanitize_textarea(value)
        if isinstance(value, bool):
            return "1" if value else "0"
        return sanitize_text(value)

    def sanitize(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Cleaned copy of ``data`` without control keys or invalid signatures."""
        sanitized: dict[str, Any] = {}
        for raw_key, value in data.items():
            if raw_key in self.excluded_keys:
                continue
            key = normalize_key(raw_key)
            if not key or key in self.excluded_keys:
                continue
            cleaned = self.sanitize_value(key, value)
            if cleaned is None:
                continue
            sanitized[key] = cleaned
        return sanitized
