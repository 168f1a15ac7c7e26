"""
Normalization helpers for submitted patient data.

Inputs arrive as untyped form values (strings, lists, checkbox markers), so
every helper here accepts anything and never raises.
"""

import re
from typing import Any

_KEY_RE = re.compile(r"[^a-z0-9_\-]")
_PHONE_RE = re.compile(r"[^\d+]")


def normalize_key(key: Any) -> str:
    """Reduce a submitted key to lowercase ``[a-z0-9_-]``."""
    return _KEY_RE.sub("", str(key).lower())


def normalize_phone(phone: Any) -> str:
    """
    Keep digits and a single leading ``+``.

    Examples:
        "+49 171 1234567" -> "+491711234567"
        "(030) 12-34 56"  -> "030123456"
    """
    if phone is None:
        return ""
    raw = _PHONE_RE.sub("", str(phone).strip())
    if not raw:
        return ""
    leading_plus = raw.startswith("+")
    digits = raw.replace("+", "")
    return f"+{digits}" if leading_plus else digits


def is_empty(value: Any) -> bool:
    """
    Whether a submitted value counts as "not provided".

    Unchecked checkboxes arrive as ``"0"``/``False``; whitespace-only
    strings and empty collections are treated the same as missing.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return stripped == "" or stripped == "0"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def as_text(value: Any) -> str:
    """Render a scalar form value as a trimmed string (lists are joined)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (list, tuple)):
        return ", ".join(as_text(item) for item in value if not is_empty(item))
    return str(value).strip()
