"""Utility modules."""

from intake.utils.normalization import (
    as_text,
    is_empty,
    normalize_key,
    normalize_phone,
)
