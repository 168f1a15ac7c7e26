"""Tests for submitted-value normalization helpers."""

import pytest

from intake.utils.normalization import (
    as_text,
    is_empty,
    normalize_key,
    normalize_phone,
)


def test_normalize_key_keeps_safe_characters():
    assert normalize_key("Allergien Welche!") == "allergienwelche"
    assert normalize_key("custom_Blood-Type") == "custom_blood-type"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("+49 171 1234567", "+491711234567"),
        ("(030) 12-34 56", "030123456"),
        ("0171/123 45 67", "01711234567"),
        ("12+34", "1234"),
        ("abc", ""),
        (None, ""),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize(
    "value",
    [None, False, "", "   ", "0", 0, [], {}, ()],
)
def test_is_empty_true(value):
    assert is_empty(value) is True


@pytest.mark.parametrize(
    "value",
    ["1", "nein", True, 1, ["a"], {"a": 1}],
)
def test_is_empty_false(value):
    assert is_empty(value) is False


def test_as_text_renders_values():
    assert as_text(None) == ""
    assert as_text(True) == "1"
    assert as_text(["a", "", "b"]) == "a, b"
    assert as_text("  x ") == "x"
