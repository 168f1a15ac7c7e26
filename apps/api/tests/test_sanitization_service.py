"""Tests for per-key sanitization of submitted data."""

import pytest

from conftest import VALID_SIGNATURE
from intake.schemas.forms import form_field_adapter
from intake.services.sanitization_service import (
    SanitizationPolicy,
    SanitizeKind,
    sanitize_email,
    sanitize_signature,
    sanitize_text,
    sanitize_textarea,
)


def test_sanitize_text_strips_markup_and_collapses_whitespace():
    assert sanitize_text("  <script>alert(1)</script>Anna \n  Muster ") == "Anna Muster"
    assert sanitize_text("Müller & Söhne") == "Müller & Söhne"
    assert sanitize_text("a\x07b\x1fc") == "abc"
    assert sanitize_text(None) == ""
    assert sanitize_text(42) == "42"


def test_sanitize_textarea_keeps_line_breaks():
    value = "Pollen\r\n  Nüsse   (stark)\r<b>Katzen</b>"

    assert sanitize_textarea(value) == "Pollen\nNüsse (stark)\nKatzen"


@pytest.mark.parametrize(
    "value,expected",
    [
        (" Anna.Muster@Example.COM ", "anna.muster@example.com"),
        ("kein-at", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_sanitize_email(value, expected):
    assert sanitize_email(value) == expected


def test_sanitize_signature_accepts_image_data_uri():
    assert sanitize_signature(VALID_SIGNATURE) == VALID_SIGNATURE
    assert sanitize_signature("data:image/jpeg;base64,/9j/4AAQ") == "data:image/jpeg;base64,/9j/4AAQ"


@pytest.mark.parametrize(
    "value",
    [
        "data:image/svg+xml;base64,PHN2Zz4=",
        "data:image/png;base64,***",
        "data:image/png;base64,abc",
        "javascript:alert(1)",
        None,
        123,
    ],
)
def test_sanitize_signature_rejects_other_payloads(value):
    assert sanitize_signature(value) is None


def test_policy_kind_for_keys():
    policy = SanitizationPolicy()

    assert policy.kind_for("form_token") is SanitizeKind.EXCLUDED
    assert policy.kind_for("signature_data") is SanitizeKind.SIGNATURE
    assert policy.kind_for("medikamente_strukturiert") is SanitizeKind.OPAQUE
    assert policy.kind_for("email") is SanitizeKind.EMAIL
    assert policy.kind_for("anmerkungen") is SanitizeKind.TEXTAREA
    assert policy.kind_for("vorname") is SanitizeKind.TEXT


def test_policy_sanitize_drops_control_keys_and_invalid_signatures():
    data = {
        "Vorname ": "<i>Anna</i>",
        "form_token": "abc",
        "dsgvo_consent": "1",
        "uploaded_files": "[]",
        "website_url": "",
        "signature_data": "not-an-image",
        "privat_art": ["beihilfe", "<b>zusatz</b>", {"nested": 1}],
        "datenschutz_einwilligung": True,
        "medikamente_strukturiert": '[{"name":"Ibu"}]\x00',
    }

    sanitized = SanitizationPolicy().sanitize(data)

    assert sanitized == {
        "vorname": "Anna",
        "privat_art": ["beihilfe", "zusatz"],
        "datenschutz_einwilligung": "1",
        "medikamente_strukturiert": '[{"name":"Ibu"}]',
    }


def test_policy_for_fields_keeps_line_breaks_in_custom_textareas():
    fields = {
        "custom_notiz": form_field_adapter.validate_python(
            {"id": "custom_notiz", "section": "custom", "type": "textarea", "is_custom": True}
        ),
        "vorname": form_field_adapter.validate_python(
            {"id": "vorname", "section": "p", "type": "text"}
        ),
    }
    policy = SanitizationPolicy.for_fields(fields)

    sanitized = policy.sanitize({"custom_notiz": "Zeile 1\nZeile 2", "vorname": "A\nB"})

    assert sanitized == {"custom_notiz": "Zeile 1\nZeile 2", "vorname": "A B"}
