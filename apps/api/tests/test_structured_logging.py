"""Tests for structured logging helpers."""

from intake.core.structured_logging import build_log_context


def test_build_log_context_includes_only_provided_fields():
    context = build_log_context(
        form_id="anamnese",
        location_id="1",
        service_type="rezept",
        submission_id="abc123",
        request_id="req-1",
    )

    assert context == {
        "form_id": "anamnese",
        "location_id": "1",
        "service_type": "rezept",
        "submission_id": "abc123",
        "request_id": "req-1",
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(
        form_id="",
        location_id=None,
        request_id="req-1",
    )

    assert context == {"request_id": "req-1"}
