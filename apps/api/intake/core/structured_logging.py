"""Structured logging helpers (PHI-safe)."""

from typing import Any


def build_log_context(
    *,
    form_id: str | None = None,
    location_id: str | None = None,
    service_type: str | None = None,
    submission_id: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict (identifiers only, never answers)."""
    context: dict[str, Any] = {}
    if form_id:
        context["form_id"] = form_id
    if location_id:
        context["location_id"] = location_id
    if service_type:
        context["service_type"] = service_type
    if submission_id:
        context["submission_id"] = submission_id
    if request_id:
        context["request_id"] = request_id
    return context
