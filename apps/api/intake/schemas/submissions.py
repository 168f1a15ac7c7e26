"""Schemas for submissions, validation results and pipeline responses."""

from typing import Any

from pydantic import BaseModel, Field


class LocationContext(BaseModel):
    """The practice location a submission is addressed to."""

    location_id: str
    slug: str = "default"
    practice_name: str = "Praxis"
    notification_email: str | None = None
    email_from_name: str | None = None
    email_from_address: str | None = None


class ValidationResult(BaseModel):
    valid: bool
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_errors(cls, errors: dict[str, str]) -> "ValidationResult":
        return cls(valid=not errors, errors=dict(errors))


class SubmissionResult(BaseModel):
    success: bool
    message: str
    errors: dict[str, str] | None = None
    submission_id: str | None = None
    reference: str | None = None
    retry_after: int | None = None


class ProcessedSubmission(BaseModel):
    """Sanitized, enriched answers plus the metadata handed to the repository."""

    data: dict[str, Any]
    location_id: str
    service_key: str
    request_type: str
    submitted_at: str
    signature: str | None = None

    @property
    def meta(self) -> dict[str, str]:
        return {
            "location_id": self.location_id,
            "service_key": self.service_key,
            "request_type": self.request_type,
        }


class FormSubmissionCreate(BaseModel):
    answers: dict[str, Any]
    lang: str | None = None
    location: str | None = None


class ServiceRequestCreate(BaseModel):
    answers: dict[str, Any]
    location: str | None = None


class FormTokenRead(BaseModel):
    form_token: str
