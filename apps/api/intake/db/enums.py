"""Enum definitions for application constants."""

from enum import Enum


class ServiceType(str, Enum):
    """Widget service requests a patient can submit."""

    REZEPT = "rezept"
    UEBERWEISUNG = "ueberweisung"
    BRILLENVERORDNUNG = "brillenverordnung"
    DOKUMENT = "dokument"
    TERMIN = "termin"
    TERMINABSAGE = "terminabsage"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid service type."""
        return value in cls._value2member_map_


class SubmissionStatus(str, Enum):
    """Processing status of a stored submission."""

    PENDING = "pending"
    READ = "read"
    COMPLETED = "completed"


class AuditEventType(str, Enum):
    """Audit events written by the intake pipeline."""

    SUBMISSION_CREATED = "submission_created"
    SERVICE_REQUEST_SUBMITTED = "service_request_submitted"
    FORM_SUBMIT_RATE_LIMITED = "form_submit_rate_limited"


class AuditEntityType(str, Enum):
    SUBMISSION = "submission"
    SECURITY = "security"


class SchemaFormat(str, Enum):
    """How a form schema is localized on disk."""

    MULTI_FILE = "multilang"  # one file per language: <form>_<lang>.json
    INLINE = "inline"  # one file, text attributes are {lang: text} maps


DEFAULT_SUBMISSION_STATUS = SubmissionStatus.PENDING
