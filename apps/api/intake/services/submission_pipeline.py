"""Submission pipeline: abuse gates, validation, sanitization, storage, follow-ups.

Every failure mode ends in a ``SubmissionResult``; nothing raised by the
storage layer or the notification sender reaches the submitter. Exception
details and patient data only ever go to the internal log.
"""

import json
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from intake.core.config import settings
from intake.core.structured_logging import build_log_context
from intake.db.enums import AuditEntityType, AuditEventType
from intake.schemas.forms import EffectiveFieldMap
from intake.schemas.submissions import (
    LocationContext,
    ProcessedSubmission,
    SubmissionResult,
)
from intake.services import service_field_processor
from intake.services.anti_abuse_service import AntiAbuseGuard, GuardVerdict
from intake.services.audit_service import AuditLogger
from intake.services.notification_service import (
    NotificationSender,
    send_submission_notification,
)
from intake.services.sanitization_service import (
    SanitizationPolicy,
    sanitize_email,
    sanitize_text,
    sanitize_textarea,
)
from intake.services.service_field_processor import EnrichmentError
from intake.services.submission_repository import (
    DEFAULT_MIME_TYPE,
    FileReference,
    FileRepository,
    SubmissionRepository,
    is_valid_file_id,
)
from intake.services.submission_validator import (
    DOB_PARTS,
    validate_anamnesis,
    validate_service_request,
)
from intake.utils.normalization import as_text, is_empty, normalize_key

logger = logging.getLogger(__name__)

ANAMNESIS_SERVICE_KEY = "anamnese"
ANAMNESIS_REQUEST_TYPE = "form_anamnese"
WIDGET_REQUEST_PREFIX = "widget_"

MSG_VALIDATION_FAILED = "Validierung fehlgeschlagen."
MSG_TECHNICAL_ERROR = (
    "Ein technischer Fehler ist aufgetreten. Bitte kontaktieren Sie die Praxis telefonisch."
)
MSG_SAVE_FAILED = "Fehler beim Speichern. Bitte versuchen Sie es erneut."
MSG_ANAMNESIS_SUCCESS = "Vielen Dank! Ihr Anamnesebogen wurde erfolgreich übermittelt."
MSG_REQUEST_SUCCESS = "Ihre Anfrage wurde erfolgreich übermittelt."

_FILE_ID_KEY_RE = re.compile(r"^(.+)_file_id$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_LOCAL_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def merge_date_of_birth(data: dict[str, Any]) -> dict[str, Any]:
    """Collapse the date of birth into ``geburtsdatum`` (DD.MM.YYYY) plus ``geburtsdatum_iso``."""
    merged = dict(data)
    day = month = year = None
    if all(not is_empty(merged.get(part)) for part in DOB_PARTS):
        day, month, year = (as_text(merged.get(part)) for part in DOB_PARTS)
    elif not is_empty(merged.get("geburtsdatum")):
        value = as_text(merged["geburtsdatum"])
        if match := _ISO_RE.match(value):
            year, month, day = match.groups()
        elif match := _LOCAL_RE.match(value):
            day, month, year = match.groups()

    for part in DOB_PARTS:
        merged.pop(part, None)
    if day is None:
        return merged
    try:
        d, m, y = int(day), int(month), int(year)
    except ValueError:
        return merged
    merged["geburtsdatum"] = f"{d:02d}.{m:02d}.{y}"
    merged["geburtsdatum_iso"] = f"{y}-{m:02d}-{d:02d}"
    return merged


def _load_manifest(raw: Any) -> Any:
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed uploaded_files manifest")
            return None
    return raw


def _file_from_entry(entry: Any, fallback_name: str) -> FileReference | None:
    if not isinstance(entry, Mapping):
        return None
    file_id = as_text(entry.get("file_id"))
    if not is_valid_file_id(file_id):
        return None
    name = entry.get("original_name") or entry.get("filename") or fallback_name
    try:
        size = int(entry.get("file_size") or 0)
    except (TypeError, ValueError):
        size = 0
    return FileReference(
        file_id=file_id,
        original_name=sanitize_text(name) or fallback_name,
        mime_type=sanitize_text(entry.get("mime_type")) or DEFAULT_MIME_TYPE,
        file_size=size,
    )


def collect_file_references(
    raw: Mapping[str, Any], sanitized: Mapping[str, Any]
) -> list[FileReference]:
    """File references from the ``uploaded_files`` manifest and ``<field>_file_id`` keys."""
    references: list[FileReference] = []
    manifest = _load_manifest(raw.get("uploaded_files"))
    if isinstance(manifest, list):
        entries = [(entry, "unnamed") for entry in manifest]
    elif isinstance(manifest, Mapping):
        entries = [(entry, f"upload_{normalize_key(key)}") for key, entry in manifest.items()]
    else:
        entries = []
    for entry, fallback in entries:
        reference = _file_from_entry(entry, fallback)
        if reference is not None:
            references.append(reference)

    for key, value in sanitized.items():
        match = _FILE_ID_KEY_RE.match(key)
        if not match or not is_valid_file_id(value):
            continue
        field_name = match.group(1)
        references.append(
            FileReference(
                file_id=value,
                original_name=as_text(sanitized.get(f"{field_name}_original_name"))
                or f"upload_{field_name}",
                mime_type=as_text(sanitized.get(f"{field_name}_mime_type")) or DEFAULT_MIME_TYPE,
            )
        )

    unique: dict[str, FileReference] = {}
    for reference in references:
        unique.setdefault(reference.file_id, reference)
    return list(unique.values())


class SubmissionPipeline:
    """Runs one submission from raw input to stored record."""

    def __init__(
        self,
        guard: AntiAbuseGuard,
        submissions: SubmissionRepository,
        files: FileRepository,
        audit: AuditLogger,
        notifier: NotificationSender | None = None,
        *,
        version: str | None = None,
    ):
        self.guard = guard
        self.submissions = submissions
        self.files = files
        self.audit = audit
        self.notifier = notifier
        self.version = version or settings.VERSION

    def process(
        self,
        raw: Mapping[str, Any],
        location: LocationContext,
        effective_fields: EffectiveFieldMap | None = None,
        *,
        client_ip: str | None = None,
        form_id: str | None = None,
    ) -> SubmissionResult:
        """Schema-driven when a field map is given, otherwise a widget service request."""
        if effective_fields:
            return self.process_anamnesis(
                raw, location, effective_fields, client_ip=client_ip, form_id=form_id
            )
        return self.process_service_request(raw, location, client_ip=client_ip)

    def _guard(self, raw: Mapping[str, Any], client_ip: str | None) -> SubmissionResult | None:
        try:
            outcome = self.guard.check(raw, client_ip)
        except Exception:
            logger.exception("Abuse checks could not be run")
            return SubmissionResult(success=False, message=MSG_TECHNICAL_ERROR)
        if outcome.verdict is GuardVerdict.ALLOWED:
            return None
        if outcome.verdict is GuardVerdict.HONEYPOT:
            return SubmissionResult(
                success=True, message=outcome.message, reference=outcome.reference
            )
        return SubmissionResult(
            success=False, message=outcome.message, retry_after=outcome.retry_after
        )

    # ------------------------------------------------------------------
    # Anamnesis forms
    # ------------------------------------------------------------------

    def process_anamnesis(
        self,
        raw: Mapping[str, Any],
        location: LocationContext,
        effective_fields: EffectiveFieldMap | None = None,
        *,
        client_ip: str | None = None,
        form_id: str | None = None,
    ) -> SubmissionResult:
        blocked = self._guard(raw, client_ip)
        if blocked is not None:
            return blocked

        validation = validate_anamnesis(raw, effective_fields)
        if not validation.valid:
            return SubmissionResult(
                success=False, message=MSG_VALIDATION_FAILED, errors=validation.errors
            )

        policy = SanitizationPolicy.for_fields(effective_fields)
        data = merge_date_of_birth(policy.sanitize(raw))
        data["_submitted_at"] = _now_iso()
        data["_form_version"] = self.version
        data["_location_id"] = location.location_id

        signature = None
        if as_text(data.get("kasse")).lower() == "privat" and data.get("signature_data"):
            signature = data.pop("signature_data")

        processed = ProcessedSubmission(
            data=data,
            location_id=location.location_id,
            service_key=ANAMNESIS_SERVICE_KEY,
            request_type=ANAMNESIS_REQUEST_TYPE,
            submitted_at=data["_submitted_at"],
            signature=signature,
        )
        log_context = build_log_context(
            form_id=form_id,
            location_id=location.location_id,
            service_type=ANAMNESIS_SERVICE_KEY,
        )
        return self._persist(
            processed,
            raw,
            location,
            log_context=log_context,
            audit_event=AuditEventType.SUBMISSION_CREATED,
            success_message=MSG_ANAMNESIS_SUCCESS,
        )

    # ------------------------------------------------------------------
    # Widget service requests
    # ------------------------------------------------------------------

    def process_service_request(
        self,
        raw: Mapping[str, Any],
        location: LocationContext,
        *,
        client_ip: str | None = None,
    ) -> SubmissionResult:
        blocked = self._guard(raw, client_ip)
        if blocked is not None:
            return blocked

        validation = validate_service_request(raw)
        if not validation.valid:
            first_error = next(iter(validation.errors.values()), MSG_VALIDATION_FAILED)
            return SubmissionResult(success=False, message=first_error, errors=validation.errors)

        service_type = normalize_key(raw.get("service_type", ""))
        sanitized = merge_date_of_birth(SanitizationPolicy().sanitize(raw))
        submitted_at = _now_iso()
        record: dict[str, Any] = {
            "service_type": service_type,
            "patient_status": sanitized.get("patient_status") or "bestandspatient",
            "vorname": sanitized.get("vorname", ""),
            "nachname": sanitized.get("nachname", ""),
            "geburtsdatum": sanitized.get("geburtsdatum", ""),
            "telefon": sanitized.get("telefon", ""),
            "email": sanitize_email(raw.get("email")),
            "versicherung": sanitized.get("versicherung") or sanitized.get("kasse", ""),
            "anmerkungen": sanitize_textarea(raw.get("anmerkungen", "")),
            "submitted_at": submitted_at,
        }
        try:
            record = service_field_processor.process(service_type, record, sanitized)
        except EnrichmentError as exc:
            return SubmissionResult(success=False, message=str(exc))

        files = collect_file_references(raw, {})
        if files:
            record["uploaded_files"] = [
                {"file_id": f.file_id, "original_name": f.original_name, "mime_type": f.mime_type}
                for f in files
            ]

        processed = ProcessedSubmission(
            data=record,
            location_id=location.location_id,
            service_key=service_type,
            request_type=f"{WIDGET_REQUEST_PREFIX}{service_type}",
            submitted_at=submitted_at,
        )
        log_context = build_log_context(
            location_id=location.location_id, service_type=service_type
        )
        return self._persist(
            processed,
            raw,
            location,
            log_context=log_context,
            audit_event=AuditEventType.SERVICE_REQUEST_SUBMITTED,
            success_message=MSG_REQUEST_SUCCESS,
            notify_service_type=service_type,
        )

    # ------------------------------------------------------------------
    # Storage and follow-ups
    # ------------------------------------------------------------------

    def _persist(
        self,
        processed: ProcessedSubmission,
        raw: Mapping[str, Any],
        location: LocationContext,
        *,
        log_context: dict[str, Any],
        audit_event: AuditEventType,
        success_message: str,
        notify_service_type: str | None = None,
    ) -> SubmissionResult:
        try:
            created = self.submissions.create(processed.data, processed.meta, processed.signature)
        except Exception:
            logger.exception("Submission could not be stored", extra=log_context)
            return SubmissionResult(success=False, message=MSG_TECHNICAL_ERROR)

        if not created.success:
            logger.error("Submission repository reported failure", extra=log_context)
            return SubmissionResult(success=False, message=MSG_SAVE_FAILED)

        log_context = {**log_context, "submission_id": str(created.id)}
        self._link_files(created.id, raw, processed.data, log_context)

        try:
            self.audit.log(
                audit_event.value,
                created.id,
                {"service": processed.service_key, "location": location.slug},
                entity_type=AuditEntityType.SUBMISSION.value,
            )
        except Exception:
            logger.exception("Audit event could not be written", extra=log_context)

        if notify_service_type is not None:
            send_submission_notification(
                self.notifier, created.reference, notify_service_type, location
            )

        logger.info("Submission stored", extra=log_context)
        return SubmissionResult(
            success=True,
            message=success_message,
            submission_id=created.hash,
            reference=created.reference,
        )

    def _link_files(
        self,
        submission_id: int,
        raw: Mapping[str, Any],
        data: Mapping[str, Any],
        log_context: dict[str, Any],
    ) -> None:
        for reference in collect_file_references(raw, data):
            try:
                self.files.create_reference(submission_id, reference)
            except Exception:
                logger.exception("File reference could not be linked", extra=log_context)
