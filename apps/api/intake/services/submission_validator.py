"""Validation of submitted intake data.

Two entry points share the same primitives:

- ``validate_anamnesis``: required-ness comes from the effective field map of
  a schema-driven form (or a built-in key set when no map is given)
- ``validate_service_request``: fixed rules for widget service requests

Validators never raise for malformed input; every problem becomes an entry
in the ``field id -> message`` error map of the returned ``ValidationResult``.
"""

import re
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from email_validator import EmailNotValidError, validate_email

from intake.db.enums import ServiceType
from intake.schemas.forms import EffectiveFieldMap
from intake.schemas.submissions import ValidationResult
from intake.services import condition_service
from intake.utils.normalization import as_text, is_empty, normalize_phone

DOB_FIELD = "geburtsdatum"
DOB_PARTS = ("geburtsdatum_tag", "geburtsdatum_monat", "geburtsdatum_jahr")
CONSENT_FIELD = "datenschutz_einwilligung"
CONSENT_KEYS = ("dsgvo_consent", "datenschutz_einwilligung", "datenschutz")
INSURANCE_KEYS = ("versicherung", "kasse")
MAX_MEDICATIONS = 3
MIN_BIRTH_YEAR = 1900
PHONE_MIN_LENGTH = 6
PHONE_MAX_LENGTH = 20

# Used when a schema-driven form is validated without a field map
STANDARD_REQUIRED = {
    "vorname": "Vorname",
    "nachname": "Nachname",
    "strasse": "Straße + Hausnummer",
    "plz": "Postleitzahl",
    "ort": "Ort",
    "email": "E-Mail",
    "telefon": "Telefonnummer",
    "kasse": "Versicherungsart",
}

SERVICE_REQUIRED = {
    "vorname": "Vorname",
    "nachname": "Nachname",
    "telefon": "Telefonnummer",
    "email": "E-Mail",
}

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_LOCAL_DATE_RE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")
_PLZ_RE = re.compile(r"^[0-9]{5}$")

MSG_REQUIRED = "{label} ist ein Pflichtfeld."
MSG_CONSENT = "Bitte stimmen Sie der Datenschutzerklärung zu."
MSG_DOB_INCOMPLETE = "Bitte geben Sie Ihr Geburtsdatum vollständig ein."
MSG_DOB_INVALID = "Bitte geben Sie ein gültiges Geburtsdatum ein."
MSG_DOB_NOT_EXISTING = "Das eingegebene Datum existiert nicht."
MSG_DOB_FUTURE = "Das Geburtsdatum darf nicht in der Zukunft liegen."
MSG_DOB_FORMAT = "Ungültiges Datumsformat."
MSG_DOB_REQUIRED = "Geburtsdatum ist ein Pflichtfeld."
MSG_PHONE = "Bitte geben Sie eine gültige Telefonnummer ein."
MSG_EMAIL = "Bitte geben Sie eine gültige E-Mail-Adresse ein."
MSG_PLZ = "Bitte geben Sie eine gültige Postleitzahl ein."
MSG_SIGNATURE = "Bitte unterschreiben Sie den Fragebogen."
MSG_SERVICE_TYPE = "Ungültiger Service-Typ."
MSG_INSURANCE = "Versicherung ist ein Pflichtfeld."

Errors = dict[str, str]
ServiceValidator = Callable[[Mapping[str, Any], Errors], None]


# ============================================================================
# Shared rules
# ============================================================================

def _to_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def validate_date_parts(day: Any, month: Any, year: Any, *, today: date | None = None) -> str | None:
    """Error message for a day/month/year triple, or None when it is a valid past date."""
    today = today or date.today()
    d, m, y = _to_int(day), _to_int(month), _to_int(year)
    if d is None or m is None or y is None:
        return MSG_DOB_INVALID
    if not (1 <= d <= 31 and 1 <= m <= 12 and MIN_BIRTH_YEAR <= y <= today.year):
        return MSG_DOB_INVALID
    try:
        birth = date(y, m, d)
    except ValueError:
        return MSG_DOB_NOT_EXISTING
    if birth > today:
        return MSG_DOB_FUTURE
    return None


def validate_date_of_birth(data: Mapping[str, Any], *, today: date | None = None) -> str | None:
    """
    Check the date of birth in either of its submitted shapes.

    Separate ``geburtsdatum_tag/_monat/_jahr`` inputs take precedence; if any
    of them is present all three must be filled. Otherwise ``geburtsdatum``
    is parsed as ``YYYY-MM-DD`` or ``DD.MM.YYYY``. Returns None when the
    date is valid or not submitted at all.
    """
    if any(part in data for part in DOB_PARTS):
        day, month, year = (as_text(data.get(part)) for part in DOB_PARTS)
        if is_empty(day) or is_empty(month) or is_empty(year):
            return MSG_DOB_INCOMPLETE
        return validate_date_parts(day, month, year, today=today)

    if DOB_FIELD not in data:
        return None
    value = as_text(data.get(DOB_FIELD))
    if is_empty(value):
        return MSG_DOB_REQUIRED
    if match := _ISO_DATE_RE.match(value):
        return validate_date_parts(match.group(3), match.group(2), match.group(1), today=today)
    if match := _LOCAL_DATE_RE.match(value):
        return validate_date_parts(match.group(1), match.group(2), match.group(3), today=today)
    return MSG_DOB_FORMAT


def validate_phone(value: Any) -> str | None:
    """Length check on digits plus leading ``+``; empty input is not an error."""
    if is_empty(value):
        return None
    stripped = normalize_phone(value)
    if not PHONE_MIN_LENGTH <= len(stripped) <= PHONE_MAX_LENGTH:
        return MSG_PHONE
    return None


def is_valid_email(value: Any) -> bool:
    try:
        validate_email(as_text(value), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _check_contact_rules(data: Mapping[str, Any], errors: Errors, *, today: date | None) -> None:
    dob_error = validate_date_of_birth(data, today=today)
    if dob_error:
        errors[DOB_FIELD] = dob_error

    if not is_empty(data.get("email")) and not is_valid_email(data.get("email")):
        errors["email"] = MSG_EMAIL

    phone_error = validate_phone(data.get("telefon"))
    if phone_error:
        errors["telefon"] = phone_error


def _has_date_of_birth(data: Mapping[str, Any]) -> bool:
    return any(part in data for part in DOB_PARTS) or DOB_FIELD in data


# ============================================================================
# Schema-driven forms
# ============================================================================

def _check_field_definitions(
    data: Mapping[str, Any], effective_fields: EffectiveFieldMap, errors: Errors
) -> None:
    for field_id, field in effective_fields.items():
        if not (field.required and field.enabled):
            continue
        if not condition_service.is_active(field, data):
            continue
        # Checked by the dedicated signature and date-of-birth rules
        if field.type in ("signature", "button"):
            continue
        if field.type == "date" and field_id == DOB_FIELD:
            if not _has_date_of_birth(data):
                errors[DOB_FIELD] = MSG_DOB_REQUIRED
            continue

        check_key = f"{field_id}_file_id" if field.type == "file" else field_id
        if is_empty(data.get(check_key)):
            label = as_text(field.label) or field_id
            errors[field_id] = MSG_REQUIRED.format(label=label)


def validate_anamnesis(
    data: Mapping[str, Any],
    effective_fields: EffectiveFieldMap | None = None,
    *,
    today: date | None = None,
) -> ValidationResult:
    errors: Errors = {}

    if effective_fields:
        _check_field_definitions(data, effective_fields, errors)
    else:
        for key, label in STANDARD_REQUIRED.items():
            if is_empty(data.get(key)):
                errors[key] = MSG_REQUIRED.format(label=label)

    _check_contact_rules(data, errors, today=today)

    plz = as_text(data.get("plz"))
    if plz and not _PLZ_RE.match(plz):
        errors["plz"] = MSG_PLZ

    if as_text(data.get("kasse")).lower() == "privat" and is_empty(data.get("signature_data")):
        errors["signature_data"] = MSG_SIGNATURE

    if is_empty(data.get(CONSENT_FIELD)):
        errors[CONSENT_FIELD] = MSG_CONSENT

    return ValidationResult.from_errors(errors)


# ============================================================================
# Widget service requests
# ============================================================================

def _medication_names(data: Mapping[str, Any]) -> list[str]:
    raw = data.get("medikamente")
    if not isinstance(raw, (list, tuple)):
        return []
    return [as_text(name) for name in raw if not is_empty(name)]


def _insurance(data: Mapping[str, Any]) -> str:
    for key in INSURANCE_KEYS:
        if not is_empty(data.get(key)):
            return as_text(data.get(key)).lower()
    return ""


def _validate_rezept(data: Mapping[str, Any], errors: Errors) -> None:
    names = _medication_names(data)
    if not names:
        errors["medikamente"] = "Bitte geben Sie mindestens ein Medikament an."
    elif len(names) > MAX_MEDICATIONS:
        errors["medikamente"] = f"Maximal {MAX_MEDICATIONS} Medikamente möglich."

    if _insurance(data) == "privat" and as_text(data.get("rezept_lieferung")) == "post":
        if any(is_empty(data.get(k)) for k in ("versand_strasse", "versand_plz", "versand_ort")):
            errors["versand_strasse"] = "Bitte Versandadresse angeben."


def _validate_ueberweisung(data: Mapping[str, Any], errors: Errors) -> None:
    if is_empty(data.get("fachrichtung")):
        errors["fachrichtung"] = "Bitte geben Sie die Fachrichtung an."


def _validate_termin(data: Mapping[str, Any], errors: Errors) -> None:
    if is_empty(data.get("termin_grund")):
        errors["termin_grund"] = "Bitte geben Sie einen Grund für den Termin an."


SERVICE_VALIDATORS: dict[str, ServiceValidator] = {
    ServiceType.REZEPT.value: _validate_rezept,
    ServiceType.UEBERWEISUNG.value: _validate_ueberweisung,
    ServiceType.TERMIN.value: _validate_termin,
}


def validate_service_request(
    data: Mapping[str, Any], *, today: date | None = None
) -> ValidationResult:
    errors: Errors = {}

    if all(is_empty(data.get(key)) for key in CONSENT_KEYS):
        errors["dsgvo_consent"] = MSG_CONSENT

    service_type = as_text(data.get("service_type"))
    if not ServiceType.has_value(service_type):
        errors["service_type"] = MSG_SERVICE_TYPE

    for key, label in SERVICE_REQUIRED.items():
        if is_empty(data.get(key)):
            errors[key] = MSG_REQUIRED.format(label=label)

    if not _insurance(data):
        errors["versicherung"] = MSG_INSURANCE

    _check_contact_rules(data, errors, today=today)

    # Service rules only run for otherwise complete requests
    if not errors:
        validator = SERVICE_VALIDATORS.get(service_type)
        if validator is not None:
            validator(data, errors)

    return ValidationResult.from_errors(errors)
