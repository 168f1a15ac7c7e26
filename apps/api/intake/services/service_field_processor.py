"""Service-specific enrichment of widget service requests.

Each service type registers an enricher that copies and shapes its own
fields from the sanitized input into the stored record. Service types
without an enricher are stored unchanged.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from intake.db.enums import ServiceType
from intake.services.sanitization_service import sanitize_text, sanitize_textarea
from intake.utils.normalization import as_text, is_empty

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Enricher = Callable[[Record, Mapping[str, Any]], Record]

MAX_MEDICATIONS = 3
MEDICATION_KINDS = ("augentropfen", "augensalbe", "tabletten", "sonstiges")
DEFAULT_MEDICATION_KIND = "sonstiges"
DELIVERY_OPTIONS = ("praxis", "post")
OPTICAL_FIELDS = ("re_sph", "re_cyl", "re_ach", "li_sph", "li_cyl", "li_ach", "hsa", "pd")


class EnrichmentError(ValueError):
    """The request passed validation but cannot be turned into a record."""


_ENRICHERS: dict[str, Enricher] = {}


def _passthrough(record: Record, data: Mapping[str, Any]) -> Record:
    return record


def register(service_type: str | ServiceType) -> Callable[[Enricher], Enricher]:
    key = service_type.value if isinstance(service_type, ServiceType) else service_type

    def decorator(func: Enricher) -> Enricher:
        _ENRICHERS[key] = func
        return func

    return decorator


def get_enricher(service_type: str) -> Enricher:
    return _ENRICHERS.get(service_type, _passthrough)


def process(service_type: str, record: Record, data: Mapping[str, Any]) -> Record:
    """Apply the enricher registered for ``service_type`` to ``record``."""
    return get_enricher(service_type)(dict(record), data)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _copy_text(record: Record, data: Mapping[str, Any], keys: tuple[str, ...]) -> None:
    for key in keys:
        record[key] = sanitize_text(data.get(key, ""))


@register(ServiceType.REZEPT)
def enrich_rezept(record: Record, data: Mapping[str, Any]) -> Record:
    names = [sanitize_text(name) for name in _as_list(data.get("medikamente"))]
    kinds = [sanitize_text(kind) for kind in _as_list(data.get("medikament_art"))]

    medications: list[str] = []
    medication_kinds: list[str] = []
    for index, name in enumerate(names):
        if is_empty(name):
            continue
        kind = kinds[index] if index < len(kinds) else ""
        medications.append(name)
        medication_kinds.append(kind if kind in MEDICATION_KINDS else DEFAULT_MEDICATION_KIND)

    if not medications:
        raise EnrichmentError("Bitte geben Sie mindestens ein Medikament an.")

    record["medikamente"] = medications[:MAX_MEDICATIONS]
    record["medikament_arten"] = medication_kinds[:MAX_MEDICATIONS]

    if as_text(record.get("versicherung")).lower() == "privat":
        delivery = as_text(data.get("rezept_lieferung"))
        record["rezept_lieferung"] = delivery if delivery in DELIVERY_OPTIONS else "praxis"
        if record["rezept_lieferung"] == "post":
            address = {
                "strasse": sanitize_text(data.get("versand_strasse", "")),
                "plz": sanitize_text(data.get("versand_plz", "")),
                "ort": sanitize_text(data.get("versand_ort", "")),
            }
            if any(is_empty(value) for value in address.values()):
                raise EnrichmentError("Bitte Versandadresse angeben.")
            record["versandadresse"] = address
    return record


@register(ServiceType.UEBERWEISUNG)
def enrich_ueberweisung(record: Record, data: Mapping[str, Any]) -> Record:
    _copy_text(record, data, ("fachrichtung", "arzt_name"))
    record["diagnose"] = sanitize_textarea(data.get("diagnose", ""))
    return record


@register(ServiceType.BRILLENVERORDNUNG)
def enrich_brillenverordnung(record: Record, data: Mapping[str, Any]) -> Record:
    _copy_text(record, data, ("brille_art", "brille_seit"))
    record["brille_probleme"] = sanitize_textarea(data.get("brille_probleme", ""))
    for name in OPTICAL_FIELDS:
        key = f"brille_{name}"
        if key in data:
            record[key] = sanitize_text(data[key])
    return record


@register(ServiceType.DOKUMENT)
def enrich_dokument(record: Record, data: Mapping[str, Any]) -> Record:
    record["dokument_beschreibung"] = sanitize_textarea(data.get("dokument_beschreibung", ""))
    return record


@register(ServiceType.TERMIN)
def enrich_termin(record: Record, data: Mapping[str, Any]) -> Record:
    _copy_text(record, data, ("termin_grund", "termin_wunschtermin"))
    urgency = sanitize_text(data.get("termin_dringlichkeit", ""))
    record["termin_dringlichkeit"] = urgency or "normal"
    return record


@register(ServiceType.TERMINABSAGE)
def enrich_terminabsage(record: Record, data: Mapping[str, Any]) -> Record:
    _copy_text(record, data, ("termin_datum", "termin_absage_grund"))
    return record
