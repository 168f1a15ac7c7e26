"""Per-deployment form configuration layered on top of the shipped schema.

The effective field map for (form, language, scope) is built from:

1. the shipped fields of the localized form definition
2. sparse override deltas (label, enabled, required, order) for shipped fields
3. custom fields added by the deployment (ids carry the ``custom_`` prefix)
4. info-text overrides for any field

Only deltas are persisted, so resetting a form is a single delete. Every
write clears the whole overlay cache.
"""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from intake.schemas.forms import (
    CUSTOM_FIELD_PREFIX,
    OVERRIDABLE_KEYS,
    EffectiveFieldMap,
    FormField,
    FormSection,
    form_field_adapter,
)
from intake.services.config_store import ConfigStore
from intake.services.form_definition_service import FormDefinitionStore, sort_by_order
from intake.services.locale_service import InlineTranslationSchemaSource
from intake.services.sanitization_service import sanitize_text
from intake.utils.normalization import normalize_key

logger = logging.getLogger(__name__)

OVERRIDES_NAMESPACE = "form_overrides"
CUSTOM_FIELDS_NAMESPACE = "form_custom_fields"
INFO_NAMESPACE = "form_info"
GLOBAL_SCOPE = "global"
CUSTOM_SECTION = "custom"


def config_key(namespace: str, form_id: str, scope: str | None) -> str:
    return f"{namespace}:{form_id}:{scope or GLOBAL_SCOPE}"


def ensure_custom_prefix(field_id: str) -> str:
    field_id = normalize_key(field_id)
    if not field_id.startswith(CUSTOM_FIELD_PREFIX):
        field_id = f"{CUSTOM_FIELD_PREFIX}{field_id}"
    return field_id


def _coerce_override(key: str, value: Any) -> Any:
    if key in ("enabled", "required"):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if key == "order":
        return int(value)
    return sanitize_text(value)


def diff_field(default: FormField, submitted: dict[str, Any]) -> dict[str, Any]:
    """Override keys in ``submitted`` whose value differs from ``default``."""
    changes: dict[str, Any] = {}
    for key in OVERRIDABLE_KEYS:
        if key not in submitted or submitted[key] is None:
            continue
        try:
            value = _coerce_override(key, submitted[key])
        except (TypeError, ValueError):
            continue
        if value != getattr(default, key):
            changes[key] = value
    return changes


def apply_override(field: FormField, changes: dict[str, Any]) -> FormField:
    update = {}
    for key in OVERRIDABLE_KEYS:
        if key in changes:
            try:
                update[key] = _coerce_override(key, changes[key])
            except (TypeError, ValueError):
                continue
    return field.model_copy(update=update) if update else field


def _next_order(defaults: Iterable[FormField], custom_entries: list[dict[str, Any]]) -> int:
    orders = [field.order for field in defaults]
    for entry in custom_entries:
        try:
            orders.append(int(entry.get("order", 0)))
        except (TypeError, ValueError):
            continue
    return max(orders, default=0) + 1


class FormConfigService:
    """Effective field maps plus the admin write operations that shape them."""

    def __init__(self, definitions: FormDefinitionStore, store: ConfigStore):
        self.definitions = definitions
        self.store = store
        self._cache: dict[tuple[str, str, str], EffectiveFieldMap] = {}

    @property
    def default_language(self) -> str:
        return self.definitions.default_language

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_effective_fields(
        self, form_id: str, locale: str | None = None, scope: str | None = None
    ) -> EffectiveFieldMap:
        """Merged field map keyed by field id; empty when the form is unavailable."""
        lang = self.definitions.resolver.normalize(locale)
        cache_key = (form_id, lang, scope or GLOBAL_SCOPE)
        if cache_key in self._cache:
            return self._cache[cache_key]

        definition = self.definitions.localize(form_id, lang)
        if definition is None or not definition.fields:
            return {}

        fields: EffectiveFieldMap = {field.id: field for field in definition.fields}

        overrides = self._load_mapping(config_key(OVERRIDES_NAMESPACE, form_id, scope))
        for field_id, changes in overrides.items():
            # Overrides never create fields
            if field_id in fields and isinstance(changes, dict):
                fields[field_id] = apply_override(fields[field_id], changes)

        for custom in self.get_custom_fields(form_id, scope, locale=lang):
            fields[custom.id] = custom

        info_texts = self._load_mapping(config_key(INFO_NAMESPACE, form_id, scope))
        for field_id, info in info_texts.items():
            if field_id in fields:
                fields[field_id] = fields[field_id].model_copy(update={"info": str(info)})

        self._cache[cache_key] = fields
        return fields

    def get_custom_fields(
        self, form_id: str, scope: str | None = None, *, locale: str | None = None
    ) -> list[FormField]:
        """Stored custom fields, validated and sorted by order; invalid entries are skipped."""
        lang = self.definitions.resolver.normalize(locale)
        projector = InlineTranslationSchemaSource(self.default_language)
        raw = self.store.get(config_key(CUSTOM_FIELDS_NAMESPACE, form_id, scope), [])
        if not isinstance(raw, list):
            return []
        fields: list[FormField] = []
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            try:
                field = form_field_adapter.validate_python(
                    {**projector.project_field(entry, lang), "is_custom": True}
                )
            except ValidationError:
                logger.warning(
                    "Skipping invalid custom field",
                    extra={"form_id": form_id, "field_id": str(entry.get("id"))[:100]},
                )
                continue
            fields.append(field)
        return sort_by_order(fields)

    def get_field(
        self, form_id: str, field_id: str, locale: str | None = None, scope: str | None = None
    ) -> FormField | None:
        return self.get_effective_fields(form_id, locale, scope).get(field_id)

    def is_field_enabled(self, form_id: str, field_id: str, scope: str | None = None) -> bool:
        field = self.get_field(form_id, field_id, scope=scope)
        return field is not None and field.enabled

    def is_field_required(self, form_id: str, field_id: str, scope: str | None = None) -> bool:
        field = self.get_field(form_id, field_id, scope=scope)
        return field is not None and field.required

    def get_field_label(
        self, form_id: str, field_id: str, locale: str | None = None, scope: str | None = None
    ) -> str:
        field = self.get_field(form_id, field_id, locale, scope)
        if field is None:
            return field_id
        return str(field.label) or field_id

    def get_fields_by_section(
        self, form_id: str, section_id: str, locale: str | None = None, scope: str | None = None
    ) -> list[FormField]:
        fields = self.get_effective_fields(form_id, locale, scope).values()
        return sort_by_order([f for f in fields if f.section == section_id and f.enabled])

    def get_sections(self, form_id: str, locale: str | None = None) -> list[FormSection]:
        definition = self.definitions.localize(form_id, locale)
        if definition is None:
            return []
        return list(definition.sections)

    def get_overrides(self, form_id: str, scope: str | None = None) -> dict[str, dict[str, Any]]:
        return self._load_mapping(config_key(OVERRIDES_NAMESPACE, form_id, scope))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _defaults(self, form_id: str) -> dict[str, FormField]:
        definition = self.definitions.localize(form_id, self.default_language)
        if definition is None:
            raise ValueError("Form not found")
        return {field.id: field for field in definition.fields}

    def save_overrides(
        self,
        form_id: str,
        submitted_fields: dict[str, dict[str, Any]],
        scope: str | None = None,
    ) -> dict[str, dict[str, Any]]:
        """Persist the delta between ``submitted_fields`` and the shipped defaults."""
        defaults = self._defaults(form_id)
        delta: dict[str, dict[str, Any]] = {}
        for field_id, submitted in submitted_fields.items():
            # Custom fields are edited through add_custom_field
            if field_id not in defaults or not isinstance(submitted, dict):
                continue
            changes = diff_field(defaults[field_id], submitted)
            if changes:
                delta[field_id] = changes

        self.store.set(config_key(OVERRIDES_NAMESPACE, form_id, scope), delta)
        self.clear_cache()
        logger.info(
            "Form overrides saved",
            extra={"form_id": form_id, "scope": scope or GLOBAL_SCOPE, "field_count": len(delta)},
        )
        return delta

    def save_info_overrides(
        self, form_id: str, info_texts: dict[str, Any], scope: str | None = None
    ) -> dict[str, str]:
        cleaned = {
            normalize_key(field_id): sanitize_text(text)
            for field_id, text in info_texts.items()
            if normalize_key(field_id)
        }
        self.store.set(config_key(INFO_NAMESPACE, form_id, scope), cleaned)
        self.clear_cache()
        return cleaned

    def add_custom_field(
        self,
        form_id: str,
        field_id: str,
        field_data: dict[str, Any],
        scope: str | None = None,
    ) -> str:
        """Create or replace a custom field; returns the prefixed id."""
        field_id = ensure_custom_prefix(field_id)
        if field_id == CUSTOM_FIELD_PREFIX:
            raise ValueError("Custom field id is required")
        defaults = self._defaults(form_id)

        key = config_key(CUSTOM_FIELDS_NAMESPACE, form_id, scope)
        existing = self.store.get(key, [])
        if not isinstance(existing, list):
            existing = []
        existing = [cf for cf in existing if isinstance(cf, dict)]
        previous = next((cf for cf in existing if cf.get("id") == field_id), None)
        if previous is not None and "order" in previous:
            order = previous["order"]
        else:
            order = _next_order(defaults.values(), existing)

        entry: dict[str, Any] = {
            "enabled": True,
            "required": False,
            "type": "text",
            "section": CUSTOM_SECTION,
            "order": order,
            **field_data,
            "id": field_id,
            "is_custom": True,
        }
        try:
            form_field_adapter.validate_python(entry)
        except ValidationError as exc:
            raise ValueError(f"Invalid custom field: {exc.errors()[0]['msg']}") from exc

        if previous is not None:
            updated = [entry if cf.get("id") == field_id else cf for cf in existing]
        else:
            updated = [*existing, entry]
        self.store.set(key, updated)
        self.clear_cache()
        logger.info("Custom field saved", extra={"form_id": form_id, "field_id": field_id})
        return field_id

    def delete_custom_field(self, form_id: str, field_id: str, scope: str | None = None) -> bool:
        """Remove a custom field; ids without the custom prefix are never touched."""
        if not field_id.startswith(CUSTOM_FIELD_PREFIX):
            return False
        key = config_key(CUSTOM_FIELDS_NAMESPACE, form_id, scope)
        existing = self.store.get(key, [])
        if not isinstance(existing, list):
            return False
        remaining = [
            cf for cf in existing if not (isinstance(cf, dict) and cf.get("id") == field_id)
        ]
        if len(remaining) == len(existing):
            return False
        self.store.set(key, remaining)
        self.clear_cache()
        return True

    def reset_to_defaults(self, form_id: str, scope: str | None = None) -> None:
        """Drop overrides and info texts; custom fields are kept."""
        self.store.delete(config_key(OVERRIDES_NAMESPACE, form_id, scope))
        self.store.delete(config_key(INFO_NAMESPACE, form_id, scope))
        self.clear_cache()

    def _load_mapping(self, key: str) -> dict[str, Any]:
        value = self.store.get(key, {})
        return value if isinstance(value, dict) else {}
