"""Loading and localizing shipped form schemas.

Schema problems (missing file, broken JSON, invalid field definitions) are
logged and reported as ``None`` so callers can answer "form not found"
instead of failing the request.
"""

import json
import logging
import threading
from typing import Any

from pydantic import ValidationError

from intake.schemas.forms import FormDefinition, FormField, FormSummary
from intake.services.locale_service import LocaleResolver, ResolutionPlan

logger = logging.getLogger(__name__)


def _read_json(plan: ResolutionPlan) -> dict[str, Any] | None:
    try:
        with plan.path.open(encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(
            "Form schema could not be read",
            extra={"form_id": plan.form_id, "path": str(plan.path), "error": str(exc)},
        )
        return None
    if not isinstance(data, dict):
        logger.warning("Form schema is not an object", extra={"form_id": plan.form_id})
        return None
    return data


def sort_by_order(items: list[Any]) -> list[Any]:
    """Stable sort by ``order`` (equal orders keep file order)."""
    return sorted(items, key=lambda item: item.order)


class FormDefinitionStore:
    """Process-wide cache of parsed, localized form definitions.

    Shipped schema files are immutable at runtime, so entries live until
    ``clear_cache`` is called.
    """

    def __init__(self, resolver: LocaleResolver | None = None):
        self.resolver = resolver or LocaleResolver()
        self._raw_cache: dict[tuple[str, str], FormDefinition] = {}
        self._localized_cache: dict[tuple[str, str], FormDefinition] = {}
        self._lock = threading.Lock()

    @property
    def default_language(self) -> str:
        return self.resolver.default_language

    def _plan(self, form_id: str, locale: str | None) -> ResolutionPlan | None:
        plan = self.resolver.resolve(form_id, locale)
        if plan is None:
            logger.info("Form schema not found", extra={"form_id": form_id})
        return plan

    def _parse(self, plan: ResolutionPlan, data: dict[str, Any]) -> FormDefinition | None:
        data.setdefault("id", plan.form_id)
        try:
            return FormDefinition.model_validate(data)
        except ValidationError as exc:
            logger.warning(
                "Form schema failed validation",
                extra={"form_id": plan.form_id, "error_count": exc.error_count()},
            )
            return None

    def load(self, form_id: str, locale: str | None = None) -> FormDefinition | None:
        """Raw definition as stored (inline text maps are left untouched)."""
        plan = self._plan(form_id, locale)
        if plan is None:
            return None
        key = (form_id, plan.language)
        with self._lock:
            cached = self._raw_cache.get(key)
        if cached is not None:
            return cached

        data = _read_json(plan)
        if data is None:
            return None
        definition = self._parse(plan, data)
        if definition is not None:
            with self._lock:
                self._raw_cache[key] = definition
        return definition

    def localize(self, form_id: str, locale: str | None = None) -> FormDefinition | None:
        """Single-language definition with sections and fields sorted by order."""
        plan = self._plan(form_id, locale)
        if plan is None:
            return None
        key = (form_id, plan.language)
        with self._lock:
            cached = self._localized_cache.get(key)
        if cached is not None:
            return cached

        data = _read_json(plan)
        if data is None:
            return None
        definition = self._parse(plan, plan.source.project(data, plan.language))
        if definition is None:
            return None
        definition = definition.model_copy(
            update={
                "sections": sort_by_order(definition.sections),
                "fields": sort_by_order(definition.fields),
            }
        )
        with self._lock:
            self._localized_cache[key] = definition
        return definition

    def clear_cache(self) -> None:
        with self._lock:
            self._raw_cache.clear()
            self._localized_cache.clear()

    def get_field(self, form_id: str, field_id: str, locale: str | None = None) -> FormField | None:
        definition = self.localize(form_id, locale)
        if definition is None:
            return None
        for field in definition.fields:
            if field.id == field_id:
                return field
        return None

    def get_section_fields(
        self, form_id: str, section_id: str, locale: str | None = None
    ) -> list[FormField]:
        definition = self.localize(form_id, locale)
        if definition is None:
            return []
        return [f for f in definition.fields if f.section == section_id and f.enabled]

    def list_forms(self, locale: str | None = None) -> list[FormSummary]:
        summaries = []
        for form_id, origin in self.resolver.form_ids():
            plan = self.resolver.resolve(form_id, locale)
            definition = self.localize(form_id, locale)
            if plan is None or definition is None:
                continue
            summaries.append(
                FormSummary(
                    id=form_id,
                    name=str(definition.name or form_id),
                    description=str(definition.description or ""),
                    version=definition.version,
                    format=plan.format.value,
                    languages=self.resolver.available_languages(form_id),
                    source=origin,
                )
            )
        return summaries
