"""Locale resolution for form schemas.

Forms ship in one of two layouts:

- multi-file: ``<form>_<lang>.json`` per language, text already localized
- inline: ``<form>.json`` whose text attributes are ``{lang: text}`` maps

Uploaded custom forms (``custom_<name>``) live in the custom forms directory
and always use the inline layout. ``LocaleResolver.resolve`` hides the
difference behind a ``ResolutionPlan`` whose ``source`` knows how to project
raw schema data into one language.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from intake.core.config import settings
from intake.db.enums import SchemaFormat
from intake.schemas.forms import CUSTOM_FIELD_PREFIX

logger = logging.getLogger(__name__)

_LANG_SUFFIX_RE = re.compile(r"_([a-z]{2})$")
_FORM_ID_RE = re.compile(r"^[a-z0-9_\-]+$")
_TEXT_KEYS = ("label", "placeholder", "info")


def normalize_locale(locale: str | None, supported: list[str], default: str) -> str:
    """Map ``de_DE``/``EN``/``None`` to a supported 2-letter code."""
    if not locale:
        return default
    code = locale.strip().lower().replace("-", "_")[:2]
    return code if code in supported else default


def localized_text(text: Any, lang: str, default: str = "de") -> str:
    """Project a ``{lang: text}`` map: requested, then default, then first value."""
    if text is None:
        return ""
    if not isinstance(text, dict):
        return str(text)
    if not text:
        return ""
    if text.get(lang):
        return str(text[lang])
    if text.get(default):
        return str(text[default])
    for value in text.values():
        if value:
            return str(value)
    return ""


class SchemaSource(ABC):
    """Turns raw schema JSON into single-language schema JSON."""

    format: SchemaFormat

    @abstractmethod
    def project(self, raw: dict[str, Any], lang: str) -> dict[str, Any]:
        raise NotImplementedError


class MultiFileSchemaSource(SchemaSource):
    format = SchemaFormat.MULTI_FILE

    def project(self, raw: dict[str, Any], lang: str) -> dict[str, Any]:
        return raw


class InlineTranslationSchemaSource(SchemaSource):
    format = SchemaFormat.INLINE

    def __init__(self, default_language: str):
        self.default_language = default_language

    def _text(self, value: Any, lang: str) -> Any:
        return localized_text(value, lang, self.default_language)

    def project_field(self, field: dict[str, Any], lang: str) -> dict[str, Any]:
        projected = dict(field)
        for key in _TEXT_KEYS:
            if key in projected and projected[key] is not None:
                projected[key] = self._text(projected[key], lang)
        if isinstance(projected.get("options"), list):
            projected["options"] = [
                {**option, "label": self._text(option.get("label", option.get("value")), lang)}
                if isinstance(option, dict)
                else option
                for option in projected["options"]
            ]
        return projected

    def project(self, raw: dict[str, Any], lang: str) -> dict[str, Any]:
        projected = dict(raw)
        projected["name"] = self._text(raw.get("name", raw.get("id", "")), lang)
        projected["description"] = self._text(raw.get("description", ""), lang)
        projected["sections"] = [
            {**section, "label": self._text(section.get("label", ""), lang)}
            for section in raw.get("sections", [])
            if isinstance(section, dict)
        ]
        projected["fields"] = [
            self.project_field(field, lang)
            for field in raw.get("fields", [])
            if isinstance(field, dict)
        ]
        return projected


@dataclass(frozen=True)
class ResolutionPlan:
    form_id: str
    language: str
    path: Path
    source: SchemaSource

    @property
    def format(self) -> SchemaFormat:
        return self.source.format


class LocaleResolver:
    """Resolve (form_id, locale) to the file and projection to use."""

    def __init__(
        self,
        forms_dir: Path | str | None = None,
        custom_forms_dir: Path | str | None = None,
        *,
        default_language: str | None = None,
        supported_languages: list[str] | None = None,
    ):
        self.forms_dir = Path(forms_dir) if forms_dir else settings.forms_path
        if custom_forms_dir:
            self.custom_forms_dir: Path | None = Path(custom_forms_dir)
        else:
            self.custom_forms_dir = settings.custom_forms_path
        self.default_language = default_language or settings.DEFAULT_LANGUAGE
        self.supported_languages = supported_languages or settings.supported_languages_list
        if self.default_language not in self.supported_languages:
            self.supported_languages = [self.default_language, *self.supported_languages]

    def normalize(self, locale: str | None) -> str:
        return normalize_locale(locale, self.supported_languages, self.default_language)

    @staticmethod
    def is_custom_form(form_id: str) -> bool:
        return form_id.startswith(CUSTOM_FIELD_PREFIX)

    def is_multi_file(self, form_id: str) -> bool:
        if self.is_custom_form(form_id):
            return False
        return self._multi_file_path(form_id, self.default_language).is_file()

    def _multi_file_path(self, form_id: str, lang: str) -> Path:
        return self.forms_dir / f"{form_id}_{lang}.json"

    def _inline_path(self, form_id: str) -> Path | None:
        if self.is_custom_form(form_id):
            if self.custom_forms_dir is None:
                return None
            return self.custom_forms_dir / f"{form_id[len(CUSTOM_FIELD_PREFIX):]}.json"
        return self.forms_dir / f"{form_id}.json"

    def resolve(self, form_id: str, locale: str | None = None) -> ResolutionPlan | None:
        """Return the plan for loading ``form_id``, or None if no schema file exists."""
        if not _FORM_ID_RE.match(form_id):
            logger.warning("Rejected malformed form id", extra={"form_id": form_id[:100]})
            return None
        lang = self.normalize(locale)

        if self.is_multi_file(form_id):
            path = self._multi_file_path(form_id, lang)
            if not path.is_file():
                path = self._multi_file_path(form_id, self.default_language)
                lang = self.default_language
            return ResolutionPlan(form_id, lang, path, MultiFileSchemaSource())

        path = self._inline_path(form_id)
        if path is None or not path.is_file():
            return None
        return ResolutionPlan(
            form_id, lang, path, InlineTranslationSchemaSource(self.default_language)
        )

    def available_languages(self, form_id: str) -> list[str]:
        if not self.is_multi_file(form_id):
            return [self.default_language]
        languages = []
        for path in sorted(self.forms_dir.glob(f"{form_id}_*.json")):
            match = _LANG_SUFFIX_RE.search(path.stem)
            if match and path.stem == f"{form_id}_{match.group(1)}":
                languages.append(match.group(1))
        return languages or [self.default_language]

    def form_ids(self) -> list[tuple[str, str]]:
        """All resolvable form ids with their origin (``plugin`` or ``custom``)."""
        found: dict[str, str] = {}
        if self.forms_dir.is_dir():
            for path in sorted(self.forms_dir.glob(f"*_{self.default_language}.json")):
                found[path.stem[: -len(self.default_language) - 1]] = "plugin"
            for path in sorted(self.forms_dir.glob("*.json")):
                match = _LANG_SUFFIX_RE.search(path.stem)
                if match and self.is_multi_file(path.stem[: match.start()]):
                    continue
                found.setdefault(path.stem, "plugin")
        if self.custom_forms_dir is not None and self.custom_forms_dir.is_dir():
            for path in sorted(self.custom_forms_dir.glob("*.json")):
                found[f"{CUSTOM_FIELD_PREFIX}{path.stem}"] = "custom"
        return list(found.items())
