"""Tests for form locale resolution and schema loading."""

import json

import pytest

from intake.db.enums import SchemaFormat
from intake.services.form_definition_service import FormDefinitionStore
from intake.services.locale_service import (
    InlineTranslationSchemaSource,
    LocaleResolver,
    localized_text,
    normalize_locale,
)


@pytest.mark.parametrize(
    "locale,expected",
    [
        ("de_DE", "de"),
        ("EN", "en"),
        ("en-GB", "en"),
        ("it", "de"),
        (None, "de"),
        ("", "de"),
    ],
)
def test_normalize_locale(locale, expected):
    assert normalize_locale(locale, ["de", "en"], "de") == expected


def test_localized_text_fallback_chain():
    assert localized_text({"de": "Telefon", "fr": "Téléphone"}, "fr") == "Téléphone"
    assert localized_text({"de": "Telefon", "fr": "Téléphone"}, "en") == "Telefon"
    assert localized_text({"fr": "Téléphone"}, "en") == "Téléphone"
    assert localized_text({"de": "", "en": "Phone"}, "it") == "Phone"
    assert localized_text({}, "de") == ""
    assert localized_text("plain", "en") == "plain"
    assert localized_text(None, "en") == ""


def test_inline_projection_localizes_labels_and_options():
    source = InlineTranslationSchemaSource("de")
    field = {
        "id": "anliegen",
        "label": {"de": "Anliegen", "en": "Topic"},
        "options": [{"value": "frage", "label": {"de": "Frage", "en": "Question"}}],
    }

    projected = source.project_field(field, "en")

    assert projected["label"] == "Topic"
    assert projected["options"] == [{"value": "frage", "label": "Question"}]
    assert field["label"] == {"de": "Anliegen", "en": "Topic"}


def test_resolve_multi_file_form(resolver):
    plan = resolver.resolve("anamnese", "en_US")

    assert plan.format == SchemaFormat.MULTI_FILE
    assert plan.language == "en"
    assert plan.path.name == "anamnese_en.json"


def test_resolve_multi_file_falls_back_to_default_language_file(resolver):
    plan = resolver.resolve("anamnese", "fr")

    assert plan.language == "de"
    assert plan.path.name == "anamnese_de.json"


def test_resolve_inline_form(resolver):
    plan = resolver.resolve("kontakt", "fr")

    assert plan.format == SchemaFormat.INLINE
    assert plan.language == "fr"
    assert plan.path.name == "kontakt.json"


def test_resolve_custom_form_uses_custom_dir(resolver, custom_forms_dir):
    (custom_forms_dir / "impfung.json").write_text(json.dumps({"id": "custom_impfung"}))

    plan = resolver.resolve("custom_impfung", "de")

    assert plan.format == SchemaFormat.INLINE
    assert plan.path == custom_forms_dir / "impfung.json"
    assert resolver.is_custom_form("custom_impfung")


@pytest.mark.parametrize("form_id", ["missing", "../etc/passwd", "Anamnese"])
def test_resolve_unknown_or_malformed_ids(resolver, form_id):
    assert resolver.resolve(form_id, "de") is None


def test_available_languages(resolver):
    assert resolver.available_languages("anamnese") == ["de", "en"]
    assert resolver.available_languages("kontakt") == ["de"]


def test_form_ids_lists_shipped_and_custom_forms(resolver, custom_forms_dir):
    (custom_forms_dir / "impfung.json").write_text("{}")

    ids = dict(resolver.form_ids())

    assert ids["anamnese"] == "plugin"
    assert ids["kontakt"] == "plugin"
    assert ids["custom_impfung"] == "custom"
    assert "anamnese_de" not in ids


def test_inline_form_with_language_like_suffix_is_listed(tmp_path):
    (tmp_path / "haut_ab.json").write_text("{}")
    (tmp_path / "impfung_de.json").write_text("{}")
    (tmp_path / "impfung_en.json").write_text("{}")
    resolver = LocaleResolver(
        tmp_path, tmp_path / "none", default_language="de", supported_languages=["de", "en"]
    )

    assert dict(resolver.form_ids()) == {"haut_ab": "plugin", "impfung": "plugin"}
    assert resolver.resolve("haut_ab", "de") is not None


def test_localize_multi_file_is_sorted_and_localized(definitions):
    definition = definitions.localize("anamnese", "en")

    assert definition.name == "Medical history"
    orders = [field.order for field in definition.fields]
    assert orders == sorted(orders)
    assert definitions.get_field("anamnese", "vorname", "en").label == "First name"


def test_localize_inline_form_with_label_fallback(definitions):
    english = definitions.localize("kontakt", "en")
    french = definitions.localize("kontakt", "fr")

    telefon_en = next(f for f in english.fields if f.id == "telefon")
    telefon_fr = next(f for f in french.fields if f.id == "telefon")
    assert english.name == "Contact form"
    assert telefon_en.label == "Telefon"
    assert telefon_fr.label == "Téléphone"
    assert french.name == "Kontaktformular"


def test_localize_is_cached(definitions):
    first = definitions.localize("kontakt", "de")
    assert definitions.localize("kontakt", "de") is first

    definitions.clear_cache()
    assert definitions.localize("kontakt", "de") is not first


def test_get_section_fields_returns_enabled_fields(definitions):
    fields = definitions.get_section_fields("anamnese", "kontakt", "de")

    assert [f.id for f in fields] == ["strasse", "plz", "ort", "telefon", "email"]


def test_missing_form_loads_as_none(definitions):
    assert definitions.load("missing") is None
    assert definitions.localize("missing") is None
    assert definitions.get_field("missing", "vorname") is None
    assert definitions.get_section_fields("missing", "kontakt") == []


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"fields": [{"id": "x", "section": "s", "type": "unknown"}]}),
        json.dumps(
            {
                "fields": [
                    {"id": "x", "section": "s", "type": "text"},
                    {"id": "x", "section": "s", "type": "text"},
                ]
            }
        ),
    ],
)
def test_broken_schema_files_load_as_none(tmp_path, content):
    (tmp_path / "kaputt.json").write_text(content)
    store = FormDefinitionStore(
        LocaleResolver(tmp_path, tmp_path / "none", default_language="de", supported_languages=["de"])
    )

    assert store.localize("kaputt", "de") is None


def test_list_forms_reports_format_and_languages(definitions):
    forms = {summary.id: summary for summary in definitions.list_forms("en")}

    assert forms["anamnese"].format == "multilang"
    assert forms["anamnese"].languages == ["de", "en"]
    assert forms["anamnese"].name == "Medical history"
    assert forms["kontakt"].format == "inline"
    assert forms["kontakt"].version == "1.2"
    assert forms["kontakt"].source == "plugin"
