"""CLI tools for practice form administration."""

import json

import click

from intake.core.deps import get_form_definition_store
from intake.db.session import SessionLocal
from intake.services.config_store import DbConfigStore
from intake.services.form_config_service import FormConfigService


def _form_config(db) -> FormConfigService:
    return FormConfigService(get_form_definition_store(), DbConfigStore(db))


@click.group()
def cli():
    """Patient intake CLI tools."""
    pass


@cli.command("list-forms")
@click.option("--lang", default=None, help="Language for names (default: DEFAULT_LANGUAGE)")
def list_forms(lang: str | None):
    """List every form schema that can be served."""
    forms = get_form_definition_store().list_forms(lang)
    if not forms:
        click.echo("No forms found")
        return
    for form in forms:
        languages = ",".join(form.languages)
        click.echo(f"{form.id}  v{form.version}  [{form.format}; {languages}; {form.source}]  {form.name}")


@cli.command("show-fields")
@click.option("--form", "form_id", required=True, help="Form id, e.g. anamnese")
@click.option("--lang", default=None)
@click.option("--scope", default=None, help="Location slug (default: global)")
def show_fields(form_id: str, lang: str | None, scope: str | None):
    """Print the effective field map of a form."""
    db = SessionLocal()
    try:
        fields = _form_config(db).get_effective_fields(form_id, lang, scope)
        if not fields:
            click.echo(f"❌ Form '{form_id}' not found")
            return
        for field in sorted(fields.values(), key=lambda f: (f.section, f.order)):
            flags = "".join(
                [
                    "R" if field.required else "-",
                    "E" if field.enabled else "-",
                    "C" if field.is_custom else "-",
                ]
            )
            click.echo(f"{flags}  {field.section:<15} {field.order:>4}  {field.id:<30} {field.label}")
    finally:
        db.close()


@cli.command("override-field")
@click.option("--form", "form_id", required=True)
@click.option("--field", "field_id", required=True)
@click.option("--scope", default=None)
@click.option("--label", default=None)
@click.option("--enabled", type=click.BOOL, default=None, help="true/false")
@click.option("--required", type=click.BOOL, default=None, help="true/false")
@click.option("--order", type=int, default=None)
def override_field(form_id, field_id, scope, label, enabled, required, order):
    """Change label, visibility, required flag or order of a shipped field."""
    changes = {
        key: value
        for key, value in {
            "label": label,
            "enabled": enabled,
            "required": required,
            "order": order,
        }.items()
        if value is not None
    }
    db = SessionLocal()
    try:
        form_config = _form_config(db)
        submitted = form_config.get_overrides(form_id, scope)
        submitted[field_id] = {**submitted.get(field_id, {}), **changes}
        delta = form_config.save_overrides(form_id, submitted, scope)
        click.echo(f"✓ Saved overrides for {form_id}: {json.dumps(delta.get(field_id, {}))}")
    except ValueError as e:
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command("add-custom-field")
@click.option("--form", "form_id", required=True)
@click.option("--id", "field_id", required=True, help="Field id (custom_ prefix is added)")
@click.option("--label", required=True)
@click.option("--type", "field_type", default="text", show_default=True)
@click.option("--section", default="custom", show_default=True)
@click.option("--required", is_flag=True, default=False)
@click.option("--option", "options", multiple=True, help="Choice option as value=label")
@click.option("--scope", default=None)
def add_custom_field(form_id, field_id, label, field_type, section, required, options, scope):
    """Add or replace a deployment-specific field."""
    field_data = {
        "label": label,
        "type": field_type,
        "section": section,
        "required": required,
    }
    if options:
        field_data["options"] = [
            {"value": value, "label": text or value}
            for value, _, text in (option.partition("=") for option in options)
        ]
    db = SessionLocal()
    try:
        saved_id = _form_config(db).add_custom_field(form_id, field_id, field_data, scope)
        click.echo(f"✓ Saved custom field {saved_id}")
    except ValueError as e:
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command("delete-custom-field")
@click.option("--form", "form_id", required=True)
@click.option("--id", "field_id", required=True)
@click.option("--scope", default=None)
def delete_custom_field(form_id: str, field_id: str, scope: str | None):
    """Remove a deployment-specific field."""
    db = SessionLocal()
    try:
        if _form_config(db).delete_custom_field(form_id, field_id, scope):
            click.echo(f"✓ Deleted {field_id}")
        else:
            click.echo(f"❌ Custom field '{field_id}' not found")
    finally:
        db.close()


@cli.command("reset-form")
@click.option("--form", "form_id", required=True)
@click.option("--scope", default=None)
@click.confirmation_option(prompt="Drop all overrides and info texts for this form?")
def reset_form(form_id: str, scope: str | None):
    """Restore shipped labels, flags and order (custom fields are kept)."""
    db = SessionLocal()
    try:
        _form_config(db).reset_to_defaults(form_id, scope)
        click.echo(f"✓ Reset {form_id} to defaults")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
