"""Public form endpoints for patients."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from intake.core.config import settings
from intake.core.deps import (
    get_config_store,
    get_form_config,
    get_pipeline,
    get_request_ip,
    location_scope,
    resolve_location,
)
from intake.core.rate_limit import limiter
from intake.schemas.forms import FormField, FormPublicRead, FormSummary
from intake.schemas.submissions import FormSubmissionCreate, SubmissionResult
from intake.services.anti_abuse_service import mint_form_token
from intake.services.config_store import ConfigStore
from intake.services.form_config_service import FormConfigService
from intake.services.submission_pipeline import SubmissionPipeline

router = APIRouter(prefix="/forms/public", tags=["forms-public"])


def submission_response(result: SubmissionResult) -> JSONResponse:
    """HTTP status for a pipeline result (honeypot hits look like successes)."""
    headers: dict[str, str] = {}
    if result.success:
        status_code = 200
    elif result.retry_after:
        status_code = 429
        headers["Retry-After"] = str(result.retry_after)
    elif result.errors:
        status_code = 422
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(exclude_none=True),
        headers=headers,
    )


def _with_render_defaults(field: FormField) -> FormField:
    if field.type == "date" and field.default == "today":
        return field.model_copy(update={"default": date.today().isoformat()})
    return field


@router.get("", response_model=list[FormSummary])
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def list_public_forms(
    request: Request,
    lang: str | None = Query(default=None, max_length=10),
    form_config: FormConfigService = Depends(get_form_config),
):
    return form_config.definitions.list_forms(lang)


@router.get("/{form_id}", response_model=FormPublicRead)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def get_public_form(
    request: Request,
    form_id: str,
    lang: str | None = Query(default=None, max_length=10),
    location: str | None = Query(default=None, max_length=100),
    form_config: FormConfigService = Depends(get_form_config),
    store: ConfigStore = Depends(get_config_store),
):
    definition = form_config.definitions.localize(form_id, lang)
    if definition is None:
        raise HTTPException(status_code=404, detail="Form not found")

    scope = location_scope(resolve_location(store, location))
    fields = form_config.get_effective_fields(form_id, lang, scope)
    visible = sorted((f for f in fields.values() if f.enabled), key=lambda f: f.order)

    return FormPublicRead(
        form_id=form_id,
        name=str(definition.name),
        description=str(definition.description),
        version=definition.version,
        language=form_config.definitions.resolver.normalize(lang),
        sections=definition.sections,
        fields=[_with_render_defaults(f) for f in visible],
        form_token=mint_form_token(),
    )


@router.post("/{form_id}/submissions", response_model=SubmissionResult)
def submit_public_form(
    request: Request,
    form_id: str,
    body: FormSubmissionCreate,
    form_config: FormConfigService = Depends(get_form_config),
    store: ConfigStore = Depends(get_config_store),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
    client_ip: str | None = Depends(get_request_ip),
):
    location = resolve_location(store, body.location)
    fields = form_config.get_effective_fields(form_id, body.lang, location_scope(location))
    if not fields:
        raise HTTPException(status_code=404, detail="Form not found")

    result = pipeline.process_anamnesis(
        body.answers, location, fields, client_ip=client_ip, form_id=form_id
    )
    return submission_response(result)
