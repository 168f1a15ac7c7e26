"""Widget endpoints for service requests (prescriptions, referrals, appointments)."""

from fastapi import APIRouter, Depends, Request

from intake.core.config import settings
from intake.core.deps import get_config_store, get_pipeline, get_request_ip, resolve_location
from intake.core.rate_limit import limiter
from intake.routers.forms_public import submission_response
from intake.schemas.submissions import FormTokenRead, ServiceRequestCreate, SubmissionResult
from intake.services.anti_abuse_service import mint_form_token
from intake.services.config_store import ConfigStore
from intake.services.submission_pipeline import SubmissionPipeline

router = APIRouter(prefix="/widget", tags=["widget"])


@router.get("/token", response_model=FormTokenRead)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def get_form_token(request: Request):
    return FormTokenRead(form_token=mint_form_token())


@router.post("/requests", response_model=SubmissionResult)
def submit_service_request(
    request: Request,
    body: ServiceRequestCreate,
    store: ConfigStore = Depends(get_config_store),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
    client_ip: str | None = Depends(get_request_ip),
):
    location = resolve_location(store, body.location)
    result = pipeline.process_service_request(body.answers, location, client_ip=client_ip)
    return submission_response(result)
