"""FastAPI dependencies for database access and the intake services."""

from functools import lru_cache
from typing import Generator

from fastapi import Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from intake.core.config import settings
from intake.core.rate_limit import STORAGE_URI, SubmissionRateLimiter
from intake.db.session import SessionLocal
from intake.schemas.submissions import LocationContext
from intake.services.anti_abuse_service import AntiAbuseGuard
from intake.services.audit_service import DbAuditLogger, get_client_ip
from intake.services.config_store import ConfigStore, DbConfigStore
from intake.services.form_config_service import FormConfigService
from intake.services.form_definition_service import FormDefinitionStore
from intake.services.notification_service import ResendNotificationSender
from intake.services.submission_pipeline import SubmissionPipeline
from intake.services.submission_repository import SqlFileRepository, SqlSubmissionRepository
from intake.utils.normalization import normalize_key

LOCATIONS_NAMESPACE = "locations"
DEFAULT_LOCATION_SLUG = "default"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_config_store(db: Session = Depends(get_db)) -> ConfigStore:
    return DbConfigStore(db)


@lru_cache
def get_form_definition_store() -> FormDefinitionStore:
    """Process-wide: shipped schema files do not change at runtime."""
    return FormDefinitionStore()


def get_form_config(
    store: ConfigStore = Depends(get_config_store),
    definitions: FormDefinitionStore = Depends(get_form_definition_store),
) -> FormConfigService:
    # Built per request so overrides written by another worker are seen
    return FormConfigService(definitions, store)


@lru_cache
def get_rate_limiter() -> SubmissionRateLimiter:
    return SubmissionRateLimiter(STORAGE_URI)


def default_location() -> LocationContext:
    return LocationContext(
        location_id=settings.DEFAULT_LOCATION_ID,
        slug=DEFAULT_LOCATION_SLUG,
        practice_name=settings.PRACTICE_NAME,
        notification_email=settings.NOTIFICATION_EMAIL or None,
        email_from_address=settings.NOTIFICATION_FROM_EMAIL or None,
    )


def resolve_location(store: ConfigStore, slug: str | None) -> LocationContext:
    """Location configured under ``locations:<slug>``, else the default practice."""
    slug = normalize_key(slug or "")
    if not slug:
        return default_location()
    raw = store.get(f"{LOCATIONS_NAMESPACE}:{slug}")
    if not isinstance(raw, dict):
        return default_location()
    try:
        return LocationContext.model_validate({"slug": slug, **raw})
    except ValidationError:
        return default_location()


def get_pipeline(
    db: Session = Depends(get_db),
    rate_limiter: SubmissionRateLimiter = Depends(get_rate_limiter),
) -> SubmissionPipeline:
    audit = DbAuditLogger(db)
    notifier = ResendNotificationSender() if settings.RESEND_API_KEY else None
    return SubmissionPipeline(
        AntiAbuseGuard(rate_limiter, audit),
        SqlSubmissionRepository(db),
        SqlFileRepository(db),
        audit,
        notifier,
    )


def get_request_ip(request: Request) -> str | None:
    return get_client_ip(request)


def location_scope(location: LocationContext) -> str | None:
    """Override scope for a location; the default practice uses the global scope."""
    return None if location.slug == DEFAULT_LOCATION_SLUG else location.slug
