"""
Test configuration and fixtures.

Provides:
- Environment defaults (encryption keys, in-memory storage) set before imports
- In-memory SQLite session with all tables created
- Form definition store over the shipped forms plus a temp custom-forms dir
- HTTPX AsyncClient wired to the test session
"""
import os
from datetime import date
from typing import AsyncGenerator, Generator

from cryptography.fernet import Fernet

os.environ["TESTING"] = "1"
os.environ.setdefault("PII_HASH_KEY", "test-pii-hash-key")
os.environ.setdefault("DATA_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from intake.core.config import PACKAGE_FORMS_DIR
from intake.core.deps import get_db, get_form_definition_store, get_rate_limiter
from intake.core.rate_limit import SubmissionRateLimiter
from intake.db.base import Base
from intake.main import app
from intake.services.config_store import InMemoryConfigStore
from intake.services.form_config_service import FormConfigService
from intake.services.form_definition_service import FormDefinitionStore
from intake.services.locale_service import LocaleResolver

import intake.db.models  # noqa: F401


# =============================================================================
# Sample data
# =============================================================================

VALID_SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
FILE_ID = "a" * 64


def anamnesis_answers(**overrides) -> dict:
    """Complete answers for the shipped anamnese form (statutory insurance)."""
    answers = {
        "vorname": "Anna",
        "nachname": "Muster",
        "geburtsdatum_tag": "5",
        "geburtsdatum_monat": "3",
        "geburtsdatum_jahr": "1985",
        "telefon": "030123456",
        "email": "a@example.com",
        "kasse": "gesetzlich",
        "datenschutz_einwilligung": "1",
    }
    answers.update(overrides)
    return answers


def service_request(**overrides) -> dict:
    """Complete widget request; defaults to an appointment request."""
    data = {
        "service_type": "termin",
        "dsgvo_consent": "1",
        "vorname": "Max",
        "nachname": "Beispiel",
        "geburtsdatum_tag": "12",
        "geburtsdatum_monat": "11",
        "geburtsdatum_jahr": "1970",
        "telefon": "+49 171 1234567",
        "email": "max@example.com",
        "versicherung": "gesetzlich",
        "termin_grund": "Kontrolle",
    }
    data.update(overrides)
    return data


# =============================================================================
# Form fixtures
# =============================================================================

@pytest.fixture
def custom_forms_dir(tmp_path):
    path = tmp_path / "custom-forms"
    path.mkdir()
    return path


@pytest.fixture
def resolver(custom_forms_dir) -> LocaleResolver:
    return LocaleResolver(
        PACKAGE_FORMS_DIR,
        custom_forms_dir,
        default_language="de",
        supported_languages=["de", "en", "fr"],
    )


@pytest.fixture
def definitions(resolver) -> FormDefinitionStore:
    return FormDefinitionStore(resolver)


@pytest.fixture
def config_store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def form_config(definitions, config_store) -> FormConfigService:
    return FormConfigService(definitions, config_store)


@pytest.fixture
def today() -> date:
    return date(2026, 6, 15)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh in-memory database per test (StaticPool shares the one connection)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def rate_limiter() -> SubmissionRateLimiter:
    return SubmissionRateLimiter("memory://", max_requests=10, window_seconds=300)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(
    db: Session, definitions: FormDefinitionStore, rate_limiter: SubmissionRateLimiter
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the public endpoints, bound to the test database."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_form_definition_store] = lambda: definitions
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
