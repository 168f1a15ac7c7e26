"""Application configuration with environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_FORMS_DIR = Path(__file__).resolve().parent.parent / "forms"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch), stored with each submission
    VERSION: str = "4.00.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./intake.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Form schemas (shipped defaults + uploaded custom forms)
    FORMS_DIR: str = ""  # Falls back to the forms/ directory inside the package
    CUSTOM_FORMS_DIR: str = ""
    DEFAULT_LANGUAGE: str = "de"
    SUPPORTED_LANGUAGES: str = "de,en,fr,nl,it,tr,ru,ar"

    # Bot friction
    MIN_FORM_TIME_SECONDS: int = 5

    # Rate Limiting
    RATE_LIMIT_FORM_SUBMIT: int = 10  # Submissions per window and client
    RATE_LIMIT_FORM_SUBMIT_WINDOW_SECONDS: int = 300
    RATE_LIMIT_PUBLIC_READ: int = 60  # Form reads per minute

    # Field-level encryption (Fernet key) and HMAC key for hashing IPs/PII
    DATA_ENCRYPTION_KEY: str = ""
    PII_HASH_KEY: str = ""

    # Default practice location (used when a request names no location)
    PRACTICE_NAME: str = "Praxis"
    DEFAULT_LOCATION_ID: str = "1"
    NOTIFICATION_EMAIL: str = ""

    # Notification delivery (Resend)
    RESEND_API_KEY: str = ""
    NOTIFICATION_FROM_EMAIL: str = ""

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def supported_languages_list(self) -> list[str]:
        """Parse SUPPORTED_LANGUAGES into lowercase 2-letter codes."""
        return [
            lang.strip().lower()[:2]
            for lang in self.SUPPORTED_LANGUAGES.split(",")
            if lang.strip()
        ]

    @property
    def forms_path(self) -> Path:
        return Path(self.FORMS_DIR) if self.FORMS_DIR else PACKAGE_FORMS_DIR

    @property
    def custom_forms_path(self) -> Path | None:
        return Path(self.CUSTOM_FORMS_DIR) if self.CUSTOM_FORMS_DIR else None


settings = Settings()
