"""SQLAlchemy ORM models for configuration, submissions and audit."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from intake.db.base import Base
from intake.db.enums import DEFAULT_SUBMISSION_STATUS


class ConfigEntry(Base):
    """
    Key -> JSON value store for per-deployment form configuration.

    Keys look like ``form_overrides:<form_id>:<scope|global>``.
    """
    __tablename__ = "config_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Submission(Base):
    """
    An encrypted patient submission (anamnesis or widget service request).

    Security:
    - Answers and signature are Fernet-encrypted (``enc:`` prefix)
    - Only opaque identifiers (hash, reference) leave this table in plain text
    """
    __tablename__ = "submissions"
    __table_args__ = (
        Index("idx_submissions_location_created", "location_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False)
    service_key: Mapped[str] = mapped_column(String(50), nullable=False)
    request_type: Mapped[str] = mapped_column(String(50), nullable=False)
    submission_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    encrypted_data: Mapped[str] = mapped_column(Text, nullable=False)
    signature_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_SUBMISSION_STATUS.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    files: Mapped[list["SubmissionFile"]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )


class SubmissionFile(Base):
    """Reference from a submission to an already stored upload."""
    __tablename__ = "submission_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_id: Mapped[str] = mapped_column(String(64), nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)  # encrypted
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    submission: Mapped[Submission] = relationship(back_populates="files")


class AuditLog(Base):
    """
    Security and compliance audit log.

    Security:
    - Never stores patient answers
    - Client IPs only as HMAC hashes
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_event_created", "event_type", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # AuditEventType
    entity_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
