"""Encrypted storage boundary for submissions and their file references.

Answers and signatures are stored Fernet-encrypted; the only plain-text
identifiers are the submission hash and the reference derived from it.
"""

import hashlib
import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from intake.core.encryption import decrypt_value, encrypt_value
from intake.db.enums import DEFAULT_SUBMISSION_STATUS
from intake.db.models import Submission, SubmissionFile
from intake.services.audit_service import canonical_json
from intake.utils.normalization import normalize_key

logger = logging.getLogger(__name__)

_FILE_ID_RE = re.compile(r"^[a-f0-9]{64}$")
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class CreatedSubmission:
    success: bool
    id: int
    hash: str
    reference: str


@dataclass(frozen=True)
class FileReference:
    file_id: str
    original_name: str
    mime_type: str = DEFAULT_MIME_TYPE
    file_size: int = 0


class SubmissionRepository(Protocol):
    def create(
        self, data: dict[str, Any], meta: dict[str, str], signature: str | None = None
    ) -> CreatedSubmission: ...

    def find_by_id(self, submission_id: int) -> dict[str, Any] | None: ...


class FileRepository(Protocol):
    def create_reference(self, submission_id: int, file: FileReference) -> int: ...


def is_valid_file_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_FILE_ID_RE.match(value))


def new_submission_hash() -> str:
    return hashlib.sha256(f"{uuid.uuid4()}{time.time()}".encode()).hexdigest()


class SqlSubmissionRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self, data: dict[str, Any], meta: dict[str, str], signature: str | None = None
    ) -> CreatedSubmission:
        submission_hash = new_submission_hash()
        submission = Submission(
            location_id=str(meta.get("location_id") or ""),
            service_key=normalize_key(meta.get("service_key") or "anamnese"),
            request_type=normalize_key(meta.get("request_type") or "form"),
            submission_hash=submission_hash,
            encrypted_data=encrypt_value(canonical_json(data)),
            signature_data=encrypt_value(signature) if signature else None,
            status=DEFAULT_SUBMISSION_STATUS.value,
        )
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        return CreatedSubmission(
            success=True,
            id=submission.id,
            hash=submission_hash,
            reference=submission_hash[:8].upper(),
        )

    def find_by_id(self, submission_id: int) -> dict[str, Any] | None:
        submission = self.db.get(Submission, submission_id)
        if submission is None:
            return None
        return {
            "id": submission.id,
            "location_id": submission.location_id,
            "service_key": submission.service_key,
            "request_type": submission.request_type,
            "status": submission.status,
            "hash": submission.submission_hash,
            "data": json.loads(decrypt_value(submission.encrypted_data)),
            "signature": decrypt_value(submission.signature_data)
            if submission.signature_data
            else None,
            "created_at": submission.created_at,
        }


class SqlFileRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_reference(self, submission_id: int, file: FileReference) -> int:
        row = SubmissionFile(
            submission_id=submission_id,
            file_id=file.file_id,
            original_name=encrypt_value(file.original_name or "unnamed"),
            mime_type=file.mime_type or DEFAULT_MIME_TYPE,
            file_size=max(0, int(file.file_size or 0)),
        )
        self.db.add(row)
        self.db.commit()
        return row.id

    def find_by_submission(self, submission_id: int) -> list[FileReference]:
        rows = self.db.execute(
            select(SubmissionFile)
            .where(SubmissionFile.submission_id == submission_id)
            .order_by(SubmissionFile.id)
        ).scalars()
        return [
            FileReference(
                file_id=row.file_id,
                original_name=decrypt_value(row.original_name),
                mime_type=row.mime_type,
                file_size=row.file_size,
            )
            for row in rows
        ]
