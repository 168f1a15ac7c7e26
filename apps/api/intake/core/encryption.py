"""Encryption utilities for submission data at rest."""

import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken

from intake.core.config import settings


_data_fernet: Fernet | None = None
_ENCRYPTED_PREFIX = "enc:"


def get_data_fernet() -> Fernet:
    """Get Fernet instance for field-level PII encryption."""
    global _data_fernet
    if _data_fernet is None:
        if not settings.DATA_ENCRYPTION_KEY:
            raise RuntimeError(
                "DATA_ENCRYPTION_KEY not configured. "
                'Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
            )
        _data_fernet = Fernet(settings.DATA_ENCRYPTION_KEY.encode())
    return _data_fernet


def encrypt_value(value: str) -> str:
    """Encrypt a string value for PII at rest."""
    if value is None:
        return value
    if value == "":
        return ""
    if value.startswith(_ENCRYPTED_PREFIX):
        return value
    encrypted = get_data_fernet().encrypt(value.encode()).decode()
    return f"{_ENCRYPTED_PREFIX}{encrypted}"


def decrypt_value(value: str) -> str:
    """Decrypt a stored PII value."""
    if value is None:
        return value
    if value == "":
        return ""
    if not value.startswith(_ENCRYPTED_PREFIX):
        raise ValueError("Encrypted data is missing prefix")
    token = value[len(_ENCRYPTED_PREFIX) :]
    try:
        return get_data_fernet().decrypt(token.encode()).decode()
    except InvalidToken:
        raise ValueError("Invalid or corrupted encrypted data")


def hash_pii(value: str, purpose: str = "pii") -> str:
    """Hash PII deterministically for lookups and uniqueness."""
    if not settings.PII_HASH_KEY:
        raise RuntimeError("PII_HASH_KEY not configured.")
    if value is None:
        return ""
    data = f"{purpose}:{value}".encode()
    return hmac.new(settings.PII_HASH_KEY.encode(), data, hashlib.sha256).hexdigest()


def hash_client_ip(ip: str | None) -> str:
    """Hash a client IP so rate-limit keys and security logs never hold the raw address."""
    return hash_pii(ip or "0.0.0.0", purpose="ip")


def is_pii_encryption_configured() -> bool:
    """Check if PII encryption is properly configured."""
    return bool(settings.DATA_ENCRYPTION_KEY and settings.PII_HASH_KEY)
