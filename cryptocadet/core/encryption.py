"""Encryption helpers for storing shop access tokens at rest."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from cryptocadet.core.config import settings


class TokenDecryptionError(Exception):
    """Raised when a stored access token cannot be decrypted."""


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from ENCRYPTION_KEY using SHA-256,
    then base64-encodes it. Rotating the key makes stored tokens unreadable;
    affected shops have to reinstall.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_access_token(token: str) -> str:
    """Encrypt a shop access token."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_access_token(encrypted: str | None) -> str:
    """Decrypt a stored shop access token.

    Raises:
        TokenDecryptionError: If the value is empty or was encrypted with another key.
    """
    if not encrypted:
        raise TokenDecryptionError("No access token stored")
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        raise TokenDecryptionError("Stored access token could not be decrypted") from e
