"""Encryption helpers for storing Shopify Admin API tokens at rest."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from multistore.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make previously stored store and
    backup store tokens undecryptable.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_token(token: str) -> str:
    """Encrypt an access token."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str | None) -> str | None:
    """Decrypt a stored access token. Empty values decrypt to None."""
    if not encrypted:
        return None
    return _get_fernet().decrypt(encrypted.encode()).decode()
