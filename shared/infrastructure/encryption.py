"""
Encryption utilities

Symmetric encryption (Fernet, AES-128-CBC + HMAC-SHA256) for secrets that
owners share with renters: marina gate codes, slip lock combinations.
"""

from __future__ import annotations

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


def get_encryption_key() -> bytes:
    """
    Return the Fernet key derived from ``settings.ENCRYPTION_KEY``.

    A proper Fernet key (32 url-safe base64 bytes) is used as-is; any other
    string is treated as a passphrase and stretched with SHA-256.
    """
    key = getattr(settings, "ENCRYPTION_KEY", None)

    if not key:
        raise ImproperlyConfigured(
            "ENCRYPTION_KEY not configured in settings. "
            "Generate one with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
        )

    if isinstance(key, str):
        key = key.encode()
    return _normalize_key(key)


@lru_cache(maxsize=4)
def _normalize_key(raw: bytes) -> bytes:
    try:
        if len(base64.urlsafe_b64decode(raw)) == 32:
            return raw
    except (ValueError, TypeError):
        pass
    return base64.urlsafe_b64encode(hashlib.sha256(raw).digest())


def encrypt_string(plaintext: str) -> str:
    """Encrypt a string; returns the Fernet token as text."""
    if not plaintext:
        return ""
    return Fernet(get_encryption_key()).encrypt(plaintext.encode()).decode()


def decrypt_string(token: str) -> str:
    """Decrypt a Fernet token produced by :func:`encrypt_string`.

    Raises ``cryptography.fernet.InvalidToken`` when the key does not match.
    """
    if not token:
        return ""
    return Fernet(get_encryption_key()).decrypt(token.encode()).decode()


__all__ = ["InvalidToken", "decrypt_string", "encrypt_string", "get_encryption_key"]
