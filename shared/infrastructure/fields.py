"""
Custom Django model fields for sensitive data.

Provides EncryptedCharField that transparently encrypts data
before saving to database and decrypts when loading.
"""

from __future__ import annotations

import structlog
from django.core import validators
from django.db import models

from .encryption import InvalidToken, decrypt_string, encrypt_string

logger = structlog.get_logger(__name__)


class EncryptedCharField(models.TextField):
    """
    Text column holding a Fernet token; the Python value is the plaintext.

    ``max_length`` limits the plaintext, not the stored ciphertext.
    """

    description = "Encrypted text field"

    def __init__(self, *args, **kwargs):
        self.plaintext_max_length = kwargs.pop("max_length", None)
        super().__init__(*args, **kwargs)
        if self.plaintext_max_length is not None:
            self.validators.append(validators.MaxLengthValidator(self.plaintext_max_length))

    def deconstruct(self):
        name, path, args, kwargs = super().deconstruct()
        if self.plaintext_max_length is not None:
            kwargs["max_length"] = self.plaintext_max_length
        return name, path, args, kwargs

    def from_db_value(self, value, expression, connection):
        if value is None or value == "":
            return value
        try:
            return decrypt_string(value)
        except InvalidToken:
            logger.error("encrypted_field.decrypt_failed", field=self.name, model=self.model.__name__)
            return ""

    def get_prep_value(self, value):
        if value is None or value == "":
            return ""
        return encrypt_string(str(value))

    def to_python(self, value):
        if value is None:
            return value
        return str(value)
