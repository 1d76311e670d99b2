"""Abstract model base for entities exposed through the API.

Entities get a UUID primary key and a ``short_id`` alias: the first eight
characters of the UUID string. Short IDs are what users see in emails,
receipts and support conversations.
"""

from __future__ import annotations

import uuid

from django.db import models, transaction  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

SHORT_ID_LENGTH = 8


def short_id_for(value: uuid.UUID) -> str:
    return str(value)[:SHORT_ID_LENGTH]


class ShortIdModel(models.Model):
    """UUID primary key with a unique 8-character alias."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    short_id = models.CharField(
        _("Short ID"),
        max_length=SHORT_ID_LENGTH,
        unique=True,
        editable=False,
        db_index=True,
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):  # type: ignore
        if not self.short_id:
            # A prefix collision is astronomically rare, but the column is
            # unique, so regenerate the UUID until the prefix is free.
            while type(self)._default_manager.filter(short_id=short_id_for(self.id)).exists():
                self.id = uuid.uuid4()
            self.short_id = short_id_for(self.id)
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "short_id"}
        with transaction.atomic():
            super().save(*args, **kwargs)
