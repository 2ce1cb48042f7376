"""
Abstract base model shared by every domain model.

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin

    class Message(SoftDeleteMixin, BaseModel):
        content = models.TextField()

Mixins are listed before BaseModel in the bases.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract model with ``created_at`` / ``updated_at`` timestamps.

    ``created_at`` is indexed because the chat history is ordered and
    paginated by it.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
