"""
Reusable abstract model mixins.

Available Mixins:
    SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin

    class Message(SoftDeleteMixin, BaseModel):
        content = models.TextField()

    message.soft_delete()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteMixin(models.Model):
    """
    Soft delete support for models.

    Instead of removing the row, marks it as deleted so that anything
    pointing at it (replies, read cursors, ordering) stays intact.

    Fields:
        is_deleted: Boolean flag indicating soft delete status
        deleted_at: Timestamp when the record was soft deleted

    Subclasses that need to scrub data on deletion override
    ``on_soft_delete`` and return the extra field names they changed.
    """

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this record has been soft deleted",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    def on_soft_delete(self) -> list[str]:
        """Hook for subclasses; returns extra fields to save."""
        return []

    def soft_delete(self) -> bool:
        """
        Mark this record as deleted.

        Idempotent: a record that is already deleted keeps its original
        ``deleted_at``.

        Returns:
            True if the record changed, False if it was already deleted
        """
        if self.is_deleted:
            return False

        self.is_deleted = True
        self.deleted_at = timezone.now()
        extra_fields = self.on_soft_delete()
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at", *extra_fields])
        return True
