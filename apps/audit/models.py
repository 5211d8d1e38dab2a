# ==========================================
# apps/audit/models.py
# ==========================================

from django.db import models
from django.utils import timezone
import uuid


class ImmutableRecordError(Exception):
    """Raised when code tries to change or remove an append-only row."""
    pass


class AppendOnlyQuerySet(models.QuerySet):
    """QuerySet that refuses bulk updates and deletes."""

    def update(self, **kwargs):
        raise ImmutableRecordError(f"{self.model.__name__} rows cannot be updated")

    def delete(self):
        raise ImmutableRecordError(f"{self.model.__name__} rows cannot be deleted")


class AppendOnlyModel(models.Model):
    """
    Base for tables that are only ever appended to.

    Rows can be inserted once. Saving an existing row, deleting a row or
    bulk-updating a queryset raises ImmutableRecordError; mistakes are
    countered by writing a new, explicit row.
    """

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(
                f"{self.__class__.__name__} {self.pk} is immutable once written"
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f"{self.__class__.__name__} {self.pk} cannot be deleted")


class AuditOperation(models.TextChoices):
    CREATE = 'create', 'Create'
    UPDATE = 'update', 'Update'
    DELETE = 'delete', 'Delete'
    SOFT_DELETE = 'soft_delete', 'Soft delete'
    RESTORE = 'restore', 'Restore'


class AuditLogEntry(AppendOnlyModel):
    """One immutable audit record: full snapshots plus the derived diff."""

    AUDIT_VERSION = 1

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    table_name = models.CharField(max_length=64, db_index=True)
    record_id = models.CharField(max_length=64, db_index=True)
    operation = models.CharField(max_length=20, choices=AuditOperation.choices)
    old_snapshot = models.JSONField(null=True, blank=True)
    new_snapshot = models.JSONField(null=True, blank=True)
    diff = models.JSONField(default=list, blank=True)
    actor = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='audit_entries'
    )
    reason = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    audit_version = models.PositiveSmallIntegerField(default=AUDIT_VERSION)
    checksum = models.CharField(max_length=64)

    class Meta:
        db_table = 'audit_log'
        indexes = [
            models.Index(fields=['table_name', 'record_id', 'timestamp'], name='audit_log_table_n_5b1c2e_idx'),
            models.Index(fields=['actor', 'timestamp'], name='audit_log_actor_i_7d3f9a_idx'),
            models.Index(fields=['operation', 'timestamp'], name='audit_log_operati_2a8e4c_idx'),
        ]
        ordering = ['-timestamp']
        verbose_name_plural = 'audit log entries'

    def __str__(self):
        return f"{self.operation} {self.table_name}:{self.record_id} @ {self.timestamp:%Y-%m-%d %H:%M}"

    @property
    def changed_fields(self):
        return [item['field'] for item in self.diff or []]
