"""
Read side of the audit log: filtering and rendering entries.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from django.db.models import QuerySet

from apps.audit.models import AuditLogEntry, AuditOperation

from .diff import summarize_changes
from .exceptions import AuditEntryNotFoundError, InvalidAuditFilterError


def get_audit_log(
    *,
    table_name: Optional[str] = None,
    record_id: Optional[Any] = None,
    operation: Optional[str] = None,
    actor_id: Optional[UUID] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None
) -> QuerySet[AuditLogEntry]:
    """
    Filter the audit log, newest first.

    Raises:
        InvalidAuditFilterError: If the operation is unknown or since > until
    """
    if operation and operation not in AuditOperation.values:
        raise InvalidAuditFilterError(f"Unknown operation: {operation}")
    if since and until and since > until:
        raise InvalidAuditFilterError("'since' must be before 'until'")

    queryset = AuditLogEntry.objects.select_related('actor')
    if table_name:
        queryset = queryset.filter(table_name=table_name)
    if record_id is not None:
        queryset = queryset.filter(record_id=str(record_id))
    if operation:
        queryset = queryset.filter(operation=operation)
    if actor_id:
        queryset = queryset.filter(actor_id=actor_id)
    if since:
        queryset = queryset.filter(timestamp__gte=since)
    if until:
        queryset = queryset.filter(timestamp__lte=until)
    return queryset.order_by('-timestamp')


def get_audit_entry(*, entry_id: UUID) -> AuditLogEntry:
    try:
        return AuditLogEntry.objects.select_related('actor').get(id=entry_id)
    except AuditLogEntry.DoesNotExist:
        raise AuditEntryNotFoundError(f"Audit entry {entry_id} not found")


def render_entry(entry: AuditLogEntry) -> Dict[str, Any]:
    """
    Render an entry for display.

    Creations and restores show the new snapshot only, deletions show the
    old snapshot only, and updates show each changed field with its prior
    and new value.
    """
    rendered = {
        'id': str(entry.id),
        'table_name': entry.table_name,
        'record_id': entry.record_id,
        'operation': entry.operation,
        'actor': entry.actor.get_display_name() if entry.actor_id else None,
        'timestamp': entry.timestamp.isoformat(),
        'reason': entry.reason,
    }

    if entry.operation in (AuditOperation.CREATE, AuditOperation.RESTORE):
        rendered['snapshot'] = entry.new_snapshot
    elif entry.operation in (AuditOperation.DELETE, AuditOperation.SOFT_DELETE):
        rendered['snapshot'] = entry.old_snapshot
    else:
        rendered['changes'] = [
            {
                'field': item['field'],
                'change': item['change'],
                'from': item['old_value'],
                'to': item['new_value'],
            }
            for item in entry.diff
        ]
        rendered['summary'] = summarize_changes(entry.diff)
    return rendered
