"""
Audit recording service.

Writes immutable AuditLogEntry rows. Callers pass the record's old and
new snapshots; the engine validates them against the operation, redacts
sensitive fields, derives the diff and seals the row with a SHA-256
checksum.
"""

import hashlib
import json
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.audit.models import AuditLogEntry, AuditOperation

from .diff import compute_diff, normalize_snapshot
from .exceptions import InvalidSnapshotError

logger = logging.getLogger(__name__)

REDACTED = '[REDACTED]'

DEFAULT_SENSITIVE_FIELDS = (
    'password',
    'password_hash',
    'token',
    'access_token',
    'refresh_token',
    'secret',
    'api_key',
    'verification_token',
)

# operation -> (old snapshot required, new snapshot required)
_SNAPSHOT_RULES = {
    AuditOperation.CREATE: (False, True),
    AuditOperation.UPDATE: (True, True),
    AuditOperation.DELETE: (True, False),
    AuditOperation.SOFT_DELETE: (True, False),
    AuditOperation.RESTORE: (None, True),
}


def _sensitive_fields() -> frozenset:
    return frozenset(getattr(settings, 'AUDIT_SENSITIVE_FIELDS', DEFAULT_SENSITIVE_FIELDS))


def redact(snapshot: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace sensitive values (recursively) with a placeholder."""
    if snapshot is None:
        return None
    sensitive = _sensitive_fields()

    def _walk(value):
        if isinstance(value, dict):
            return {
                key: REDACTED if key.lower() in sensitive else _walk(item)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [_walk(item) for item in value]
        return value

    return _walk(snapshot)


def validate_snapshots(operation: str, old: Optional[dict], new: Optional[dict]) -> None:
    """
    Check that the snapshots fit the operation.

    Raises:
        InvalidSnapshotError: If a required snapshot is missing or a
            forbidden one is present
    """
    try:
        op = AuditOperation(operation)
    except ValueError:
        raise InvalidSnapshotError(f"Unknown audit operation: {operation}")

    needs_old, needs_new = _SNAPSHOT_RULES[op]
    if needs_old is True and old is None:
        raise InvalidSnapshotError(f"{op.value} requires the old snapshot")
    if needs_old is False and old is not None:
        raise InvalidSnapshotError(f"{op.value} must not carry an old snapshot")
    if needs_new and new is None:
        raise InvalidSnapshotError(f"{op.value} requires the new snapshot")
    if not needs_new and new is not None:
        raise InvalidSnapshotError(f"{op.value} must not carry a new snapshot")


def compute_checksum(
    *,
    table_name: str,
    record_id: str,
    operation: str,
    old_snapshot: Optional[dict],
    new_snapshot: Optional[dict],
    diff: list,
    actor_id: Optional[str],
    timestamp,
    audit_version: int
) -> str:
    payload = {
        'table_name': table_name,
        'record_id': str(record_id),
        'operation': str(operation),
        'old': old_snapshot,
        'new': new_snapshot,
        'diff': diff,
        'actor_id': str(actor_id) if actor_id else None,
        'timestamp': timestamp.isoformat(),
        'audit_version': audit_version,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(encoded.encode('utf-8')).hexdigest()


@transaction.atomic
def record(
    *,
    operation: str,
    table_name: str,
    record_id: Any,
    old: Optional[Dict[str, Any]] = None,
    new: Optional[Dict[str, Any]] = None,
    actor: Optional[User] = None,
    reason: str = ''
) -> Optional[AuditLogEntry]:
    """
    Persist one audit entry.

    The full old/new snapshots are always stored next to the diff so the
    diff can be re-derived later. An update whose diff is empty is not
    recorded and returns None.

    Args:
        operation: One of AuditOperation values
        table_name: Logical table of the record (e.g. 'batches')
        record_id: Primary key of the record
        old: Snapshot before the change
        new: Snapshot after the change
        actor: User responsible for the change
        reason: Free-text justification

    Returns:
        Created AuditLogEntry, or None for a no-op update

    Raises:
        InvalidSnapshotError: If snapshots do not fit the operation
    """
    validate_snapshots(operation, old, new)

    old_snapshot = redact(normalize_snapshot(old))
    new_snapshot = redact(normalize_snapshot(new))
    diff = [item.as_dict() for item in compute_diff(old_snapshot, new_snapshot)]

    if operation == AuditOperation.UPDATE and not diff:
        logger.debug("Skipping no-op audit update for %s:%s", table_name, record_id)
        return None

    timestamp = timezone.now()
    actor_id = actor.pk if actor is not None else None
    checksum = compute_checksum(
        table_name=table_name,
        record_id=str(record_id),
        operation=operation,
        old_snapshot=old_snapshot,
        new_snapshot=new_snapshot,
        diff=diff,
        actor_id=actor_id,
        timestamp=timestamp,
        audit_version=AuditLogEntry.AUDIT_VERSION,
    )

    entry = AuditLogEntry.objects.create(
        table_name=table_name,
        record_id=str(record_id),
        operation=operation,
        old_snapshot=old_snapshot,
        new_snapshot=new_snapshot,
        diff=diff,
        actor=actor,
        reason=reason or '',
        timestamp=timestamp,
        audit_version=AuditLogEntry.AUDIT_VERSION,
        checksum=checksum,
    )

    logger.info(
        "Audit %s %s:%s (%d field(s) changed)",
        operation, table_name, record_id, len(diff)
    )
    return entry


def verify_checksum(entry: AuditLogEntry) -> bool:
    """Recompute the checksum of a stored entry and compare it."""
    expected = compute_checksum(
        table_name=entry.table_name,
        record_id=entry.record_id,
        operation=entry.operation,
        old_snapshot=entry.old_snapshot,
        new_snapshot=entry.new_snapshot,
        diff=entry.diff,
        actor_id=entry.actor_id,
        timestamp=entry.timestamp,
        audit_version=entry.audit_version,
    )
    if expected != entry.checksum:
        logger.warning("Checksum mismatch on audit entry %s", entry.id)
        return False
    return True
