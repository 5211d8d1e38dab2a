"""
Audit app services layer.

Snapshot diffing, immutable entry recording and read-side rendering.
"""

from .exceptions import (
    AuditServiceError,
    InvalidSnapshotError,
    AuditEntryNotFoundError,
    InvalidAuditFilterError,
)

from .diff import (
    ChangeKind,
    FieldDiff,
    compute_diff,
    normalize_snapshot,
    summarize_changes,
)

from .recording import (
    record,
    redact,
    verify_checksum,
)

from .queries import (
    get_audit_log,
    get_audit_entry,
    render_entry,
)


__all__ = [
    # Exceptions
    'AuditServiceError',
    'InvalidSnapshotError',
    'AuditEntryNotFoundError',
    'InvalidAuditFilterError',

    # Diffing
    'ChangeKind',
    'FieldDiff',
    'compute_diff',
    'normalize_snapshot',
    'summarize_changes',

    # Recording
    'record',
    'redact',
    'verify_checksum',

    # Queries
    'get_audit_log',
    'get_audit_entry',
    'render_entry',
]
