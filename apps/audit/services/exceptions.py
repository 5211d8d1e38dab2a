"""
Domain-specific exceptions for the audit app.

These exceptions represent invalid audit writes and lookups and should be
caught in views and converted to appropriate HTTP responses.
"""


class AuditServiceError(Exception):
    """Base exception for all audit service errors."""
    pass


class InvalidSnapshotError(AuditServiceError):
    """
    Raised when the snapshots passed to ``record`` do not fit the operation.

    A create needs a new snapshot and no old one, an update needs both,
    a delete or soft delete needs only the old snapshot, and a restore
    needs the new snapshot.
    """
    pass


class AuditEntryNotFoundError(AuditServiceError):
    """Raised when an audit entry does not exist."""
    pass


class InvalidAuditFilterError(AuditServiceError):
    """Raised when audit log filters are malformed (e.g. since > until)."""
    pass
