"""
Domain-specific exceptions for the compliance app.

These exceptions represent invalid reporting requests and should be
caught in views and converted to appropriate HTTP responses.
"""


class ComplianceServiceError(Exception):
    """Base exception for all compliance service errors."""
    pass


class InvalidPeriodError(ComplianceServiceError):
    """Raised when a reporting period is malformed (bad month, start after end)."""
    pass


class SnapshotNotFoundError(ComplianceServiceError):
    """Raised when no reconciliation has been run for a period."""
    pass


class InvalidReportedBalanceError(ComplianceServiceError):
    """Raised when a reported balance is negative or names an unknown tax class."""
    pass
