"""
Domain exceptions for the cellar app.

These exceptions represent ledger rule violations and are caught in views
and converted to HTTP responses. Every error carries a developer-facing
``message``, an operator-facing ``user_message`` and a ``details`` dict
with the ids and quantities involved.

Exception Hierarchy:
    CellarServiceError (base)
    ├── BatchNotFoundError / VesselNotFoundError / DistillationNotFoundError
    ├── LedgerValidationError              (400, nothing written)
    │   ├── CapacityExceededError
    │   ├── InsufficientVolumeError
    │   ├── EmptyBlendError
    │   ├── AdjustmentDirectionError
    │   ├── ZeroAdjustmentError
    │   ├── InvalidEntryError
    │   ├── InvalidVesselTransitionError
    │   ├── VesselUnavailableError
    │   ├── SourceVesselRequiredError
    │   ├── MissingAbvError
    │   ├── BatchClosedError
    │   ├── BatchNotEmptyError
    │   └── DistillationStateError
    ├── LedgerConflictError                (409, retryable)
    │   ├── VesselOccupiedError
    │   └── ConcurrentModificationError
    └── LedgerIntegrityError               (500, never auto-healed)

Usage:
    from apps.cellar.services.exceptions import CapacityExceededError

    if requested > free_space:
        raise CapacityExceededError(
            f"{requested} L exceeds free space {free_space} L",
            user_message=f'Vessel "{vessel.name}" cannot hold that much.',
            details={'vessel_id': str(vessel.id)},
        )
"""


class CellarServiceError(Exception):
    """
    Base exception for all cellar service errors.

    Catch this in views to handle any ledger error:

        try:
            transfer(...)
        except CellarServiceError as e:
            return Response(e.as_dict(), status=...)
    """

    retryable = False
    is_validation = False

    def __init__(self, message, user_message=None, details=None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.details = details or {}

    @property
    def code(self):
        return self.__class__.__name__

    def as_dict(self):
        return {
            'error': self.user_message,
            'code': self.code,
            'message': self.message,
            'details': self.details,
            'retryable': self.retryable,
        }


class BatchNotFoundError(CellarServiceError):
    """Raised when a batch does not exist."""
    pass


class VesselNotFoundError(CellarServiceError):
    """Raised when a vessel does not exist."""
    pass


class DistillationNotFoundError(CellarServiceError):
    """Raised when a distillation record does not exist."""
    pass


class LedgerValidationError(CellarServiceError):
    """Base for errors detected before anything is written."""

    is_validation = True


class CapacityExceededError(LedgerValidationError):
    """Raised when a vessel would hold more than its capacity."""
    pass


class InsufficientVolumeError(LedgerValidationError):
    """Raised when a batch (or its share of a vessel) holds less than requested."""
    pass


class EmptyBlendError(LedgerValidationError):
    """Raised when a blend has no sources or a total volume of zero."""
    pass


class AdjustmentDirectionError(LedgerValidationError):
    """
    Raised when an adjustment type does not match the sign of the delta.

    Example: ``correction_up`` with a measured volume below the ledger
    volume, or ``evaporation`` with a measured volume above it.
    """
    pass


class ZeroAdjustmentError(LedgerValidationError):
    """Raised when a measured volume equals the ledger volume."""
    pass


class InvalidEntryError(LedgerValidationError):
    """Raised when a transaction entry does not satisfy the rules of its type."""
    pass


class InvalidVesselTransitionError(LedgerValidationError):
    """Raised when a vessel status change is not allowed."""
    pass


class VesselUnavailableError(LedgerValidationError):
    """Raised when liquid is moved into a vessel under cleaning, maintenance or retired."""
    pass


class SourceVesselRequiredError(LedgerValidationError):
    """Raised when a batch sits in several vessels and no vessel was named."""
    pass


class MissingAbvError(LedgerValidationError):
    """Raised when an operation needs an ABV and none is known."""
    pass


class BatchClosedError(LedgerValidationError):
    """Raised when a completed or cancelled batch is mutated."""
    pass


class BatchNotEmptyError(LedgerValidationError):
    """Raised when a batch still in a vessel is completed."""
    pass


class DistillationStateError(LedgerValidationError):
    """Raised when a distillation record is received twice."""
    pass


class LedgerConflictError(CellarServiceError):
    """Base for conflicts; the caller may re-fetch state and retry."""

    retryable = True


class VesselOccupiedError(LedgerConflictError):
    """Raised when a vessel already holds a different batch."""
    pass


class ConcurrentModificationError(LedgerConflictError):
    """Raised when a row lock cannot be taken or a version check fails."""
    pass


class LedgerIntegrityError(CellarServiceError):
    """
    Raised when a batch's cached volume disagrees with its transaction log.

    This is a data-integrity failure. It is logged at CRITICAL on the
    ``apps.cellar.integrity`` logger and requires a human-reviewed
    adjustment; the ledger never repairs it on its own.
    """
    pass
