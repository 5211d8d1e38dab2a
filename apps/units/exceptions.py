"""Domain-specific exceptions for unit conversion and quantities."""


class UnitsError(Exception):
    """Base exception for unit conversion errors."""
    pass


class UnknownUnitError(UnitsError):
    """Raised when a unit symbol is not recognised."""
    pass


class IncompatibleUnitsError(UnitsError):
    """Raised when converting across dimensions without a density factor."""
    pass


class InvalidQuantityError(UnitsError):
    """Raised when a quantity would be negative or carry an out-of-range ABV."""
    pass
