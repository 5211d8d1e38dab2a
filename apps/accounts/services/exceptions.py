"""Domain-specific exceptions for accounts services."""


class AccountsServiceError(Exception):
    """Base exception for accounts services."""
    pass


class OperatorRegistrationError(AccountsServiceError):
    """Raised when an operator account cannot be created."""
    pass


class InvalidCredentialsError(AccountsServiceError):
    """Raised when authentication credentials are invalid."""
    pass


class InactiveAccountError(AccountsServiceError):
    """Raised when account is deactivated."""
    pass


class UserNotFoundError(AccountsServiceError):
    """Raised when user does not exist."""
    pass


class RoleChangeError(AccountsServiceError):
    """Raised when a role change or deactivation is not allowed."""
    pass
