"""Services for operator accounts."""

from .exceptions import (
    AccountsServiceError,
    OperatorRegistrationError,
    InvalidCredentialsError,
    InactiveAccountError,
    UserNotFoundError,
    RoleChangeError,
)
from .snapshots import USERS_TABLE, snapshot_user
from .registration import register_operator
from .authentication import authenticate_operator
from .operator_management import change_operator_role, deactivate_operator, reactivate_operator

__all__ = [
    # Exceptions
    'AccountsServiceError',
    'OperatorRegistrationError',
    'InvalidCredentialsError',
    'InactiveAccountError',
    'UserNotFoundError',
    'RoleChangeError',
    # Snapshots
    'USERS_TABLE',
    'snapshot_user',
    # Services
    'register_operator',
    'authenticate_operator',
    'change_operator_role',
    'deactivate_operator',
    'reactivate_operator',
]
