"""Operator authentication service."""

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User

from .exceptions import InvalidCredentialsError, InactiveAccountError


@transaction.atomic
def authenticate_operator(*, email: str, password: str) -> User:
    """
    Authenticate an operator with email and password.

    Uses select_for_update() to prevent race conditions when updating last_login.

    Raises:
        InvalidCredentialsError: If credentials are invalid
        InactiveAccountError: If account is deactivated
    """
    try:
        user = (
            User.objects
            .select_for_update()
            .get(email__iexact=email)
        )
    except User.DoesNotExist:
        raise InvalidCredentialsError("Invalid email or password")

    if not user.check_password(password):
        raise InvalidCredentialsError("Invalid email or password")

    if not user.is_active:
        raise InactiveAccountError("Account is deactivated")

    user.last_login = timezone.now()
    user.save(update_fields=['last_login'])

    return user
