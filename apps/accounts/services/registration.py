"""Operator registration service."""

import logging

from django.db import IntegrityError, transaction

from apps.accounts.models import OperatorRole, User
from apps.audit.models import AuditOperation
from apps.audit.services import record as record_audit

from .exceptions import OperatorRegistrationError
from .snapshots import USERS_TABLE, snapshot_user

logger = logging.getLogger(__name__)


@transaction.atomic
def register_operator(
    *,
    email: str,
    password: str,
    display_name: str = "",
    role: str = OperatorRole.CELLAR_OPERATOR,
    created_by: User = None
) -> User:
    """
    Create an operator account.

    Args:
        email: Login email
        password: Password (will be hashed)
        display_name: Optional display name
        role: OperatorRole value
        created_by: Manager creating the account (None for self sign-up)

    Returns:
        Created User instance

    Raises:
        OperatorRegistrationError: If the email is taken or the role is unknown
    """
    if role not in OperatorRole.values:
        raise OperatorRegistrationError(f"Unknown role: {role}")
    if User.objects.filter(email__iexact=email).exists():
        raise OperatorRegistrationError("An account with this email already exists")

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                email=email,
                password=password,
                display_name=display_name,
                role=role,
            )
    except IntegrityError as e:
        raise OperatorRegistrationError(f"Registration failed: {e}")

    record_audit(
        operation=AuditOperation.CREATE,
        table_name=USERS_TABLE,
        record_id=user.id,
        new=snapshot_user(user),
        actor=created_by or user,
        reason='Operator registered',
    )
    logger.info("Registered operator %s with role %s", user.id, role)
    return user
