"""
Role changes and deactivation of operator accounts.

Accounts are referenced by every ledger entry they made, so they are
never deleted. Both operations are audited like ledger mutations.
"""

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import OperatorRole, User
from apps.audit.models import AuditOperation
from apps.audit.services import record as record_audit

from .exceptions import RoleChangeError, UserNotFoundError
from .snapshots import USERS_TABLE, snapshot_user

logger = logging.getLogger(__name__)


def _lock_user(user_id: UUID) -> User:
    try:
        return User.objects.select_for_update().get(pk=user_id)
    except User.DoesNotExist:
        raise UserNotFoundError(f"User {user_id} not found")


def _require_manager(actor: User) -> None:
    if not actor.is_manager:
        raise RoleChangeError("Only cellar managers can manage operator accounts")


@transaction.atomic
def change_operator_role(*, user_id: UUID, role: str, actor: User) -> User:
    """
    Give an operator a different role.

    Raises:
        UserNotFoundError: If the user does not exist
        RoleChangeError: If the actor is not a manager, the role is unknown,
            or a manager tries to demote themselves
    """
    _require_manager(actor)
    if role not in OperatorRole.values:
        raise RoleChangeError(f"Unknown role: {role}")

    user = _lock_user(user_id)
    if user.pk == actor.pk and role != OperatorRole.CELLAR_MANAGER:
        raise RoleChangeError("Managers cannot demote themselves")
    if user.role == role:
        return user

    before = snapshot_user(user)
    user.role = role
    user.save(update_fields=['role'])

    record_audit(
        operation=AuditOperation.UPDATE,
        table_name=USERS_TABLE,
        record_id=user.id,
        old=before,
        new=snapshot_user(user),
        actor=actor,
        reason=f"Role changed to {role}",
    )
    logger.info("User %s role changed to %s by %s", user.id, role, actor.id)
    return user


@transaction.atomic
def deactivate_operator(*, user_id: UUID, actor: User, reason: str = '') -> User:
    """
    Soft-delete an operator account.

    Raises:
        UserNotFoundError: If the user does not exist
        RoleChangeError: If the actor is not a manager or deactivates themselves
    """
    _require_manager(actor)
    user = _lock_user(user_id)
    if user.pk == actor.pk:
        raise RoleChangeError("You cannot deactivate your own account")
    if not user.is_active:
        return user

    before = snapshot_user(user)
    user.is_active = False
    user.deactivated_at = timezone.now()
    user.save(update_fields=['is_active', 'deactivated_at'])

    record_audit(
        operation=AuditOperation.SOFT_DELETE,
        table_name=USERS_TABLE,
        record_id=user.id,
        old=before,
        actor=actor,
        reason=reason or 'Operator deactivated',
    )
    logger.info("User %s deactivated by %s", user.id, actor.id)
    return user


@transaction.atomic
def reactivate_operator(*, user_id: UUID, actor: User) -> User:
    """
    Restore a deactivated operator account.

    Raises:
        UserNotFoundError: If the user does not exist
        RoleChangeError: If the actor is not a manager
    """
    _require_manager(actor)
    user = _lock_user(user_id)
    if user.is_active:
        return user

    user.is_active = True
    user.deactivated_at = None
    user.save(update_fields=['is_active', 'deactivated_at'])

    record_audit(
        operation=AuditOperation.RESTORE,
        table_name=USERS_TABLE,
        record_id=user.id,
        new=snapshot_user(user),
        actor=actor,
        reason='Operator reactivated',
    )
    logger.info("User %s reactivated by %s", user.id, actor.id)
    return user
