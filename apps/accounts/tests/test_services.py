import pytest

from apps.accounts.models import OperatorRole, User
from apps.accounts.services import (
    InactiveAccountError,
    InvalidCredentialsError,
    OperatorRegistrationError,
    RoleChangeError,
    USERS_TABLE,
    authenticate_operator,
    change_operator_role,
    deactivate_operator,
    reactivate_operator,
    register_operator,
)
from apps.audit.models import AuditLogEntry, AuditOperation


@pytest.mark.django_db
class TestRegisterOperator:
    """Tests for register_operator"""

    def test_register(self):
        user = register_operator(email='new@example.com', password='Str0ngPass!', display_name='New')

        assert user.role == OperatorRole.CELLAR_OPERATOR
        assert user.check_password('Str0ngPass!')

    def test_registration_is_audited_without_password(self):
        user = register_operator(email='new@example.com', password='Str0ngPass!')

        entry = AuditLogEntry.objects.get(table_name=USERS_TABLE, record_id=str(user.id))
        assert entry.operation == AuditOperation.CREATE
        assert 'password' not in entry.new_snapshot
        assert entry.new_snapshot['email'] == 'new@example.com'

    def test_duplicate_email(self, user):
        with pytest.raises(OperatorRegistrationError):
            register_operator(email='OPERATOR@example.com', password='Str0ngPass!')

    def test_unknown_role(self):
        with pytest.raises(OperatorRegistrationError):
            register_operator(email='new@example.com', password='Str0ngPass!', role='brewer')


@pytest.mark.django_db
class TestAuthenticateOperator:
    """Tests for authenticate_operator"""

    def test_success_updates_last_login(self, user):
        assert user.last_login is None

        authenticated = authenticate_operator(email='operator@example.com', password='TestPass123!')

        assert authenticated.pk == user.pk
        assert authenticated.last_login is not None

    def test_wrong_password(self, user):
        with pytest.raises(InvalidCredentialsError):
            authenticate_operator(email='operator@example.com', password='wrong')

    def test_unknown_email(self, db):
        with pytest.raises(InvalidCredentialsError):
            authenticate_operator(email='nobody@example.com', password='TestPass123!')

    def test_inactive(self, user_inactive):
        with pytest.raises(InactiveAccountError):
            authenticate_operator(email='inactive@example.com', password='TestPass123!')


@pytest.mark.django_db
class TestOperatorManagement:
    """Tests for role changes and deactivation"""

    def test_change_role(self, manager, user):
        updated = change_operator_role(user_id=user.id, role=OperatorRole.COMPLIANCE_OFFICER, actor=manager)

        assert updated.role == OperatorRole.COMPLIANCE_OFFICER
        entry = AuditLogEntry.objects.get(table_name=USERS_TABLE, operation=AuditOperation.UPDATE)
        assert entry.changed_fields == ['role']
        assert entry.actor == manager

    def test_operator_cannot_change_roles(self, manager, user):
        with pytest.raises(RoleChangeError):
            change_operator_role(user_id=manager.id, role=OperatorRole.VIEWER, actor=user)

    def test_manager_cannot_demote_self(self, manager):
        with pytest.raises(RoleChangeError):
            change_operator_role(user_id=manager.id, role=OperatorRole.VIEWER, actor=manager)

    def test_deactivate_and_reactivate(self, manager, user):
        deactivate_operator(user_id=user.id, actor=manager, reason='Left the cidery')
        user.refresh_from_db()
        assert user.is_active is False
        assert user.deactivated_at is not None

        reactivate_operator(user_id=user.id, actor=manager)
        user.refresh_from_db()
        assert user.is_active is True

        operations = list(
            AuditLogEntry.objects
            .filter(table_name=USERS_TABLE, record_id=str(user.id))
            .order_by('timestamp')
            .values_list('operation', flat=True)
        )
        assert operations == [AuditOperation.SOFT_DELETE, AuditOperation.RESTORE]

    def test_cannot_deactivate_self(self, manager):
        with pytest.raises(RoleChangeError):
            deactivate_operator(user_id=manager.id, actor=manager)

    def test_account_is_never_deleted(self, manager, user):
        deactivate_operator(user_id=user.id, actor=manager)

        assert User.objects.filter(pk=user.pk).exists()
