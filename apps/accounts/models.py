# ==========================================
# apps/accounts/models.py
# ==========================================

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
import uuid


class OperatorRole(models.TextChoices):
    CELLAR_OPERATOR = 'cellar_operator', 'Cellar operator'
    CELLAR_MANAGER = 'cellar_manager', 'Cellar manager'
    COMPLIANCE_OFFICER = 'compliance_officer', 'Compliance officer'
    VIEWER = 'viewer', 'Viewer'


class UserManager(BaseUserManager):
    """Manager for email-based operator accounts."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')

        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', OperatorRole.CELLAR_MANAGER)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True')

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Cidery staff account.

    Every ledger entry and audit record names the User who made it, so
    accounts are deactivated rather than deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255, db_index=True)
    display_name = models.CharField(max_length=100, blank=True)
    role = models.CharField(max_length=30, choices=OperatorRole.choices, default=OperatorRole.CELLAR_OPERATOR)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    last_login = models.DateTimeField(null=True, blank=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['role'], name='users_role_idx'),
            models.Index(fields=['created_at'], name='users_created_idx'),
        ]

    def __str__(self):
        return self.email

    def get_display_name(self):
        """Return display name or email prefix."""
        return self.display_name or self.email.split('@')[0]

    @property
    def is_manager(self) -> bool:
        return self.is_superuser or self.role == OperatorRole.CELLAR_MANAGER

    @property
    def can_write_ledger(self) -> bool:
        return self.is_active and self.role != OperatorRole.VIEWER
