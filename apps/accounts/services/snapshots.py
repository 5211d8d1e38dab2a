"""Audit snapshots of operator accounts."""

USERS_TABLE = 'users'


def snapshot_user(user) -> dict:
    """Audited fields of a user. Password hashes never leave the model."""
    return {
        'id': user.id,
        'email': user.email,
        'display_name': user.display_name,
        'role': user.role,
        'is_active': user.is_active,
        'is_staff': user.is_staff,
        'deactivated_at': user.deactivated_at,
    }
