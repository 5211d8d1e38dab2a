import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import OperatorRole, User


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def user(db):
    """Create and return a cellar operator."""
    return User.objects.create_user(
        email='operator@example.com',
        password='TestPass123!',
        display_name='Cellar Operator',
    )


@pytest.fixture
def manager(db):
    """Create and return a cellar manager."""
    return User.objects.create_user(
        email='manager@example.com',
        password='TestPass123!',
        display_name='Cellar Manager',
        role=OperatorRole.CELLAR_MANAGER,
    )


@pytest.fixture
def viewer(db):
    """Create and return a read-only user."""
    return User.objects.create_user(
        email='viewer@example.com',
        password='TestPass123!',
        role=OperatorRole.VIEWER,
    )


@pytest.fixture
def user_inactive(db):
    """Create and return an inactive user."""
    return User.objects.create_user(
        email='inactive@example.com',
        password='TestPass123!',
        display_name='Inactive User',
        is_active=False,
    )


def client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def authenticated_client(user):
    """Return an API client authenticated with JWT as the operator."""
    return client_for(user)


@pytest.fixture
def manager_client(manager):
    """Return an API client authenticated with JWT as the manager."""
    return client_for(manager)


@pytest.fixture
def viewer_client(viewer):
    """Return an API client authenticated with JWT as the viewer."""
    return client_for(viewer)
