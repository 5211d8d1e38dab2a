from decimal import Decimal

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def auditor(db):
    """Create and return the user responsible for audited changes."""
    return User.objects.create_user(
        email='auditor@example.com',
        password='TestPass123!',
        display_name='Cellar Auditor',
    )


@pytest.fixture
def authenticated_client(api_client, auditor):
    """Return an API client authenticated with JWT."""
    refresh = RefreshToken.for_user(auditor)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


@pytest.fixture
def batch_snapshot():
    """A representative batch snapshot."""
    return {
        'id': 'b5d1f0a6-3c1e-4b52-9a57-0d7c4b2f9e11',
        'name': 'Kingston Black 2026',
        'status': 'fermentation',
        'abv': Decimal('6.5'),
        'current_volume_liters': Decimal('100.000'),
        'locations': {'tank-1': Decimal('100.000')},
        'version': 1,
    }
