import pytest
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.cellar.models import TaxClass
from apps.cellar.services import assign, create_batch, register_vessel
from apps.units import Quantity


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def cellar_user(db):
    """Create and return the cellar operator."""
    return User.objects.create_user(
        email='cellar@example.com',
        password='TestPass123!',
        display_name='Cellar Operator',
    )


@pytest.fixture
def authenticated_client(api_client, cellar_user):
    """Return an API client authenticated with JWT."""
    refresh = RefreshToken.for_user(cellar_user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


@pytest.fixture
def tank(cellar_user):
    """150 L stainless fermenter."""
    return register_vessel(name='Tank 1', capacity=Quantity.liters(150), actor=cellar_user)


@pytest.fixture
def tank_two(cellar_user):
    """500 L stainless fermenter."""
    return register_vessel(name='Tank 2', capacity=Quantity.liters(500), actor=cellar_user)


@pytest.fixture
def barrel(cellar_user):
    """225 L oak barrel."""
    return register_vessel(
        name='Barrel 7',
        capacity=Quantity.liters(225),
        vessel_type='barrel',
        material='oak',
        actor=cellar_user,
    )


@pytest.fixture
def cider_batch(cellar_user):
    """Empty hard cider batch at 6% ABV."""
    return create_batch(
        name='Kingston Black 2026',
        tax_class=TaxClass.HARD_CIDER,
        abv=Decimal('6.0'),
        actor=cellar_user,
    )


@pytest.fixture
def juice_batch(cellar_user):
    """Empty juice batch at 0% ABV."""
    return create_batch(
        name='Fresh pressed juice',
        tax_class=TaxClass.NON_TAXABLE,
        abv=Decimal('0'),
        actor=cellar_user,
    )


@pytest.fixture
def filled_batch(cider_batch, tank, cellar_user):
    """Cider batch holding 100 L at 6% in Tank 1."""
    result = assign(
        batch_id=cider_batch.id,
        vessel_id=tank.id,
        quantity=Quantity.liters(100, abv=6),
        actor=cellar_user,
    )
    return result.batch
