import pytest
from datetime import datetime
from decimal import Decimal
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.cellar.models import LossReason, RemovalCategory, TaxClass
from apps.cellar.services import create_batch, record_fill, record_loss, record_removal
from apps.units import Quantity


def at(year, month, day, hour=12):
    """Aware datetime in the project time zone."""
    return timezone.make_aware(datetime(year, month, day, hour))


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def compliance_user(db):
    """Create and return the compliance officer."""
    return User.objects.create_user(
        email='compliance@example.com',
        password='TestPass123!',
        display_name='Compliance Officer',
    )


@pytest.fixture
def authenticated_client(api_client, compliance_user):
    """Return an API client authenticated with JWT."""
    refresh = RefreshToken.for_user(compliance_user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


@pytest.fixture
def march_activity(compliance_user):
    """
    Hard cider with 200 L on hand before March 2026, then in March:
    +100 L pressed, -10 L lees, -50 L removed tax-paid. 240 L at close.
    """
    batch = create_batch(
        name='Dabinett 2026',
        tax_class=TaxClass.HARD_CIDER,
        abv=Decimal('6.5'),
        actor=compliance_user,
    )
    record_fill(batch_id=batch.id, quantity=Quantity.liters(200), actor=compliance_user, occurred_at=at(2026, 2, 15))
    record_fill(batch_id=batch.id, quantity=Quantity.liters(100), actor=compliance_user, occurred_at=at(2026, 3, 5))
    record_loss(
        batch_id=batch.id,
        quantity=Quantity.liters(10),
        loss_reason=LossReason.LEES,
        actor=compliance_user,
        occurred_at=at(2026, 3, 10),
    )
    record_removal(
        batch_id=batch.id,
        quantity=Quantity.liters(50),
        category=RemovalCategory.TAX_PAID,
        actor=compliance_user,
        occurred_at=at(2026, 3, 20),
    )
    return batch


@pytest.fixture
def brandy_on_hand(compliance_user):
    """100 L of apple brandy at 55% ABV, received before March 2026."""
    batch = create_batch(
        name='Apple brandy lot 1',
        tax_class=TaxClass.APPLE_BRANDY,
        abv=Decimal('55'),
        actor=compliance_user,
    )
    record_fill(
        batch_id=batch.id,
        quantity=Quantity.liters(100, abv=55),
        actor=compliance_user,
        occurred_at=at(2026, 2, 1),
    )
    return batch
