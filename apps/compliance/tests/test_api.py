import pytest
from django.urls import reverse
from rest_framework import status

from apps.compliance.models import ReconciliationSnapshot, ReportedBalance


@pytest.mark.django_db
class TestReconciliationAPI:
    """Tests for /api/compliance/reconciliations/"""

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse('compliance:reconciliation-list'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_reconcile_month(self, authenticated_client, march_activity):
        response = authenticated_client.post(
            reverse('compliance:reconciliation-list'),
            {'period_type': 'monthly', 'year': 2026, 'number': 3},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['balanced'] is True
        assert response.data['warnings'] == []
        snapshot = response.data['snapshot']
        assert snapshot['label'] == 'March 2026'
        assert snapshot['period_start'] == '2026-03-01'
        assert snapshot['lines'][0]['tax_class'] == 'hard_cider'

    def test_reconcile_returns_warnings(self, authenticated_client, march_activity, compliance_user):
        ReportedBalance.objects.create(
            tax_class='hard_cider',
            period_start='2026-03-01',
            period_end='2026-03-31',
            opening_gallons='0',
            created_by=compliance_user,
        )

        response = authenticated_client.post(
            reverse('compliance:reconciliation-list'),
            {'period_start': '2026-03-01', 'period_end': '2026-03-31'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['balanced'] is False
        assert response.data['warnings'][0]['kind'] == 'opening'
        assert response.data['warnings'][0]['type'] == 'reconciliation_discrepancy'

    def test_reconcile_needs_a_period(self, authenticated_client):
        response = authenticated_client.post(
            reverse('compliance:reconciliation-list'), {'year': 2026}, format='json'
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_reconcile_dates_reversed(self, authenticated_client):
        response = authenticated_client.post(
            reverse('compliance:reconciliation-list'),
            {'period_start': '2026-03-31', 'period_end': '2026-03-01'},
            format='json'
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_snapshot_for_period(self, authenticated_client, march_activity):
        authenticated_client.post(
            reverse('compliance:reconciliation-list'),
            {'period_start': '2026-03-01', 'period_end': '2026-03-31'},
            format='json'
        )

        response = authenticated_client.get(
            reverse('compliance:reconciliation-snapshot'),
            {'period_type': 'monthly', 'year': 2026, 'number': 3}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['id'] == str(ReconciliationSnapshot.objects.get().id)

    def test_snapshot_missing(self, authenticated_client):
        response = authenticated_client.get(
            reverse('compliance:reconciliation-snapshot'),
            {'period_start': '2026-03-01', 'period_end': '2026-03-31'}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestReportedBalanceAPI:
    """Tests for /api/compliance/reported-balances/"""

    def test_create_and_list(self, authenticated_client):
        payload = {
            'tax_class': 'hard_cider',
            'period_start': '2026-03-01',
            'period_end': '2026-03-31',
            'opening_gallons': '52.834',
            'closing_gallons': '63.401',
            'source': 'Excise return',
        }

        create_response = authenticated_client.post(
            reverse('compliance:reported-balance-list'), payload, format='json'
        )
        list_response = authenticated_client.get(
            reverse('compliance:reported-balance-list'), {'period_start': '2026-03-01'}
        )

        assert create_response.status_code == status.HTTP_201_CREATED
        assert create_response.data['opening_gallons'] == '52.834'
        assert list_response.data['count'] == 1

    def test_negative_rejected(self, authenticated_client):
        response = authenticated_client.post(
            reverse('compliance:reported-balance-list'),
            {
                'tax_class': 'hard_cider',
                'period_start': '2026-03-01',
                'period_end': '2026-03-31',
                'opening_gallons': '-1',
            },
            format='json'
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestTaxAPI:
    """Tests for /api/compliance/tax/"""

    def test_hard_cider_tax(self, authenticated_client):
        response = authenticated_client.post(
            reverse('compliance:hard-cider-tax'), {'taxable_gallons': '1000'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['net_tax_owed'] == '170.00'

    def test_period_tax(self, authenticated_client, march_activity):
        response = authenticated_client.get(
            reverse('compliance:period-tax'), {'period_type': 'monthly', 'year': 2026, 'number': 3}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['label'] == 'March 2026'
        assert response.data['taxable_gallons'] == '13.209'
