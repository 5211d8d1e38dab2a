import pytest
from django.urls import reverse
from rest_framework import status

from apps.audit.models import AuditOperation
from apps.audit.services import record


@pytest.fixture
def vessel_entries(auditor):
    created = record(
        operation=AuditOperation.CREATE,
        table_name='vessels',
        record_id='v1',
        new={'name': 'Tank 1', 'status': 'available'},
        actor=auditor,
    )
    updated = record(
        operation=AuditOperation.UPDATE,
        table_name='vessels',
        record_id='v1',
        old={'name': 'Tank 1', 'status': 'available'},
        new={'name': 'Tank 1', 'status': 'maintenance'},
        actor=auditor,
        reason='Valve replacement',
    )
    return created, updated


@pytest.mark.django_db
class TestAuditLogList:
    """Tests for GET /api/audit/"""

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse('audit:audit-entry-list'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_lists_entries(self, authenticated_client, vessel_entries):
        """All entries are listed newest first."""
        response = authenticated_client.get(reverse('audit:audit-entry-list'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        assert response.data['results'][0]['operation'] == 'update'
        assert response.data['results'][0]['summary'] == 'status: available -> maintenance'

    def test_filters_by_operation(self, authenticated_client, vessel_entries):
        response = authenticated_client.get(
            reverse('audit:audit-entry-list'),
            {'table_name': 'vessels', 'operation': 'create'}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['new_snapshot']['name'] == 'Tank 1'

    def test_rejects_unknown_operation(self, authenticated_client):
        response = authenticated_client.get(reverse('audit:audit-entry-list'), {'operation': 'purge'})
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestAuditEntryDetail:
    """Tests for entry detail actions."""

    def test_rendered_update(self, authenticated_client, vessel_entries):
        _, updated = vessel_entries
        url = reverse('audit:audit-entry-rendered', kwargs={'pk': updated.id})
        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['changes'][0]['to'] == 'maintenance'
        assert response.data['reason'] == 'Valve replacement'

    def test_verify_checksum(self, authenticated_client, vessel_entries):
        created, _ = vessel_entries
        url = reverse('audit:audit-entry-verify', kwargs={'pk': created.id})
        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['valid'] is True

    def test_entries_cannot_be_deleted(self, authenticated_client, vessel_entries):
        """The API is read-only."""
        created, _ = vessel_entries
        url = reverse('audit:audit-entry-detail', kwargs={'pk': created.id})
        response = authenticated_client.delete(url)
        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
