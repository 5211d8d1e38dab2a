import uuid
from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework import status

from apps.cellar.models import Batch, TransactionEntry, VesselStatus
from apps.cellar.services import current_volume


@pytest.mark.django_db
class TestVesselAPI:
    """Tests for /api/cellar/vessels/"""

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse('cellar:vessel-list'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_register_vessel(self, authenticated_client):
        response = authenticated_client.post(
            reverse('cellar:vessel-list'),
            {'name': 'Barrel 12', 'capacity': '59', 'unit': 'gal', 'vessel_type': 'barrel', 'material': 'oak'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['capacity_liters'] == '223.339'
        assert response.data['capacity_unit'] == 'gal'
        assert response.data['occupant_batch_id'] is None

    def test_register_duplicate_name(self, authenticated_client, tank):
        response = authenticated_client.post(
            reverse('cellar:vessel-list'),
            {'name': 'Tank 1', 'capacity': '100'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'InvalidEntryError'

    def test_list_filtered_by_status(self, authenticated_client, filled_batch, tank, tank_two):
        response = authenticated_client.get(reverse('cellar:vessel-list'), {'status': 'occupied'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['occupant_batch_id'] == str(filled_batch.id)

    def test_occupant_and_volume(self, authenticated_client, filled_batch, tank):
        occupant_response = authenticated_client.get(reverse('cellar:vessel-occupant', args=[tank.id]))
        volume_response = authenticated_client.get(reverse('cellar:vessel-volume', args=[tank.id]))

        assert occupant_response.data['batch']['id'] == str(filled_batch.id)
        assert volume_response.data['amount'] == '100.000'
        assert volume_response.data['unit'] == 'L'

    def test_change_status_with_liquid(self, authenticated_client, filled_batch, tank):
        response = authenticated_client.post(
            reverse('cellar:vessel-change-status', args=[tank.id]),
            {'status': 'cleaning'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'InvalidVesselTransitionError'

    def test_change_status(self, authenticated_client, tank):
        response = authenticated_client.post(
            reverse('cellar:vessel-change-status', args=[tank.id]),
            {'status': 'maintenance', 'reason': 'Valve replacement'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == VesselStatus.MAINTENANCE

    def test_unknown_vessel(self, authenticated_client):
        response = authenticated_client.get(reverse('cellar:vessel-volume', args=[uuid.uuid4()]))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_transactions(self, authenticated_client, filled_batch, tank):
        response = authenticated_client.get(reverse('cellar:vessel-transactions', args=[tank.id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['entry_type'] == 'fill'


@pytest.mark.django_db
class TestBatchAPI:
    """Tests for /api/cellar/batches/"""

    def test_create_batch(self, authenticated_client, cellar_user):
        response = authenticated_client.post(
            reverse('cellar:batch-list'),
            {'name': 'Yarlington Mill', 'abv': '6.5', 'tax_class': 'hard_cider'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['current_volume_liters'] == '0.000'
        assert response.data['created_by_email'] == cellar_user.email

    def test_list_search(self, authenticated_client, cider_batch, juice_batch):
        response = authenticated_client.get(reverse('cellar:batch-list'), {'search': 'kingston'})

        assert response.data['count'] == 1
        assert response.data['results'][0]['id'] == str(cider_batch.id)

    def test_assign(self, authenticated_client, cider_batch, tank):
        response = authenticated_client.post(
            reverse('cellar:batch-assign', args=[cider_batch.id]),
            {'vessel_id': str(tank.id), 'quantity': '120', 'unit': 'L'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['batch']['current_volume_liters'] == '120.000'
        assert response.data['entries'][0]['entry_type'] == 'fill'
        assert response.data['warnings'] == []

    def test_assign_over_capacity(self, authenticated_client, cider_batch, tank):
        """200 L into a 150 L tank is rejected and nothing is written."""
        response = authenticated_client.post(
            reverse('cellar:batch-assign', args=[cider_batch.id]),
            {'vessel_id': str(tank.id), 'quantity': '200'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'CapacityExceededError'
        assert TransactionEntry.objects.count() == 0

    def test_assign_occupied_is_conflict(self, authenticated_client, filled_batch, juice_batch, tank):
        response = authenticated_client.post(
            reverse('cellar:batch-assign', args=[juice_batch.id]),
            {'vessel_id': str(tank.id), 'quantity': '10'},
            format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['retryable'] is True

    def test_negative_quantity_rejected(self, authenticated_client, cider_batch, tank):
        response = authenticated_client.post(
            reverse('cellar:batch-assign', args=[cider_batch.id]),
            {'vessel_id': str(tank.id), 'quantity': '-5'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_transfer(self, authenticated_client, filled_batch, tank, tank_two):
        response = authenticated_client.post(
            reverse('cellar:batch-transfer', args=[filled_batch.id]),
            {'from_vessel_id': str(tank.id), 'to_vessel_id': str(tank_two.id), 'quantity': '100'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert [entry['delta_liters'] for entry in response.data['entries']] == ['-100.000', '100.000']

    def test_adjust_large_change_warns(self, authenticated_client, filled_batch):
        response = authenticated_client.post(
            reverse('cellar:batch-adjust', args=[filled_batch.id]),
            {'quantity': '80', 'adjustment_type': 'spillage', 'reason': 'Hose burst'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['batch']['current_volume_liters'] == '80.000'
        assert response.data['warnings'][0]['type'] == 'large_adjustment'

    def test_adjust_wrong_direction(self, authenticated_client, filled_batch):
        response = authenticated_client.post(
            reverse('cellar:batch-adjust', args=[filled_batch.id]),
            {'quantity': '90', 'adjustment_type': 'correction_up', 'reason': 'Re-dip'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'AdjustmentDirectionError'
        assert current_volume(filled_batch.id).amount == Decimal('100.000')

    def test_stale_version_is_conflict(self, authenticated_client, filled_batch):
        response = authenticated_client.post(
            reverse('cellar:batch-loss', args=[filled_batch.id]),
            {'quantity': '2', 'loss_reason': 'lees', 'expected_version': filled_batch.version - 1},
            format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'ConcurrentModificationError'

    def test_removal_and_complete(self, authenticated_client, filled_batch):
        removal = authenticated_client.post(
            reverse('cellar:batch-removal', args=[filled_batch.id]),
            {'quantity': '100', 'category': 'packaging'},
            format='json'
        )
        completion = authenticated_client.post(
            reverse('cellar:batch-change-status', args=[filled_batch.id]),
            {'status': 'completed'},
            format='json'
        )

        assert removal.status_code == status.HTTP_201_CREATED
        assert completion.status_code == status.HTTP_200_OK
        assert completion.data['completed_at'] is not None

    def test_split(self, authenticated_client, filled_batch, barrel):
        response = authenticated_client.post(
            reverse('cellar:batch-split', args=[filled_batch.id]),
            {'quantity': '25', 'to_vessel_id': str(barrel.id), 'name': 'Oak trial'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['related_batches'][0]['name'] == 'Oak trial'
        assert response.data['related_batches'][0]['current_volume_liters'] == '25.000'

    def test_volume_and_history(self, authenticated_client, filled_batch, tank):
        volume = authenticated_client.get(reverse('cellar:batch-volume', args=[filled_batch.id]))
        history = authenticated_client.get(reverse('cellar:batch-history', args=[filled_batch.id]))

        assert volume.data['amount'] == '100.000'
        assert volume.data['locations'] == [{'vessel_id': str(tank.id), 'liters': '100.000'}]
        assert len(history.data) == 1
        assert history.data[0]['actor'] == 'Cellar Operator'

    def test_unknown_batch(self, authenticated_client, tank):
        response = authenticated_client.post(
            reverse('cellar:batch-assign', args=[uuid.uuid4()]),
            {'vessel_id': str(tank.id), 'quantity': '10'},
            format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestBlendAPI:
    """Tests for /api/cellar/blends/"""

    def test_preview(self, authenticated_client):
        response = authenticated_client.post(
            reverse('cellar:blend-preview'),
            {'streams': [{'quantity': '10', 'abv': '10'}, {'quantity': '5', 'abv': '40'}]},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_volume_liters'] == '15.000'
        assert response.data['weighted_abv'] == '20.000'

    def test_create_blend(self, authenticated_client, filled_batch, barrel):
        response = authenticated_client.post(
            reverse('cellar:blend-create'),
            {
                'sources': [{'batch_id': str(filled_batch.id), 'quantity': '40'}],
                'destination_vessel_id': str(barrel.id),
                'name': 'Barrel selection',
            },
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['created'] is True
        assert response.data['total_volume_liters'] == '40.000'
        assert Batch.objects.filter(name='Barrel selection').exists()

    def test_blend_short_source(self, authenticated_client, filled_batch, barrel):
        response = authenticated_client.post(
            reverse('cellar:blend-create'),
            {
                'sources': [{'batch_id': str(filled_batch.id), 'quantity': '101'}],
                'destination_vessel_id': str(barrel.id),
            },
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'InsufficientVolumeError'


@pytest.mark.django_db
class TestDistillationAPI:
    """Tests for /api/cellar/distillations/"""

    def test_send_and_receive(self, authenticated_client, filled_batch, barrel):
        sent = authenticated_client.post(
            reverse('cellar:distillation-list'),
            {'batch_id': str(filled_batch.id), 'quantity': '100', 'distillery_name': 'Copper Pot Co.'},
            format='json'
        )
        assert sent.status_code == status.HTTP_201_CREATED
        assert sent.data['status'] == 'sent'

        received = authenticated_client.post(
            reverse('cellar:distillation-receive', args=[sent.data['id']]),
            {'quantity': '20', 'abv': '55', 'vessel_id': str(barrel.id)},
            format='json'
        )
        assert received.status_code == status.HTTP_200_OK
        assert received.data['status'] == 'received'
        assert received.data['proof_gallons_received'] == '5.812'

    def test_receive_unknown_record(self, authenticated_client):
        response = authenticated_client.post(
            reverse('cellar:distillation-receive', args=[uuid.uuid4()]),
            {'quantity': '20', 'abv': '55'},
            format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
