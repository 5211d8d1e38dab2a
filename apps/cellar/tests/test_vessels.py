"""Tests for vessel registration and status changes."""

from decimal import Decimal

import pytest

from apps.audit.models import AuditLogEntry, AuditOperation
from apps.cellar.models import VesselStatus, VolumeUnit
from apps.cellar.services import (
    InvalidEntryError,
    InvalidVesselTransitionError,
    change_vessel_status,
    list_vessels,
    record_removal,
    register_vessel,
    transfer,
)
from apps.units import Quantity, Unit


@pytest.mark.django_db
class TestRegisterVessel:

    def test_capacity_in_gallons_stored_as_liters(self, cellar_user):
        vessel = register_vessel(name='Foudre', capacity=Quantity(Decimal('500'), Unit.GALLON), actor=cellar_user)

        assert vessel.capacity_liters == Decimal('1892.706')
        assert vessel.capacity_unit == VolumeUnit.GALLON
        assert vessel.status == VesselStatus.AVAILABLE

    def test_registration_is_audited(self, tank):
        entry = AuditLogEntry.objects.get(table_name='vessels', record_id=str(tank.id))

        assert entry.operation == AuditOperation.CREATE
        assert entry.new_snapshot['name'] == 'Tank 1'
        assert entry.new_snapshot['occupant_batch_id'] is None

    def test_duplicate_name_rejected(self, tank, cellar_user):
        """Names are unique regardless of case."""
        with pytest.raises(InvalidEntryError):
            register_vessel(name='tank 1', capacity=Quantity.liters(10), actor=cellar_user)

    def test_zero_capacity_rejected(self, cellar_user):
        with pytest.raises(InvalidEntryError):
            register_vessel(name='Nothing', capacity=Quantity.liters(0), actor=cellar_user)


@pytest.mark.django_db
class TestChangeVesselStatus:

    def test_cleaning_round_trip(self, tank, cellar_user):
        vessel = change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.CLEANING, actor=cellar_user)
        assert vessel.status == VesselStatus.CLEANING

        vessel = change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.AVAILABLE, actor=cellar_user)
        assert vessel.status == VesselStatus.AVAILABLE

        updates = AuditLogEntry.objects.filter(
            table_name='vessels',
            record_id=str(tank.id),
            operation=AuditOperation.UPDATE,
        )
        assert updates.count() == 2

    def test_cannot_clean_vessel_with_liquid(self, filled_batch, tank, cellar_user):
        with pytest.raises(InvalidVesselTransitionError) as exc_info:
            change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.CLEANING, actor=cellar_user)

        assert exc_info.value.details['contents_liters'] == '100.000'

    def test_vessel_free_after_batch_moves_out(self, filled_batch, tank, tank_two, cellar_user):
        transfer(
            batch_id=filled_batch.id,
            from_vessel_id=tank.id,
            to_vessel_id=tank_two.id,
            quantity=Quantity.liters(100),
            actor=cellar_user,
        )

        vessel = change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.CLEANING, actor=cellar_user)
        assert vessel.status == VesselStatus.CLEANING

    def test_retired_is_terminal(self, tank, cellar_user):
        change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.RETIRED, actor=cellar_user)

        with pytest.raises(InvalidVesselTransitionError):
            change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.AVAILABLE, actor=cellar_user)

    def test_occupied_cannot_be_requested(self, tank, cellar_user):
        """OCCUPIED is only ever set by the ledger."""
        with pytest.raises(InvalidVesselTransitionError):
            change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.OCCUPIED, actor=cellar_user)

    def test_same_status_rejected(self, tank, cellar_user):
        with pytest.raises(InvalidVesselTransitionError):
            change_vessel_status(vessel_id=tank.id, new_status=VesselStatus.AVAILABLE, actor=cellar_user)

    def test_unknown_status(self, tank, cellar_user):
        with pytest.raises(InvalidVesselTransitionError):
            change_vessel_status(vessel_id=tank.id, new_status='flooded', actor=cellar_user)


@pytest.mark.django_db
class TestListVessels:

    def test_filter_by_status(self, filled_batch, tank, tank_two, barrel, cellar_user):
        occupied = list(list_vessels(status=VesselStatus.OCCUPIED))
        assert occupied == [tank]

        record_removal(
            batch_id=filled_batch.id,
            quantity=Quantity.liters(100),
            category='packaging',
            actor=cellar_user,
        )
        names = [vessel.name for vessel in list_vessels(status=VesselStatus.AVAILABLE)]
        assert names == ['Barrel 7', 'Tank 1', 'Tank 2']
