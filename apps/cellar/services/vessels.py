"""Vessel registration and status lifecycle service."""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.db import transaction

from apps.accounts.models import User
from apps.audit.models import AuditOperation
from apps.audit.services import record as record_audit
from apps.cellar.models import Vessel, VesselMaterial, VesselStatus, VesselType, VolumeUnit
from apps.units import Quantity, Unit
from apps.units.conversions import quantize_volume

from .exceptions import InvalidEntryError, InvalidVesselTransitionError
from .ledger import active_occupancy, check_version, lock_rows, row_key, vessel_contents
from .snapshots import snapshot_vessel

logger = logging.getLogger(__name__)

VESSELS_TABLE = 'vessels'

# Statuses an operator may request. OCCUPIED is set by the ledger only.
VESSEL_TRANSITIONS = {
    VesselStatus.AVAILABLE: {VesselStatus.CLEANING, VesselStatus.MAINTENANCE, VesselStatus.RETIRED},
    VesselStatus.OCCUPIED: {VesselStatus.CLEANING, VesselStatus.MAINTENANCE, VesselStatus.RETIRED},
    VesselStatus.CLEANING: {VesselStatus.AVAILABLE, VesselStatus.MAINTENANCE, VesselStatus.RETIRED},
    VesselStatus.MAINTENANCE: {VesselStatus.AVAILABLE, VesselStatus.CLEANING, VesselStatus.RETIRED},
    VesselStatus.RETIRED: set(),
}
LIQUID_FREE_STATUSES = frozenset({VesselStatus.CLEANING, VesselStatus.MAINTENANCE, VesselStatus.RETIRED})


@transaction.atomic
def register_vessel(
    *,
    name: str,
    capacity: Quantity,
    actor: Optional[User] = None,
    vessel_type: str = VesselType.FERMENTER,
    material: str = VesselMaterial.STAINLESS_STEEL,
    location: str = ''
) -> Vessel:
    """
    Register a new, empty vessel.

    Capacity may be given in any volume unit; it is stored in liters and
    the original unit is kept for display.

    Raises:
        InvalidEntryError: If the name is taken or the capacity is not positive
    """
    liters = quantize_volume(capacity.in_liters())
    if liters <= 0:
        raise InvalidEntryError("Vessel capacity must be greater than zero")
    if Vessel.objects.filter(name__iexact=name).exists():
        raise InvalidEntryError(
            f"Vessel '{name}' already exists",
            user_message=f'A vessel named "{name}" already exists.',
        )

    unit = VolumeUnit.GALLON if capacity.unit == Unit.GALLON else VolumeUnit.LITER
    vessel = Vessel.objects.create(
        name=name,
        capacity_liters=liters,
        capacity_unit=unit,
        vessel_type=vessel_type,
        material=material,
        location=location,
    )
    record_audit(
        operation=AuditOperation.CREATE,
        table_name=VESSELS_TABLE,
        record_id=vessel.id,
        new=snapshot_vessel(vessel),
        actor=actor,
        reason='Vessel registered',
    )
    logger.info("Registered vessel %s (%s, %s L)", vessel.id, name, liters)
    return vessel


@transaction.atomic
def change_vessel_status(
    *,
    vessel_id: UUID,
    new_status: str,
    actor: Optional[User] = None,
    reason: str = '',
    expected_version: Optional[int] = None
) -> Vessel:
    """
    Move a vessel to cleaning, maintenance, available or retired.

    Args:
        vessel_id: Vessel to change
        new_status: Target VesselStatus (never OCCUPIED)
        actor: User performing the change
        reason: Free text stored on the audit entry
        expected_version: Optimistic check on the vessel version

    Returns:
        Updated Vessel

    Raises:
        InvalidVesselTransitionError: If the transition is not allowed, the
            vessel still holds liquid, or it is being freed while occupied
    """
    try:
        new_status = VesselStatus(new_status)
    except ValueError:
        raise InvalidVesselTransitionError(f"Unknown vessel status: {new_status}")

    _, vessels = lock_rows(vessel_ids=[vessel_id])
    vessel = vessels[row_key(vessel_id)]
    check_version(vessel, expected_version)
    current = VesselStatus(vessel.status)
    details = {'vessel_id': str(vessel.id), 'from': current.value, 'to': new_status.value}

    if new_status == current:
        raise InvalidVesselTransitionError(
            f"Vessel {vessel.name} is already {current.value}",
            user_message=f'Vessel "{vessel.name}" is already {current.label.lower()}.',
            details=details,
        )
    if new_status not in VESSEL_TRANSITIONS[current]:
        raise InvalidVesselTransitionError(
            f"Vessel {vessel.name} cannot go from {current.value} to {new_status.value}",
            user_message=f'Vessel "{vessel.name}" cannot go from {current.label} to {new_status.label}.',
            details={**details, 'allowed': sorted(s.value for s in VESSEL_TRANSITIONS[current])},
        )

    contents = vessel_contents(vessel)
    if new_status in LIQUID_FREE_STATUSES and contents > Decimal('0'):
        raise InvalidVesselTransitionError(
            f"Vessel {vessel.name} still holds {contents} L",
            user_message=f'Empty vessel "{vessel.name}" before setting it to {new_status.label.lower()}.',
            details={**details, 'contents_liters': str(contents)},
        )
    occupancy = active_occupancy(vessel)
    if occupancy is not None:
        if contents > Decimal('0') or new_status == VesselStatus.AVAILABLE:
            raise InvalidVesselTransitionError(
                f"Vessel {vessel.name} is occupied by batch {occupancy.batch_id}",
                user_message=f'Vessel "{vessel.name}" still has a batch assigned.',
                details={**details, 'occupant_batch_id': str(occupancy.batch_id)},
            )

    before = snapshot_vessel(vessel)
    vessel.status = new_status.value
    vessel.version += 1
    vessel.save(update_fields=['status', 'version', 'updated_at'])
    record_audit(
        operation=AuditOperation.UPDATE,
        table_name=VESSELS_TABLE,
        record_id=vessel.id,
        old=before,
        new=snapshot_vessel(vessel),
        actor=actor,
        reason=reason or f"Status -> {new_status.value}",
    )
    logger.info("Vessel %s status %s -> %s", vessel.id, current.value, new_status.value)
    return vessel


def list_vessels(*, status: Optional[str] = None):
    queryset = Vessel.objects.all()
    if status:
        queryset = queryset.filter(status=status)
    return queryset
