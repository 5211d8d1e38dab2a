"""
Distillery round trip.

Cider shipped to a contract distillery leaves the cellar as a Removal
(category ``distillery``); the brandy that comes back is a new batch
filled with a ``distillery_return`` Fill. The record in between keeps
proof gallons on both legs for excise reporting.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.db import DatabaseError, transaction
from django.conf import settings
from django.utils import timezone

from apps.accounts.models import User
from apps.cellar.models import (
    BatchSource,
    DistillationRecord,
    DistillationStatus,
    FillSource,
    RemovalCategory,
    TaxClass,
)
from apps.units import Quantity, Unit
from apps.units.conversions import proof_gallons, quantize_volume

from .exceptions import (
    ConcurrentModificationError,
    DistillationNotFoundError,
    DistillationStateError,
    InvalidEntryError,
    MissingAbvError,
)
from .ledger import create_batch, get_batch, record_fill, record_removal

logger = logging.getLogger(__name__)


@transaction.atomic
def send_to_distillery(
    *,
    batch_id: UUID,
    quantity: Quantity,
    distillery_name: str,
    actor: Optional[User] = None,
    vessel_id: Optional[UUID] = None,
    abv: Optional[Decimal] = None,
    notes: str = '',
    occurred_at: Optional[datetime] = None
) -> DistillationRecord:
    """
    Ship cider to a distillery (sendToDistillery).

    Deducts the volume with a Removal entry; the vessel is freed when the
    batch is emptied out of it.

    Raises:
        MissingAbvError: If neither the call nor the batch gives an ABV
        InsufficientVolumeError: If the batch holds less than quantity
    """
    if not (distillery_name or '').strip():
        raise InvalidEntryError("Distillery name is required")

    batch = get_batch(batch_id)
    abv_sent = abv if abv is not None else (quantity.abv if quantity.abv is not None else batch.abv)
    if abv_sent is None:
        raise MissingAbvError(
            f"Batch {batch.batch_number} has no recorded ABV",
            user_message=f'Record the ABV of "{batch.name}" before sending it to a distillery.',
            details={'batch_id': str(batch.id)},
        )

    result = record_removal(
        batch_id=batch_id,
        quantity=quantity,
        category=RemovalCategory.DISTILLERY,
        actor=actor,
        vessel_id=vessel_id,
        notes=notes or f"Sent to {distillery_name}",
        occurred_at=occurred_at,
    )
    entry = result.entries[0]
    liters = -entry.delta_liters

    record = DistillationRecord.objects.create(
        source_batch=result.batch,
        source_vessel=entry.vessel,
        distillery_name=distillery_name,
        volume_sent_liters=liters,
        abv_sent=abv_sent,
        proof_gallons_sent=quantize_volume(proof_gallons(liters, Unit.LITER, abv_sent)),
        sent_at=occurred_at or timezone.now(),
        removal_operation_id=result.operation_id,
        notes=notes,
        created_by=actor,
    )
    logger.info(
        "Sent %s L of batch %s at %s%% to %s (record %s)",
        liters, batch.id, abv_sent, distillery_name, record.id
    )
    return record


@transaction.atomic
def receive_from_distillery(
    *,
    record_id: UUID,
    quantity: Quantity,
    abv: Optional[Decimal] = None,
    actor: Optional[User] = None,
    vessel_id: Optional[UUID] = None,
    name: str = '',
    tax_class: str = TaxClass.APPLE_BRANDY,
    occurred_at: Optional[datetime] = None
) -> DistillationRecord:
    """
    Receive spirit back from a distillery (receiveFromDistillery).

    Creates the spirit batch, fills it (into ``vessel_id`` or as
    unassigned stock) and links it to the cider it was made from.

    Raises:
        DistillationNotFoundError: If the record does not exist
        DistillationStateError: If the record was already received
        MissingAbvError: If no ABV is given
    """
    try:
        record = (
            DistillationRecord.objects
            .select_for_update(nowait=getattr(settings, 'LEDGER_LOCK_NOWAIT', True))
            .select_related('source_batch')
            .get(id=record_id)
        )
    except DistillationRecord.DoesNotExist:
        raise DistillationNotFoundError(
            f"Distillation record {record_id} not found",
            user_message="Distillation record not found.",
            details={'record_id': str(record_id)},
        )
    except DatabaseError as exc:
        raise ConcurrentModificationError(
            f"Distillation record {record_id} is locked by another operation",
            user_message="Someone else is receiving this shipment. Please retry.",
            details={'record_id': str(record_id)},
        ) from exc

    if record.status == DistillationStatus.RECEIVED:
        raise DistillationStateError(
            f"Distillation record {record.id} was already received",
            user_message="This shipment has already been received.",
            details={'record_id': str(record.id), 'received_batch_id': str(record.received_batch_id)},
        )

    abv_received = abv if abv is not None else quantity.abv
    if abv_received is None:
        raise MissingAbvError("The ABV of the received spirit is required")

    source = record.source_batch
    spirit = create_batch(
        name=name or f"{source.name} brandy",
        actor=actor,
        tax_class=tax_class,
        abv=abv_received,
    )
    liters = quantize_volume(quantity.in_liters())
    BatchSource.objects.create(
        batch=spirit,
        source_batch=source,
        source_label=record.distillery_name,
        volume_liters=record.volume_sent_liters,
        abv=record.abv_sent,
        proportion=Decimal('1'),
        operation_id=record.removal_operation_id,
    )
    record_fill(
        batch_id=spirit.id,
        quantity=Quantity(liters, Unit.LITER),
        abv=abv_received,
        actor=actor,
        vessel_id=vessel_id,
        reason_code=FillSource.DISTILLERY_RETURN,
        notes=f"Received from {record.distillery_name}",
        occurred_at=occurred_at,
    )

    record.received_batch = spirit
    record.volume_received_liters = liters
    record.abv_received = abv_received
    record.proof_gallons_received = quantize_volume(proof_gallons(liters, Unit.LITER, abv_received))
    record.received_at = occurred_at or timezone.now()
    record.status = DistillationStatus.RECEIVED
    record.save()

    logger.info(
        "Received %s L at %s%% from %s into batch %s (record %s)",
        liters, abv_received, record.distillery_name, spirit.id, record.id
    )
    return record


def get_distillation(record_id: UUID) -> DistillationRecord:
    try:
        return DistillationRecord.objects.select_related('source_batch', 'received_batch').get(id=record_id)
    except DistillationRecord.DoesNotExist:
        raise DistillationNotFoundError(
            f"Distillation record {record_id} not found",
            user_message="Distillation record not found.",
            details={'record_id': str(record_id)},
        )
