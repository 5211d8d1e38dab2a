"""
Vessel-batch ledger service.

The single source of truth for what is where and how much. Every
mutation:

- runs inside one database transaction,
- locks the affected batch and vessel rows (batches first, then vessels,
  each ordered by id) with ``select_for_update(nowait=...)`` so that
  conflicting writers fail fast with ConcurrentModificationError,
- validates everything before writing,
- appends to the transaction log, refreshes the batch projection and
  writes exactly one audit entry per batch whose state changed.

Reads derive volumes from the log; ``Batch.current_volume_liters`` is a
projection that must always equal the log and is checked on every write.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.audit.models import AuditOperation
from apps.audit.services import record as record_audit
from apps.cellar.models import (
    AdjustmentType,
    Batch,
    BatchSource,
    BatchStatus,
    DECREASE_ONLY_ADJUSTMENTS,
    EntryType,
    FillSource,
    INCREASE_ONLY_ADJUSTMENTS,
    LossReason,
    Occupancy,
    RemovalCategory,
    TaxClass,
    TransactionEntry,
    Vessel,
    VesselStatus,
)
from apps.units import Quantity, Unit
from apps.units.conversions import quantize_volume, to_decimal

from .exceptions import (
    AdjustmentDirectionError,
    BatchClosedError,
    BatchNotEmptyError,
    BatchNotFoundError,
    CapacityExceededError,
    ConcurrentModificationError,
    InsufficientVolumeError,
    InvalidEntryError,
    LedgerIntegrityError,
    SourceVesselRequiredError,
    VesselNotFoundError,
    VesselOccupiedError,
    VesselUnavailableError,
    ZeroAdjustmentError,
)
from .snapshots import UNASSIGNED, batch_locations, snapshot_batch
from .transaction_log import append_entry, sum_deltas

logger = logging.getLogger(__name__)
integrity_logger = logging.getLogger('apps.cellar.integrity')

BATCHES_TABLE = 'batches'


@dataclass(frozen=True)
class LargeAdjustmentWarning:
    """Non-fatal: an adjustment moved the volume by more than the threshold."""

    batch_id: UUID
    delta_liters: Decimal
    previous_liters: Decimal
    ratio: Optional[Decimal]
    threshold: Decimal

    @property
    def message(self) -> str:
        if self.ratio is None:
            return f"Adjustment of {self.delta_liters} L on a batch that had no volume"
        return (
            f"Adjustment of {self.delta_liters} L is {self.ratio:.1%} of the "
            f"previous {self.previous_liters} L (threshold {self.threshold:.0%})"
        )

    def as_dict(self) -> dict:
        return {
            'type': 'large_adjustment',
            'batch_id': str(self.batch_id),
            'delta_liters': str(self.delta_liters),
            'previous_liters': str(self.previous_liters),
            'ratio': str(self.ratio) if self.ratio is not None else None,
            'threshold': str(self.threshold),
            'message': self.message,
        }


@dataclass
class LedgerResult:
    """Outcome of a ledger command."""

    batch: Batch
    operation_id: UUID
    entries: List[TransactionEntry] = field(default_factory=list)
    warnings: List[LargeAdjustmentWarning] = field(default_factory=list)
    related_batches: List[Batch] = field(default_factory=list)


# =============================================================================
# Locking and lookups
# =============================================================================

def _nowait() -> bool:
    return getattr(settings, 'LEDGER_LOCK_NOWAIT', True)


def _lock(model, ids, not_found):
    ids = sorted({i for i in ids if i is not None}, key=str)
    if not ids:
        return {}
    try:
        rows = list(
            model.objects
            .select_for_update(nowait=_nowait())
            .filter(id__in=ids)
            .order_by('id')
        )
    except DatabaseError as exc:
        logger.warning("Lock conflict on %s %s: %s", model.__name__, ids, exc)
        raise ConcurrentModificationError(
            f"{model.__name__} rows {[str(i) for i in ids]} are locked by another operation",
            user_message="Someone else is changing this right now. Please retry.",
            details={'ids': [str(i) for i in ids]},
        ) from exc

    found = {row.id: row for row in rows}
    for ident in ids:
        if _as_uuid(ident) not in found:
            raise not_found(ident)
    return {str(key): value for key, value in found.items()}


def _as_uuid(value):
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


def row_key(value) -> str:
    """Key of a row in the dicts returned by ``lock_rows``."""
    return str(_as_uuid(value))


def _batch_not_found(batch_id):
    return BatchNotFoundError(
        f"Batch with ID {batch_id} not found",
        user_message="Batch not found.",
        details={'batch_id': str(batch_id)},
    )


def _vessel_not_found(vessel_id):
    return VesselNotFoundError(
        f"Vessel with ID {vessel_id} not found",
        user_message="Vessel not found.",
        details={'vessel_id': str(vessel_id)},
    )


def lock_rows(
    *,
    batch_ids: Iterable = (),
    vessel_ids: Iterable = ()
) -> Tuple[Dict[str, Batch], Dict[str, Vessel]]:
    """
    Lock batch and vessel rows in a deterministic order.

    Returns:
        (batches by str(id), vessels by str(id))

    Raises:
        BatchNotFoundError / VesselNotFoundError: If an id does not exist
        ConcurrentModificationError: If a row is locked by another transaction
    """
    batches = _lock(Batch, [_as_uuid(i) for i in batch_ids if i is not None], _batch_not_found)
    vessels = _lock(Vessel, [_as_uuid(i) for i in vessel_ids if i is not None], _vessel_not_found)
    return batches, vessels


def get_batch(batch_id: UUID) -> Batch:
    try:
        return Batch.objects.get(id=batch_id)
    except (Batch.DoesNotExist, ValueError):
        raise _batch_not_found(batch_id)


def get_vessel(vessel_id: UUID) -> Vessel:
    try:
        return Vessel.objects.get(id=vessel_id)
    except (Vessel.DoesNotExist, ValueError):
        raise _vessel_not_found(vessel_id)


def check_version(obj, expected_version: Optional[int]) -> None:
    if expected_version is not None and obj.version != expected_version:
        raise ConcurrentModificationError(
            f"{obj.__class__.__name__} {obj.id} is at version {obj.version}, expected {expected_version}",
            user_message="This record changed since you loaded it. Refresh and retry.",
            details={'id': str(obj.id), 'version': obj.version, 'expected_version': expected_version},
        )


def require_open(batch: Batch) -> None:
    if not batch.is_open:
        raise BatchClosedError(
            f"Batch {batch.batch_number} is {batch.status}",
            user_message=f'Batch "{batch.name}" is {batch.get_status_display().lower()} and cannot change.',
            details={'batch_id': str(batch.id), 'status': batch.status},
        )


def require_accepts_liquid(vessel: Vessel) -> None:
    if not vessel.accepts_liquid:
        raise VesselUnavailableError(
            f"Vessel {vessel.name} is {vessel.status}",
            user_message=(
                f'Vessel "{vessel.name}" is {vessel.get_status_display().lower()} '
                f'and cannot receive liquid.'
            ),
            details={'vessel_id': str(vessel.id), 'status': vessel.status},
        )


def _quantity_liters(quantity: Quantity, what: str = 'Quantity') -> Decimal:
    liters = quantize_volume(quantity.in_liters())
    if liters <= 0:
        raise InvalidEntryError(f"{what} must be greater than zero")
    return liters


# =============================================================================
# Occupancy and projection helpers
# =============================================================================

def active_occupancy(vessel: Vessel) -> Optional[Occupancy]:
    return Occupancy.objects.filter(vessel=vessel, ended_at__isnull=True).first()


def vessel_contents(vessel: Vessel) -> Decimal:
    return sum_deltas(vessel_id=vessel.id)


def check_capacity(vessel: Vessel, adding_liters: Decimal) -> None:
    current = vessel_contents(vessel)
    if current + adding_liters > vessel.capacity_liters:
        free = vessel.capacity_liters - current
        raise CapacityExceededError(
            f"Adding {adding_liters} L to {vessel.name} exceeds capacity "
            f"{vessel.capacity_liters} L ({current} L already in it)",
            user_message=f'Vessel "{vessel.name}" only has room for {free} L.',
            details={
                'vessel_id': str(vessel.id),
                'capacity_liters': str(vessel.capacity_liters),
                'current_liters': str(current),
                'requested_liters': str(adding_liters),
            },
        )


def check_vessel_free_for(vessel: Vessel, batch: Batch) -> Optional[Occupancy]:
    """Return the vessel's occupancy by ``batch``; raise if another batch holds it."""
    occupancy = active_occupancy(vessel)
    if occupancy is not None and occupancy.batch_id != batch.id:
        raise VesselOccupiedError(
            f"Vessel {vessel.name} already holds batch {occupancy.batch_id}",
            user_message=f'Vessel "{vessel.name}" already holds another batch.',
            details={'vessel_id': str(vessel.id), 'occupant_batch_id': str(occupancy.batch_id)},
        )
    return occupancy


def occupy(vessel: Vessel, batch: Batch) -> None:
    if active_occupancy(vessel) is None:
        Occupancy.objects.create(vessel=vessel, batch=batch)
    if vessel.status != VesselStatus.OCCUPIED:
        vessel.status = VesselStatus.OCCUPIED
    vessel.version += 1
    vessel.save(update_fields=['status', 'version', 'updated_at'])


def release_if_empty(vessel: Optional[Vessel], batch: Batch) -> bool:
    """End the batch's occupancy of a vessel once its share there is zero."""
    if vessel is None or sum_deltas(batch_id=batch.id, vessel_id=vessel.id) != 0:
        return False
    ended = Occupancy.objects.filter(vessel=vessel, batch=batch, ended_at__isnull=True)
    for occupancy in ended:
        occupancy.ended_at = timezone.now()
        occupancy.save(update_fields=['ended_at'])
    if vessel.status == VesselStatus.OCCUPIED and active_occupancy(vessel) is None:
        vessel.status = VesselStatus.AVAILABLE
    vessel.version += 1
    vessel.save(update_fields=['status', 'version', 'updated_at'])
    logger.info("Vessel %s released by batch %s", vessel.id, batch.id)
    return True


def verify_batch_integrity(batch_id: UUID) -> Decimal:
    """
    Compare a batch's cached volume with its transaction log.

    Returns:
        The volume according to the log

    Raises:
        LedgerIntegrityError: On mismatch (also logged at CRITICAL)
    """
    batch = batch_id if isinstance(batch_id, Batch) else get_batch(batch_id)
    logged = sum_deltas(batch_id=batch.id)
    cached = quantize_volume(batch.current_volume_liters)
    if logged != cached:
        integrity_logger.critical(
            "Ledger integrity violation on batch %s: cached %s L, transaction log %s L",
            batch.id, cached, logged
        )
        raise LedgerIntegrityError(
            f"Batch {batch.batch_number} cached volume {cached} L != log {logged} L",
            user_message="Ledger data is inconsistent for this batch. A supervisor must review it.",
            details={'batch_id': str(batch.id), 'cached_liters': str(cached), 'logged_liters': str(logged)},
        )
    return logged


def refresh_projection(batch: Batch, **changes) -> None:
    """Recompute the cached volume from the log and bump the version."""
    for name, value in changes.items():
        setattr(batch, name, value)
    batch.current_volume_liters = sum_deltas(batch_id=batch.id)
    batch.version += 1
    batch.save(update_fields=['current_volume_liters', 'version', 'updated_at', *changes.keys()])


def audit_batch(
    batch: Batch,
    before: Optional[dict],
    actor: Optional[User],
    reason: str = ''
):
    operation = AuditOperation.CREATE if before is None else AuditOperation.UPDATE
    return record_audit(
        operation=operation,
        table_name=BATCHES_TABLE,
        record_id=batch.id,
        old=before,
        new=snapshot_batch(batch),
        actor=actor,
        reason=reason,
    )


def mixed_abv(
    existing_liters: Decimal,
    existing_abv: Optional[Decimal],
    added_liters: Decimal,
    added_abv: Optional[Decimal]
) -> Optional[Decimal]:
    """ABV after adding liquid, assuming ideal (volume-additive) mixing."""
    if added_abv is None:
        return existing_abv
    if existing_abv is None or existing_liters <= 0:
        return to_decimal(added_abv)
    total = existing_liters + added_liters
    weighted = (existing_liters * existing_abv + added_liters * to_decimal(added_abv)) / total
    return weighted.quantize(Decimal('0.001'))


def resolve_location(batch: Batch, vessel_id: Optional[UUID]) -> Optional[str]:
    """
    Find where to take liquid from when no vessel was named.

    Returns the str vessel id, or None for unassigned stock.

    Raises:
        SourceVesselRequiredError: If the batch sits in several places
    """
    if vessel_id is not None:
        return str(_as_uuid(vessel_id))
    locations = batch_locations(batch)
    if len(locations) > 1:
        raise SourceVesselRequiredError(
            f"Batch {batch.batch_number} is in {len(locations)} locations; name the vessel",
            user_message=f'Batch "{batch.name}" is in several vessels. Choose which one.',
            details={'batch_id': str(batch.id), 'locations': sorted(locations)},
        )
    if not locations:
        return None
    only = next(iter(locations))
    return None if only == UNASSIGNED else only


def _next_batch_number() -> str:
    return f"B-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


# =============================================================================
# Reads
# =============================================================================

def current_volume(batch_id: UUID) -> Quantity:
    """Volume of a batch, summed from the transaction log."""
    batch = get_batch(batch_id)
    return Quantity(sum_deltas(batch_id=batch.id), Unit.LITER, batch.abv)


def volume_by_vessel(batch_id: UUID) -> Dict[Optional[str], Decimal]:
    """Volume of a batch per vessel id (None key = unassigned stock)."""
    batch = get_batch(batch_id)
    return {
        (None if key == UNASSIGNED else key): value
        for key, value in batch_locations(batch).items()
    }


def vessel_volume(vessel_id: UUID) -> Quantity:
    vessel = get_vessel(vessel_id)
    occupancy = active_occupancy(vessel)
    abv = occupancy.batch.abv if occupancy else None
    return Quantity(vessel_contents(vessel), Unit.LITER, abv)


def occupant(vessel_id: UUID) -> Optional[UUID]:
    """Batch currently in a vessel, or None."""
    vessel = get_vessel(vessel_id)
    occupancy = active_occupancy(vessel)
    return occupancy.batch_id if occupancy else None


# =============================================================================
# Commands
# =============================================================================

@transaction.atomic
def create_batch(
    *,
    name: str,
    actor: Optional[User] = None,
    tax_class: str = TaxClass.HARD_CIDER,
    abv: Optional[Decimal] = None,
    status: str = BatchStatus.FERMENTATION,
    batch_number: Optional[str] = None,
    source_label: str = ''
) -> Batch:
    """
    Create an empty batch.

    Volume arrives through ``record_fill``, ``assign`` or a blend.
    ``source_label`` records an external lot (press run, purchase order)
    as the batch's composition.
    """
    batch = Batch.objects.create(
        batch_number=batch_number or _next_batch_number(),
        name=name,
        tax_class=tax_class,
        abv=abv,
        status=status,
        created_by=actor,
    )
    if source_label:
        BatchSource.objects.create(
            batch=batch,
            source_label=source_label,
            volume_liters=Decimal('0'),
            abv=abv,
            proportion=Decimal('1'),
            operation_id=uuid.uuid4(),
        )
    audit_batch(batch, None, actor, reason='Batch created')
    logger.info("Created batch %s (%s)", batch.id, batch.batch_number)
    return batch


def _fill(
    *,
    batch: Batch,
    vessel: Optional[Vessel],
    liters: Decimal,
    abv: Optional[Decimal],
    actor: Optional[User],
    reason_code: str,
    notes: str,
    operation_id: UUID,
    occurred_at: Optional[datetime],
    strict_assign: bool
) -> TransactionEntry:
    if vessel is not None:
        require_accepts_liquid(vessel)
        occupancy = check_vessel_free_for(vessel, batch)
        if strict_assign and occupancy is not None:
            raise VesselOccupiedError(
                f"Vessel {vessel.name} already holds batch {batch.batch_number}",
                user_message=f'Vessel "{vessel.name}" is already occupied.',
                details={'vessel_id': str(vessel.id), 'occupant_batch_id': str(batch.id)},
            )
        check_capacity(vessel, liters)

    entry = append_entry(
        batch=batch,
        vessel=vessel,
        entry_type=EntryType.FILL,
        delta_liters=liters,
        abv=abv,
        reason_code=reason_code,
        notes=notes,
        operation_id=operation_id,
        actor=actor,
        timestamp=occurred_at,
    )
    if vessel is not None:
        occupy(vessel, batch)
    return entry


@transaction.atomic
def assign(
    *,
    batch_id: UUID,
    vessel_id: UUID,
    quantity: Quantity,
    actor: Optional[User] = None,
    abv: Optional[Decimal] = None,
    reason_code: str = FillSource.PRESS,
    notes: str = '',
    expected_version: Optional[int] = None,
    occurred_at: Optional[datetime] = None
) -> LedgerResult:
    """
    Put a batch into an empty vessel with a Fill entry (assignBatchToVessel).

    Args:
        batch_id: Batch being filled
        vessel_id: Empty destination vessel
        quantity: Volume going in
        actor: User performing the fill
        abv: ABV of the incoming liquid (defaults to the quantity's ABV)
        reason_code: FillSource value
        notes: Free text
        expected_version: Optimistic check on the batch version
        occurred_at: Back-dated event time

    Returns:
        LedgerResult with the Fill entry

    Raises:
        VesselOccupiedError: If the vessel has an active occupant
        CapacityExceededError: If quantity exceeds the vessel capacity
        VesselUnavailableError: If the vessel is cleaning, in maintenance or retired
    """
    liters = _quantity_liters(quantity)
    batches, vessels = lock_rows(batch_ids=[batch_id], vessel_ids=[vessel_id])
    batch = batches[row_key(batch_id)]
    vessel = vessels[row_key(vessel_id)]
    check_version(batch, expected_version)
    require_open(batch)
    verify_batch_integrity(batch)

    before = snapshot_batch(batch)
    operation_id = uuid.uuid4()
    incoming_abv = abv if abv is not None else quantity.abv
    new_abv = mixed_abv(batch.current_volume_liters, batch.abv, liters, incoming_abv)

    entry = _fill(
        batch=batch,
        vessel=vessel,
        liters=liters,
        abv=incoming_abv,
        actor=actor,
        reason_code=reason_code,
        notes=notes,
        operation_id=operation_id,
        occurred_at=occurred_at,
        strict_assign=True,
    )
    refresh_projection(batch, abv=new_abv)
    audit_batch(batch, before, actor, reason=f"Assigned {liters} L to {vessel.name}")

    logger.info("Assigned batch %s to vessel %s with %s L", batch.id, vessel.id, liters)
    return LedgerResult(batch=batch, operation_id=operation_id, entries=[entry])


@transaction.atomic
def record_fill(
    *,
    batch_id: UUID,
    quantity: Quantity,
    actor: Optional[User] = None,
    vessel_id: Optional[UUID] = None,
    abv: Optional[Decimal] = None,
    reason_code: str = FillSource.PRESS,
    notes: str = '',
    expected_version: Optional[int] = None,
    occurred_at: Optional[datetime] = None
) -> LedgerResult:
    """
    Add volume to a batch (press output, purchased juice, received product).

    Without a vessel the volume is booked as unassigned stock. With a
    vessel, the vessel must be empty or already hold this batch.
    """
    liters = _quantity_liters(quantity)
    batches, vessels = lock_rows(batch_ids=[batch_id], vessel_ids=[vessel_id])
    batch = batches[row_key(batch_id)]
    vessel = vessels.get(row_key(vessel_id)) if vessel_id else None
    check_version(batch, expected_version)
    require_open(batch)
    verify_batch_integrity(batch)

    before = snapshot_batch(batch)
    operation_id = uuid.uuid4()
    incoming_abv = abv if abv is not None else quantity.abv
    new_abv = mixed_abv(batch.current_volume_liters, batch.abv, liters, incoming_abv)

    entry = _fill(
        batch=batch,
        vessel=vessel,
        liters=liters,
        abv=incoming_abv,
        actor=actor,
        reason_code=reason_code,
        notes=notes,
        operation_id=operation_id,
        occurred_at=occurred_at,
        strict_assign=False,
    )
    refresh_projection(batch, abv=new_abv)
    audit_batch(batch, before, actor, reason=f"Fill of {liters} L ({reason_code})")

    logger.info("Filled batch %s with %s L (vessel %s)", batch.id, liters, vessel_id)
    return LedgerResult(batch=batch, operation_id=operation_id, entries=[entry])


@transaction.atomic
def transfer(
    *,
    batch_id: UUID,
    from_vessel_id: UUID,
    to_vessel_id: UUID,
    quantity: Quantity,
    actor: Optional[User] = None,
    notes: str = '',
    expected_version: Optional[int] = None,
    occurred_at: Optional[datetime] = None
) -> LedgerResult:
    """
    Move part or all of a batch from one vessel to another (transferVolume).

    Writes a negative Transfer entry on the source and a positive one on
    the destination; their deltas sum to zero. An emptied source vessel
    becomes available again.

    Raises:
        InsufficientVolumeError: If the batch holds less than quantity in the source
        CapacityExceededError: If the destination cannot take the quantity
        VesselOccupiedError: If another batch is in the destination
        VesselUnavailableError: If the destination cannot receive liquid
    """
    liters = _quantity_liters(quantity)
    if str(from_vessel_id) == str(to_vessel_id):
        raise InvalidEntryError(
            "Source and destination vessel are the same",
            user_message="Pick a different destination vessel.",
        )

    batches, vessels = lock_rows(batch_ids=[batch_id], vessel_ids=[from_vessel_id, to_vessel_id])
    batch = batches[row_key(batch_id)]
    source = vessels[row_key(from_vessel_id)]
    destination = vessels[row_key(to_vessel_id)]
    check_version(batch, expected_version)
    require_open(batch)
    verify_batch_integrity(batch)

    available = sum_deltas(batch_id=batch.id, vessel_id=source.id)
    if liters > available:
        raise InsufficientVolumeError(
            f"Batch {batch.batch_number} has {available} L in {source.name}, requested {liters} L",
            user_message=f'Only {available} L of "{batch.name}" is in "{source.name}".',
            details={
                'batch_id': str(batch.id),
                'vessel_id': str(source.id),
                'available_liters': str(available),
                'requested_liters': str(liters),
            },
        )
    require_accepts_liquid(destination)
    check_vessel_free_for(destination, batch)
    check_capacity(destination, liters)

    before = snapshot_batch(batch)
    operation_id = uuid.uuid4()
    timestamp = occurred_at or timezone.now()
    outgoing = append_entry(
        batch=batch,
        vessel=source,
        entry_type=EntryType.TRANSFER,
        delta_liters=-liters,
        abv=batch.abv,
        notes=notes,
        operation_id=operation_id,
        actor=actor,
        timestamp=timestamp,
    )
    incoming = append_entry(
        batch=batch,
        vessel=destination,
        entry_type=EntryType.TRANSFER,
        delta_liters=liters,
        abv=batch.abv,
        notes=notes,
        operation_id=operation_id,
        actor=actor,
        timestamp=timestamp,
    )
    occupy(destination, batch)
    release_if_empty(source, batch)
    refresh_projection(batch)
    audit_batch(batch, before, actor, reason=f"Transfer {liters} L {source.name} -> {destination.name}")

    logger.info(
        "Transferred %s L of batch %s from %s to %s",
        liters, batch.id, source.id, destination.id
    )
    return LedgerResult(batch=batch, operation_id=operation_id, entries=[outgoing, incoming])


def _large_adjustment_warning(batch: Batch, delta: Decimal, previous: Decimal) -> Optional[LargeAdjustmentWarning]:
    threshold = to_decimal(str(getattr(settings, 'LEDGER_LARGE_ADJUSTMENT_THRESHOLD', '0.10')))
    if previous == 0:
        return LargeAdjustmentWarning(batch.id, delta, previous, None, threshold)
    ratio = abs(delta) / previous
    if ratio > threshold:
        return LargeAdjustmentWarning(batch.id, delta, previous, ratio.quantize(Decimal('0.0001')), threshold)
    return None


@transaction.atomic
def adjust(
    *,
    batch_id: UUID,
    new_measured_volume: Quantity,
    adjustment_type: str,
    reason: str,
    actor: Optional[User] = None,
    vessel_id: Optional[UUID] = None,
    expected_version: Optional[int] = None,
    occurred_at: Optional[datetime] = None
) -> LedgerResult:
    """
    Reconcile a measured volume with the ledger (recordVolumeAdjustment).

    The Adjustment entry's delta is ``measured - computed``, where computed
    is the batch's volume in the named vessel (or in its only location).

    Returns:
        LedgerResult; ``warnings`` holds a LargeAdjustmentWarning when
        ``|delta| / computed`` exceeds LEDGER_LARGE_ADJUSTMENT_THRESHOLD

    Raises:
        AdjustmentDirectionError: If the type forbids the delta's sign
        ZeroAdjustmentError: If the measurement matches the ledger
        SourceVesselRequiredError: If the batch is in several vessels and none was named
    """
    try:
        adjustment_type = AdjustmentType(adjustment_type)
    except ValueError:
        raise InvalidEntryError(
            f"Unknown adjustment type: {adjustment_type}",
            details={'allowed': list(AdjustmentType.values)},
        )
    if not (reason or '').strip():
        raise InvalidEntryError("A reason is required for volume adjustments")
    measured = quantize_volume(new_measured_volume.in_liters())

    batch = get_batch(batch_id)
    location = resolve_location(batch, vessel_id)
    batches, vessels = lock_rows(batch_ids=[batch_id], vessel_ids=[location])
    batch = batches[row_key(batch_id)]
    vessel = vessels.get(location) if location else None
    check_version(batch, expected_version)
    require_open(batch)
    verify_batch_integrity(batch)

    computed = sum_deltas(batch_id=batch.id, vessel_id=vessel.id if vessel else None)
    delta = measured - computed
    details = {
        'batch_id': str(batch.id),
        'adjustment_type': adjustment_type.value,
        'measured_liters': str(measured),
        'computed_liters': str(computed),
        'delta_liters': str(delta),
    }
    if delta == 0:
        raise ZeroAdjustmentError(
            f"Measured volume equals ledger volume ({computed} L)",
            user_message="The measurement matches the ledger; nothing to adjust.",
            details=details,
        )
    if delta < 0 and adjustment_type in INCREASE_ONLY_ADJUSTMENTS:
        raise AdjustmentDirectionError(
            f"{adjustment_type.value} cannot decrease volume (delta {delta} L)",
            user_message=f'"{adjustment_type.label}" can only increase the volume.',
            details=details,
        )
    if delta > 0 and adjustment_type in DECREASE_ONLY_ADJUSTMENTS:
        raise AdjustmentDirectionError(
            f"{adjustment_type.value} cannot increase volume (delta {delta} L)",
            user_message=f'"{adjustment_type.label}" can only decrease the volume.',
            details=details,
        )
    if delta > 0 and vessel is not None:
        require_accepts_liquid(vessel)
        check_vessel_free_for(vessel, batch)
        check_capacity(vessel, delta)

    before = snapshot_batch(batch)
    operation_id = uuid.uuid4()
    entry = append_entry(
        batch=batch,
        vessel=vessel,
        entry_type=EntryType.ADJUSTMENT,
        delta_liters=delta,
        abv=batch.abv,
        reason_code=adjustment_type.value,
        notes=reason,
        operation_id=operation_id,
        actor=actor,
        timestamp=occurred_at,
    )
    if delta > 0 and vessel is not None:
        occupy(vessel, batch)
    else:
        release_if_empty(vessel, batch)
    refresh_projection(batch)
    audit_batch(batch, before, actor, reason=f"{adjustment_type.value}: {reason}")

    warnings = []
    warning = _large_adjustment_warning(batch, delta, computed)
    if warning is not None:
        logger.warning("Large adjustment on batch %s: %s", batch.id, warning.message)
        warnings.append(warning)

    logger.info("Adjusted batch %s by %s L (%s)", batch.id, delta, adjustment_type.value)
    return LedgerResult(batch=batch, operation_id=operation_id, entries=[entry], warnings=warnings)


def _deduct(
    *,
    entry_type: str,
    batch_id: UUID,
    quantity: Quantity,
    reason_code: str,
    actor: Optional[User],
    vessel_id: Optional[UUID],
    notes: str,
    expected_version: Optional[int],
    occurred_at: Optional[datetime],
    audit_reason: str
) -> LedgerResult:
    liters = _quantity_liters(quantity)
    batch = get_batch(batch_id)
    location = resolve_location(batch, vessel_id)
    batches, vessels = lock_rows(batch_ids=[batch_id], vessel_ids=[location])
    batch = batches[row_key(batch_id)]
    vessel = vessels.get(location) if location else None
    check_version(batch, expected_version)
    require_open(batch)
    verify_batch_integrity(batch)

    available = sum_deltas(batch_id=batch.id, vessel_id=vessel.id if vessel else None)
    if liters > available:
        raise InsufficientVolumeError(
            f"Batch {batch.batch_number} has {available} L there, requested {liters} L",
            user_message=f'Only {available} L of "{batch.name}" is available.',
            details={
                'batch_id': str(batch.id),
                'vessel_id': str(vessel.id) if vessel else None,
                'available_liters': str(available),
                'requested_liters': str(liters),
            },
        )

    before = snapshot_batch(batch)
    operation_id = uuid.uuid4()
    entry = append_entry(
        batch=batch,
        vessel=vessel,
        entry_type=entry_type,
        delta_liters=-liters,
        abv=batch.abv,
        reason_code=reason_code,
        notes=notes,
        operation_id=operation_id,
        actor=actor,
        timestamp=occurred_at,
    )
    release_if_empty(vessel, batch)
    refresh_projection(batch)
    audit_batch(batch, before, actor, reason=audit_reason)

    logger.info("Recorded %s of %s L on batch %s", entry_type, liters, batch.id)
    return LedgerResult(batch=batch, operation_id=operation_id, entries=[entry])


@transaction.atomic
def record_loss(
    *,
    batch_id: UUID,
    quantity: Quantity,
    loss_reason: str = LossReason.OTHER,
    actor: Optional[User] = None,
    vessel_id: Optional[UUID] = None,
    notes: str = '',
    expected_version: Optional[int] = None,
    occurred_at: Optional[datetime] = None
) -> LedgerResult:
    """Record process loss (racking, lees, filtration) as a Loss entry."""
    return _deduct(
        entry_type=EntryType.LOSS,
        batch_id=batch_id,
        quantity=quantity,
        reason_code=loss_reason,
        actor=actor,
        vessel_id=vessel_id,
        notes=notes,
        expected_version=expected_version,
        occurred_at=occurred_at,
        audit_reason=f"Loss ({loss_reason})",
    )


@transaction.atomic
def record_removal(
    *,
    batch_id: UUID,
    quantity: Quantity,
    category: str,
    actor: Optional[User] = None,
    vessel_id: Optional[UUID] = None,
    notes: str = '',
    expected_version: Optional[int] = None,
    occurred_at: Optional[datetime] = None
) -> LedgerResult:
    """Record liquid leaving the cellar (packaging, distillery, tax-paid removal)."""
    return _deduct(
        entry_type=EntryType.REMOVAL,
        batch_id=batch_id,
        quantity=quantity,
        reason_code=category,
        actor=actor,
        vessel_id=vessel_id,
        notes=notes,
        expected_version=expected_version,
        occurred_at=occurred_at,
        audit_reason=f"Removal ({category})",
    )


@transaction.atomic
def split_batch(
    *,
    batch_id: UUID,
    quantity: Quantity,
    actor: Optional[User] = None,
    from_vessel_id: Optional[UUID] = None,
    to_vessel_id: Optional[UUID] = None,
    name: Optional[str] = None,
    notes: str = ''
) -> LedgerResult:
    """
    Move part of a batch into a new child batch.

    The parent gets a negative Split entry and the child a positive one;
    the child records the parent as its only composition source. The child
    lands in ``to_vessel_id`` (which must be empty) or as unassigned stock.

    Returns:
        LedgerResult for the parent with the child in ``related_batches``
    """
    liters = _quantity_liters(quantity)
    parent = get_batch(batch_id)
    location = resolve_location(parent, from_vessel_id)
    if to_vessel_id is not None and location is not None and str(to_vessel_id) == location:
        raise InvalidEntryError(
            "A split cannot land in the vessel it came from",
            user_message="Pick a different vessel for the new batch.",
        )

    batches, vessels = lock_rows(batch_ids=[batch_id], vessel_ids=[location, to_vessel_id])
    parent = batches[row_key(batch_id)]
    source = vessels.get(location) if location else None
    destination = vessels.get(row_key(to_vessel_id)) if to_vessel_id else None
    require_open(parent)
    verify_batch_integrity(parent)

    available = sum_deltas(batch_id=parent.id, vessel_id=source.id if source else None)
    if liters > available:
        raise InsufficientVolumeError(
            f"Batch {parent.batch_number} has {available} L there, requested {liters} L",
            user_message=f'Only {available} L of "{parent.name}" is available to split.',
            details={'batch_id': str(parent.id), 'available_liters': str(available)},
        )
    if destination is not None:
        require_accepts_liquid(destination)
        if active_occupancy(destination) is not None:
            raise VesselOccupiedError(
                f"Vessel {destination.name} is occupied",
                user_message=f'Vessel "{destination.name}" already holds another batch.',
                details={'vessel_id': str(destination.id)},
            )
        check_capacity(destination, liters)

    before = snapshot_batch(parent)
    operation_id = uuid.uuid4()
    child = Batch.objects.create(
        batch_number=_next_batch_number(),
        name=name or f"{parent.name} (split)",
        tax_class=parent.tax_class,
        abv=parent.abv,
        status=parent.status,
        created_by=actor,
    )
    BatchSource.objects.create(
        batch=child,
        source_batch=parent,
        volume_liters=liters,
        abv=parent.abv,
        proportion=Decimal('1'),
        operation_id=operation_id,
    )
    timestamp = timezone.now()
    outgoing = append_entry(
        batch=parent,
        vessel=source,
        entry_type=EntryType.SPLIT,
        delta_liters=-liters,
        abv=parent.abv,
        notes=notes,
        operation_id=operation_id,
        counterpart_batch=child,
        actor=actor,
        timestamp=timestamp,
    )
    incoming = append_entry(
        batch=child,
        vessel=destination,
        entry_type=EntryType.SPLIT,
        delta_liters=liters,
        abv=parent.abv,
        notes=notes,
        operation_id=operation_id,
        counterpart_batch=parent,
        actor=actor,
        timestamp=timestamp,
    )
    if destination is not None:
        occupy(destination, child)
    release_if_empty(source, parent)
    refresh_projection(parent)
    refresh_projection(child)
    audit_batch(parent, before, actor, reason=f"Split {liters} L into {child.batch_number}")
    audit_batch(child, None, actor, reason=f"Split from {parent.batch_number}")

    logger.info("Split %s L from batch %s into %s", liters, parent.id, child.id)
    return LedgerResult(
        batch=parent,
        operation_id=operation_id,
        entries=[outgoing, incoming],
        related_batches=[child],
    )


_BATCH_TRANSITIONS = {
    BatchStatus.FERMENTATION: {BatchStatus.AGING, BatchStatus.CONDITIONING, BatchStatus.COMPLETED, BatchStatus.CANCELLED},
    BatchStatus.AGING: {BatchStatus.CONDITIONING, BatchStatus.COMPLETED, BatchStatus.CANCELLED},
    BatchStatus.CONDITIONING: {BatchStatus.AGING, BatchStatus.COMPLETED, BatchStatus.CANCELLED},
    BatchStatus.COMPLETED: set(),
    BatchStatus.CANCELLED: set(),
}


@transaction.atomic
def change_batch_status(
    *,
    batch_id: UUID,
    new_status: str,
    actor: Optional[User] = None,
    reason: str = '',
    expected_version: Optional[int] = None
) -> Batch:
    """
    Move a batch through its lifecycle.

    Completing or cancelling requires the batch to be out of every vessel;
    any occupancy left with no volume is released.

    Raises:
        InvalidEntryError: If the transition is not allowed
        BatchNotEmptyError: If a closing batch still sits in a vessel
    """
    try:
        new_status = BatchStatus(new_status)
    except ValueError:
        raise InvalidEntryError(f"Unknown batch status: {new_status}")

    batches, _ = lock_rows(batch_ids=[batch_id])
    batch = batches[row_key(batch_id)]
    check_version(batch, expected_version)
    current = BatchStatus(batch.status)
    if new_status not in _BATCH_TRANSITIONS[current]:
        raise InvalidEntryError(
            f"Batch cannot go from {current.value} to {new_status.value}",
            user_message=f'Batch "{batch.name}" cannot go from {current.label} to {new_status.label}.',
            details={'allowed': sorted(s.value for s in _BATCH_TRANSITIONS[current])},
        )

    changes = {'status': new_status.value}
    if new_status in (BatchStatus.COMPLETED, BatchStatus.CANCELLED):
        verify_batch_integrity(batch)
        in_vessels = {
            key: value for key, value in batch_locations(batch).items() if key != UNASSIGNED
        }
        if in_vessels:
            raise BatchNotEmptyError(
                f"Batch {batch.batch_number} still holds volume in {len(in_vessels)} vessel(s)",
                user_message=f'Transfer or remove "{batch.name}" from its vessels first.',
                details={'locations': {key: str(value) for key, value in in_vessels.items()}},
            )
        vessel_ids = list(
            Occupancy.objects.filter(batch=batch, ended_at__isnull=True).values_list('vessel_id', flat=True)
        )
        _, vessels = lock_rows(vessel_ids=vessel_ids)
        for vessel in vessels.values():
            release_if_empty(vessel, batch)
        changes['completed_at'] = timezone.now()

    before = snapshot_batch(batch)
    refresh_projection(batch, **changes)
    audit_batch(batch, before, actor, reason=reason or f"Status -> {new_status.value}")
    logger.info("Batch %s status %s -> %s", batch.id, current.value, new_status.value)
    return batch


def complete_batch(*, batch_id: UUID, actor: Optional[User] = None, reason: str = '') -> Batch:
    return change_batch_status(
        batch_id=batch_id,
        new_status=BatchStatus.COMPLETED,
        actor=actor,
        reason=reason or 'Batch completed',
    )
