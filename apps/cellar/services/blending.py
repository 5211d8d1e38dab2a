"""
Blending engine.

``blend`` is the pure weighted-average calculation. ``apply_blend`` runs
a whole blend against the ledger: it draws volume from every source,
fills the destination vessel and records the composition, all in one
transaction.

Mixing is treated as volume-additive (no contraction when ethanol and
water mix). This is a known approximation; it is exact for cider blends
and slightly overstates volume for high-proof spirit blends.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.cellar.models import Batch, BatchSource, EntryType, TransactionEntry
from apps.units import Quantity, Unit
from apps.units.conversions import quantize_volume, to_decimal

from .exceptions import (
    ConcurrentModificationError,
    EmptyBlendError,
    InsufficientVolumeError,
    InvalidEntryError,
    MissingAbvError,
    VesselOccupiedError,
)
from .ledger import (
    _next_batch_number,
    active_occupancy,
    audit_batch,
    check_capacity,
    get_batch,
    get_vessel,
    lock_rows,
    occupy,
    refresh_projection,
    release_if_empty,
    require_accepts_liquid,
    require_open,
    resolve_location,
    row_key,
    verify_batch_integrity,
)
from .snapshots import snapshot_batch
from .transaction_log import append_entry, sum_deltas

logger = logging.getLogger(__name__)

ABV_PLACES = Decimal('0.001')
PROPORTION_PLACES = Decimal('0.000001')

BlendInput = Union[Quantity, Tuple[Union[Quantity, Decimal, int, float, str], Optional[Decimal]]]


@dataclass(frozen=True)
class BlendComputation:
    total_volume: Quantity
    weighted_abv: Decimal
    proportions: List[Decimal]


def _as_stream(item: BlendInput) -> Tuple[Decimal, Optional[Decimal]]:
    if isinstance(item, Quantity):
        return item.in_liters(), item.abv
    volume, abv = item
    if isinstance(volume, Quantity):
        return volume.in_liters(), abv if abv is not None else volume.abv
    return to_decimal(volume), None if abv is None else to_decimal(abv)


def blend(sources: Iterable[BlendInput]) -> BlendComputation:
    """
    Combine liquid streams into one.

    Args:
        sources: Quantities carrying an ABV, or ``(volume, abv)`` pairs
            where volume is a Quantity or a number of liters

    Returns:
        BlendComputation with the total volume in liters, the
        volume-weighted ABV and each stream's share of the total (in
        input order)

    Raises:
        EmptyBlendError: If there are no streams or they add up to zero
        MissingAbvError: If a stream has no ABV
        InvalidEntryError: If a stream volume is negative
    """
    streams = [_as_stream(item) for item in sources]
    if not streams:
        raise EmptyBlendError("A blend needs at least one source", user_message="Add at least one source.")

    for volume, abv in streams:
        if volume < 0:
            raise InvalidEntryError(f"Blend volumes cannot be negative ({volume})")
        if abv is None:
            raise MissingAbvError(
                "Every blend source needs an ABV",
                user_message="Record the ABV of every source before blending.",
            )

    total = sum((volume for volume, _ in streams), Decimal('0'))
    if total == 0:
        raise EmptyBlendError("Blend sources add up to zero volume", user_message="The blend has no volume.")

    alcohol = sum((volume * abv for volume, abv in streams), Decimal('0'))
    return BlendComputation(
        total_volume=Quantity(quantize_volume(total), Unit.LITER),
        weighted_abv=(alcohol / total).quantize(ABV_PLACES),
        proportions=[(volume / total).quantize(PROPORTION_PLACES) for volume, _ in streams],
    )


@dataclass(frozen=True)
class BlendSource:
    """Volume drawn from one batch. ``abv`` overrides the batch's recorded ABV."""

    batch_id: UUID
    volume: Quantity
    abv: Optional[Decimal] = None
    vessel_id: Optional[UUID] = None


@dataclass(frozen=True)
class BlendOperation:
    """
    A blend request.

    If ``destination_vessel_id`` already holds a batch, the blend is added
    to that batch; ``target_batch_id`` (when given) must then be that same
    batch. Otherwise a new batch is created, named ``name`` and classed
    ``tax_class`` (defaulting to the class of the largest source).
    """

    sources: Sequence[BlendSource]
    destination_vessel_id: UUID
    target_batch_id: Optional[UUID] = None
    name: str = ''
    tax_class: Optional[str] = None
    notes: str = ''


@dataclass
class BlendResult:
    batch: Batch
    computation: BlendComputation
    operation_id: UUID
    created: bool
    entries: List[TransactionEntry] = field(default_factory=list)
    source_batches: List[Batch] = field(default_factory=list)


def _find_target(operation: BlendOperation) -> Optional[UUID]:
    occupancy = active_occupancy(get_vessel(operation.destination_vessel_id))
    if occupancy is None:
        return operation.target_batch_id
    if operation.target_batch_id is not None and str(operation.target_batch_id) != str(occupancy.batch_id):
        raise VesselOccupiedError(
            f"Vessel {operation.destination_vessel_id} holds batch {occupancy.batch_id}, "
            f"not {operation.target_batch_id}",
            user_message="The destination vessel already holds a different batch.",
            details={
                'vessel_id': str(operation.destination_vessel_id),
                'occupant_batch_id': str(occupancy.batch_id),
            },
        )
    return occupancy.batch_id


@transaction.atomic
def apply_blend(operation: BlendOperation, *, actor: Optional[User] = None) -> BlendResult:
    """
    Run a blend against the ledger (createBlend).

    Every source gets a negative Blend entry in the vessel it is drawn
    from; the destination gets one positive Blend entry for the combined
    volume. Composition rows record each contributor's share of the
    resulting batch. Nothing is written unless every check passes.

    Raises:
        EmptyBlendError: If there are no sources
        InsufficientVolumeError: If a source holds less than requested where it is drawn from
        CapacityExceededError: If the destination vessel cannot take the blend
        VesselOccupiedError: If the destination holds a batch other than the target
        SourceVesselRequiredError: If a source sits in several vessels and none was named
        MissingAbvError: If a source (or the existing target) has no ABV
    """
    if not operation.sources:
        raise EmptyBlendError("A blend needs at least one source", user_message="Add at least one source.")

    target_id = _find_target(operation)
    source_ids = [source.batch_id for source in operation.sources]
    if target_id is not None and str(target_id) in {str(i) for i in source_ids}:
        raise InvalidEntryError(
            "A batch cannot be blended into itself",
            user_message="The destination batch cannot also be a source.",
        )

    locations = [resolve_location(get_batch(source.batch_id), source.vessel_id) for source in operation.sources]
    batches, vessels = lock_rows(
        batch_ids=[*source_ids, target_id],
        vessel_ids=[*locations, operation.destination_vessel_id],
    )
    destination = vessels[row_key(operation.destination_vessel_id)]
    occupancy = active_occupancy(destination)
    if occupancy is not None and str(occupancy.batch_id) != str(target_id):
        raise ConcurrentModificationError(
            f"Occupant of vessel {destination.name} changed during the blend",
            user_message="The destination vessel changed. Please retry.",
        )

    requested = defaultdict(Decimal)
    streams = []
    for source, location in zip(operation.sources, locations):
        batch = batches[row_key(source.batch_id)]
        require_open(batch)
        liters = quantize_volume(source.volume.in_liters())
        if liters <= 0:
            raise InvalidEntryError("Blend source volumes must be greater than zero")
        requested[(str(batch.id), location)] += liters
        abv = source.abv if source.abv is not None else (
            source.volume.abv if source.volume.abv is not None else batch.abv
        )
        if abv is None:
            raise MissingAbvError(
                f"Batch {batch.batch_number} has no recorded ABV",
                user_message=f'Record the ABV of "{batch.name}" before blending it.',
                details={'batch_id': str(batch.id)},
            )
        streams.append((batch, location, liters, to_decimal(abv)))

    for (batch_id, location), liters in requested.items():
        batch = batches[batch_id]
        verify_batch_integrity(batch)
        available = sum_deltas(batch_id=batch.id, vessel_id=location)
        if liters > available:
            raise InsufficientVolumeError(
                f"Batch {batch.batch_number} has {available} L there, blend needs {liters} L",
                user_message=f'Only {available} L of "{batch.name}" is available for the blend.',
                details={
                    'batch_id': batch_id,
                    'vessel_id': location,
                    'available_liters': str(available),
                    'requested_liters': str(liters),
                },
            )

    computation = blend([(liters, abv) for _, _, liters, abv in streams])
    added = computation.total_volume.amount
    require_accepts_liquid(destination)
    check_capacity(destination, added)

    target = batches.get(row_key(target_id)) if target_id else None
    existing = Decimal('0')
    if target is not None:
        require_open(target)
        verify_batch_integrity(target)
        existing = target.current_volume_liters
        if existing > 0 and target.abv is None:
            raise MissingAbvError(
                f"Batch {target.batch_number} has no recorded ABV",
                user_message=f'Record the ABV of "{target.name}" before blending into it.',
                details={'batch_id': str(target.id)},
            )

    operation_id = uuid.uuid4()
    timestamp = timezone.now()
    before = {str(batch.id): snapshot_batch(batch) for batch, _, _, _ in streams}
    target_before = snapshot_batch(target) if target is not None else None

    if target is None:
        largest = max(streams, key=lambda stream: stream[2])[0]
        target = Batch.objects.create(
            batch_number=_next_batch_number(),
            name=operation.name or f"Blend {timestamp:%Y-%m-%d %H:%M}",
            tax_class=operation.tax_class or largest.tax_class,
            abv=computation.weighted_abv,
            created_by=actor,
        )
        created = True
        result_computation = computation
    else:
        created = False
        result_computation = blend(
            [(existing, target.abv or Decimal('0'))] + [(liters, abv) for _, _, liters, abv in streams]
        )

    grand_total = result_computation.total_volume.amount
    if not created and existing > 0:
        BatchSource.objects.create(
            batch=target,
            source_batch=target,
            volume_liters=existing,
            abv=target.abv,
            proportion=(existing / grand_total).quantize(PROPORTION_PLACES),
            operation_id=operation_id,
        )

    entries = []
    for batch, location, liters, abv in streams:
        BatchSource.objects.create(
            batch=target,
            source_batch=batch,
            volume_liters=liters,
            abv=abv,
            proportion=(liters / grand_total).quantize(PROPORTION_PLACES),
            operation_id=operation_id,
        )
        entries.append(append_entry(
            batch=batch,
            vessel=vessels.get(location) if location else None,
            entry_type=EntryType.BLEND,
            delta_liters=-liters,
            abv=abv,
            notes=operation.notes,
            operation_id=operation_id,
            counterpart_batch=target,
            actor=actor,
            timestamp=timestamp,
        ))

    entries.append(append_entry(
        batch=target,
        vessel=destination,
        entry_type=EntryType.BLEND,
        delta_liters=added,
        abv=computation.weighted_abv,
        notes=operation.notes,
        operation_id=operation_id,
        actor=actor,
        timestamp=timestamp,
    ))
    occupy(destination, target)

    source_batches = []
    for batch_id, location in requested:
        release_if_empty(vessels.get(location) if location else None, batches[batch_id])
    for batch_id in dict.fromkeys(str(b.id) for b, _, _, _ in streams):
        batch = batches[batch_id]
        refresh_projection(batch)
        audit_batch(batch, before[batch_id], actor, reason=f"Blended into {target.batch_number}")
        source_batches.append(batch)

    refresh_projection(target, abv=result_computation.weighted_abv)
    audit_batch(
        target,
        target_before,
        actor,
        reason=f"Blend of {len(streams)} source(s), {added} L at {computation.weighted_abv}%",
    )

    logger.info(
        "Blend %s: %s L at %s%% into batch %s (vessel %s, %s)",
        operation_id, grand_total, result_computation.weighted_abv, target.id,
        destination.id, 'new' if created else 'existing'
    )
    return BlendResult(
        batch=target,
        computation=result_computation,
        operation_id=operation_id,
        created=created,
        entries=entries,
        source_batches=source_batches,
    )
