"""
Transaction log service.

Append-only record of every ledger-affecting event. The log is the
source of truth for volumes: a batch's volume is the sum of its entry
deltas, and a batch's volume in one vessel is the sum of the deltas
booked against that vessel.

Appends for the same batch must run while the caller holds the batch row
lock (the ledger services take it); ``sequence`` is then strictly
increasing per batch and the unique constraint on (batch, sequence)
catches anyone who forgot.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterator, List, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import DecimalField, Max, Sum, Value
from django.db.models.functions import Coalesce

from apps.accounts.models import User
from apps.cellar.models import (
    AdjustmentType,
    Batch,
    EntryType,
    LossReason,
    RemovalCategory,
    TransactionEntry,
    Vessel,
)
from apps.units.conversions import quantize_volume

from .exceptions import ConcurrentModificationError, InsufficientVolumeError, InvalidEntryError

logger = logging.getLogger(__name__)

ANY_VESSEL = object()

POSITIVE = 1
NEGATIVE = -1
NON_ZERO = 0

# entry type -> (required sign, allowed reason codes or None for free text, counterpart allowed)
_ENTRY_RULES = {
    EntryType.FILL: (POSITIVE, None, False),
    EntryType.TRANSFER: (NON_ZERO, None, False),
    EntryType.ADJUSTMENT: (NON_ZERO, frozenset(AdjustmentType.values), False),
    EntryType.BLEND: (NON_ZERO, None, True),
    EntryType.SPLIT: (NON_ZERO, None, True),
    EntryType.LOSS: (NEGATIVE, frozenset(LossReason.values), False),
    EntryType.REMOVAL: (NEGATIVE, frozenset(RemovalCategory.values), False),
}


def validate_entry(
    *,
    entry_type: str,
    delta_liters: Decimal,
    reason_code: str = '',
    counterpart_batch: Optional[Batch] = None
) -> None:
    """
    Check an entry against the rules of its type.

    Raises:
        InvalidEntryError: If the sign, reason code or counterpart is not
            valid for the entry type
    """
    try:
        sign, reason_codes, counterpart_allowed = _ENTRY_RULES[EntryType(entry_type)]
    except ValueError:
        raise InvalidEntryError(f"Unknown entry type: {entry_type}")

    if delta_liters == 0:
        raise InvalidEntryError(f"{entry_type} entries must change the volume")
    if sign == POSITIVE and delta_liters < 0:
        raise InvalidEntryError(f"{entry_type} entries must be positive, got {delta_liters}")
    if sign == NEGATIVE and delta_liters > 0:
        raise InvalidEntryError(f"{entry_type} entries must be negative, got {delta_liters}")
    if reason_codes is not None and reason_code not in reason_codes:
        raise InvalidEntryError(
            f"'{reason_code}' is not a valid reason for {entry_type} entries",
            details={'allowed': sorted(reason_codes)},
        )
    if counterpart_batch is not None and not counterpart_allowed:
        raise InvalidEntryError(f"{entry_type} entries cannot reference another batch")


@transaction.atomic
def append_entry(
    *,
    batch: Batch,
    entry_type: str,
    delta_liters: Decimal,
    operation_id: UUID,
    actor: Optional[User] = None,
    vessel: Optional[Vessel] = None,
    abv: Optional[Decimal] = None,
    reason_code: str = '',
    notes: str = '',
    counterpart_batch: Optional[Batch] = None,
    timestamp: Optional[datetime] = None
) -> TransactionEntry:
    """
    Append one entry to the log.

    The caller must hold the row lock on ``batch``.

    Args:
        batch: Batch the entry affects
        entry_type: One of EntryType values
        delta_liters: Signed volume change in liters
        operation_id: Groups the entries written by one command
        actor: User performing the operation
        vessel: Vessel the volume moved in or out of (None = unassigned)
        abv: ABV of the liquid moved
        reason_code: Adjustment type, loss reason, removal category or fill source
        notes: Free text
        counterpart_batch: Other batch of a blend or split
        timestamp: Defaults to now

    Returns:
        Created TransactionEntry

    Raises:
        InvalidEntryError: If the entry breaks the rules of its type
        InsufficientVolumeError: If the batch or vessel share would go negative
        ConcurrentModificationError: If another writer appended concurrently
    """
    delta = quantize_volume(delta_liters)
    validate_entry(
        entry_type=entry_type,
        delta_liters=delta,
        reason_code=reason_code,
        counterpart_batch=counterpart_batch,
    )

    balance_after = sum_deltas(batch_id=batch.id) + delta
    if balance_after < 0:
        raise InsufficientVolumeError(
            f"Batch {batch.batch_number} would go negative ({balance_after} L)",
            user_message=f'Batch "{batch.name}" does not hold enough volume.',
            details={'batch_id': str(batch.id), 'delta_liters': str(delta)},
        )
    if delta < 0:
        share_after = sum_deltas(batch_id=batch.id, vessel_id=vessel.id if vessel else None) + delta
        if share_after < 0:
            raise InsufficientVolumeError(
                f"Batch {batch.batch_number} would go negative in "
                f"{vessel.name if vessel else 'unassigned stock'} ({share_after} L)",
                user_message=f'Batch "{batch.name}" does not hold enough volume there.',
                details={
                    'batch_id': str(batch.id),
                    'vessel_id': str(vessel.id) if vessel else None,
                    'delta_liters': str(delta),
                },
            )

    last = TransactionEntry.objects.filter(batch=batch).aggregate(last=Max('sequence'))['last'] or 0
    fields = dict(
        batch=batch,
        vessel=vessel,
        sequence=last + 1,
        entry_type=entry_type,
        delta_liters=delta,
        balance_after_liters=balance_after,
        abv=abv,
        reason_code=reason_code or '',
        notes=notes or '',
        operation_id=operation_id,
        counterpart_batch=counterpart_batch,
        actor=actor,
    )
    if timestamp is not None:
        fields['timestamp'] = timestamp

    try:
        with transaction.atomic():
            entry = TransactionEntry.objects.create(**fields)
    except IntegrityError:
        raise ConcurrentModificationError(
            f"Concurrent append on batch {batch.batch_number}",
            user_message="Another change to this batch was saved first. Please retry.",
            details={'batch_id': str(batch.id)},
        )

    logger.debug(
        "Appended %s %s L to batch %s (vessel %s)",
        entry_type, delta, batch.id, vessel.id if vessel else None
    )
    return entry


class EntrySequence:
    """
    Lazy, restartable view over log entries.

    Every iteration runs a fresh, ordered query, so the sequence can be
    walked any number of times and always reflects committed state.
    """

    def __init__(self, **filters):
        self._filters = filters

    def queryset(self):
        return (
            TransactionEntry.objects
            .filter(**self._filters)
            .select_related('vessel', 'actor', 'counterpart_batch')
            .order_by('timestamp', 'sequence')
        )

    def __iter__(self) -> Iterator[TransactionEntry]:
        return self.queryset().iterator(chunk_size=500)

    def __len__(self):
        return self.queryset().count()


def entries_for(batch_id: UUID) -> EntrySequence:
    return EntrySequence(batch_id=batch_id)


def entries_for_vessel(vessel_id: UUID) -> EntrySequence:
    return EntrySequence(vessel_id=vessel_id)


def sum_deltas(
    *,
    batch_id: Optional[UUID] = None,
    vessel_id=ANY_VESSEL,
    before: Optional[datetime] = None
) -> Decimal:
    """
    Sum entry deltas.

    Args:
        batch_id: Restrict to one batch
        vessel_id: Restrict to one vessel; None means unassigned stock
        before: Only entries strictly before this time

    Returns:
        Signed total in liters (0 when there are no entries)
    """
    queryset = TransactionEntry.objects.all()
    if batch_id is not None:
        queryset = queryset.filter(batch_id=batch_id)
    if vessel_id is None:
        queryset = queryset.filter(vessel__isnull=True)
    elif vessel_id is not ANY_VESSEL:
        queryset = queryset.filter(vessel_id=vessel_id)
    if before is not None:
        queryset = queryset.filter(timestamp__lt=before)

    total = queryset.aggregate(
        total=Coalesce(
            Sum('delta_liters'),
            Value(Decimal('0')),
            output_field=DecimalField(max_digits=18, decimal_places=3),
        )
    )['total']
    return quantize_volume(total)


def history(batch_id: UUID) -> List[dict]:
    """Transaction history of a batch as plain rows (getTransactionHistory)."""
    rows = []
    for entry in entries_for(batch_id):
        rows.append({
            'id': str(entry.id),
            'sequence': entry.sequence,
            'entry_type': entry.entry_type,
            'vessel_id': str(entry.vessel_id) if entry.vessel_id else None,
            'vessel_name': entry.vessel.name if entry.vessel_id else None,
            'delta_liters': entry.delta_liters,
            'balance_before_liters': entry.balance_before_liters,
            'balance_after_liters': entry.balance_after_liters,
            'abv': entry.abv,
            'reason_code': entry.reason_code,
            'notes': entry.notes,
            'operation_id': str(entry.operation_id),
            'counterpart_batch_id': str(entry.counterpart_batch_id) if entry.counterpart_batch_id else None,
            'timestamp': entry.timestamp,
            'actor': entry.actor.get_display_name() if entry.actor_id else None,
        })
    return rows
