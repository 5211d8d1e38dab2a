"""
Period reconciliation.

Totals the transaction log per tax class for a reporting period and
compares them with externally reported balances. The ledger is only
read here; the results are stored as ReconciliationSnapshot and
ReconciliationLine rows. Discrepancies are returned as warnings and are
never corrected automatically. A correction is a separate ``adjust()``
call so it carries its own audit entry.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from apps.accounts.models import User
from apps.audit.models import AuditOperation
from apps.audit.services import record as record_audit
from apps.cellar.models import (
    SPIRIT_TAX_CLASSES,
    EntryType,
    RemovalCategory,
    TaxClass,
    TransactionEntry,
)
from apps.compliance.models import ReconciliationLine, ReconciliationSnapshot, ReportedBalance
from apps.units import Unit
from apps.units.conversions import liters_to_wine_gallons, proof_gallons, quantize_volume, to_decimal

from .exceptions import InvalidReportedBalanceError, SnapshotNotFoundError
from .periods import period_bounds

logger = logging.getLogger(__name__)

REPORTED_BALANCES_TABLE = 'reported_balances'

# (entry type, direction) -> line field
MOVEMENT_FIELDS = {
    (EntryType.FILL, 1): 'production',
    (EntryType.BLEND, 1): 'receipts',
    (EntryType.SPLIT, 1): 'receipts',
    (EntryType.BLEND, -1): 'blended_out',
    (EntryType.SPLIT, -1): 'blended_out',
    (EntryType.ADJUSTMENT, 1): 'gains',
    (EntryType.ADJUSTMENT, -1): 'reductions',
    (EntryType.LOSS, -1): 'losses',
    (EntryType.REMOVAL, -1): 'removals',
}
INFLOWS = ('production', 'receipts', 'gains')
OUTFLOWS = ('removals', 'losses', 'reductions', 'blended_out')


def default_tolerance() -> Decimal:
    return to_decimal(str(getattr(settings, 'RECONCILIATION_TOLERANCE_GALLONS', '0.1')))


@dataclass(frozen=True)
class ReconciliationDiscrepancy:
    """Non-fatal: a computed figure differs from what was expected by more than the tolerance."""

    tax_class: str
    kind: str
    computed_gallons: Decimal
    reported_gallons: Optional[Decimal]
    variance_gallons: Decimal
    tolerance_gallons: Decimal

    @property
    def message(self) -> str:
        if self.kind == 'balance':
            return (
                f"{self.tax_class}: period movements do not balance "
                f"(variance {self.variance_gallons} gal)"
            )
        return (
            f"{self.tax_class}: computed {self.kind} {self.computed_gallons} gal, "
            f"reported {self.reported_gallons} gal (variance {self.variance_gallons} gal)"
        )

    def as_dict(self) -> dict:
        return {
            'type': 'reconciliation_discrepancy',
            'tax_class': self.tax_class,
            'kind': self.kind,
            'computed_gallons': str(self.computed_gallons),
            'reported_gallons': str(self.reported_gallons) if self.reported_gallons is not None else None,
            'variance_gallons': str(self.variance_gallons),
            'tolerance_gallons': str(self.tolerance_gallons),
            'message': self.message,
        }


@dataclass
class ReconciliationResult:
    snapshot: ReconciliationSnapshot
    lines: List[ReconciliationLine] = field(default_factory=list)
    discrepancies: List[ReconciliationDiscrepancy] = field(default_factory=list)

    @property
    def balanced(self) -> bool:
        return not self.discrepancies


def _gallons(liters) -> Decimal:
    return quantize_volume(liters_to_wine_gallons(liters or Decimal('0')))


def _sum_by_class(queryset) -> Dict[str, Decimal]:
    rows = queryset.values('batch__tax_class').annotate(total=Sum('delta_liters'))
    return {row['batch__tax_class']: row['total'] or Decimal('0') for row in rows}


def _movements(start, end) -> Dict[str, Dict[str, Decimal]]:
    """Liters moved per tax class and line field within ``[start, end)``."""
    rows = (
        TransactionEntry.objects
        .filter(timestamp__gte=start, timestamp__lt=end)
        .exclude(entry_type=EntryType.TRANSFER)
        .values('batch__tax_class', 'entry_type', 'reason_code')
        .annotate(
            increase=Sum('delta_liters', filter=Q(delta_liters__gt=0)),
            decrease=Sum('delta_liters', filter=Q(delta_liters__lt=0)),
        )
    )
    totals = defaultdict(lambda: defaultdict(Decimal))
    for row in rows:
        tax_class = row['batch__tax_class']
        for direction, amount in ((1, row['increase']), (-1, row['decrease'])):
            if not amount:
                continue
            name = MOVEMENT_FIELDS.get((row['entry_type'], direction))
            if name is None:
                logger.warning(
                    "Unexpected %s entry direction %s in reconciliation", row['entry_type'], direction
                )
                continue
            totals[tax_class][name] += abs(amount)
            if name == 'removals' and row['reason_code'] == RemovalCategory.TAX_PAID:
                totals[tax_class]['tax_paid_removals'] += abs(amount)
    return totals


def _proof_gallons_by_class(before) -> Dict[str, Decimal]:
    """Proof gallons held per spirit tax class, from each batch's volume and ABV."""
    rows = (
        TransactionEntry.objects
        .filter(timestamp__lt=before, batch__tax_class__in=SPIRIT_TAX_CLASSES)
        .values('batch_id', 'batch__tax_class', 'batch__abv')
        .annotate(total=Sum('delta_liters'))
    )
    totals = defaultdict(Decimal)
    for row in rows:
        if row['total'] and row['batch__abv'] is not None:
            totals[row['batch__tax_class']] += proof_gallons(row['total'], Unit.LITER, row['batch__abv'])
    return {key: quantize_volume(value) for key, value in totals.items()}


def _reported_for_period(period_start: date, period_end: date) -> Dict[str, dict]:
    return {
        balance.tax_class: {'opening': balance.opening_gallons, 'closing': balance.closing_gallons}
        for balance in ReportedBalance.objects.filter(period_start=period_start, period_end=period_end)
    }


def _compare(tax_class, kind, computed, reported, tolerance, discrepancies) -> Optional[Decimal]:
    if reported is None:
        return None
    variance = computed - quantize_volume(reported)
    if abs(variance) > tolerance:
        discrepancies.append(
            ReconciliationDiscrepancy(tax_class, kind, computed, quantize_volume(reported), variance, tolerance)
        )
    return variance


@transaction.atomic
def reconcile_period(
    *,
    period_start: date,
    period_end: date,
    reported: Optional[Mapping[str, Mapping[str, Optional[Decimal]]]] = None,
    tolerance: Optional[Decimal] = None,
    label: str = '',
    actor: Optional[User] = None
) -> ReconciliationResult:
    """
    Reconcile the ledger for a reporting period (both dates inclusive).

    Args:
        period_start: First day of the period
        period_end: Last day of the period
        reported: ``{tax_class: {'opening': gal, 'closing': gal}}``; when
            omitted, the ReportedBalance rows for the period are used
        tolerance: Allowed variance in wine gallons
            (default RECONCILIATION_TOLERANCE_GALLONS)
        label: Display label, e.g. 'Q1 2026'
        actor: User running the reconciliation

    Returns:
        ReconciliationResult with the stored snapshot, one line per tax
        class and any discrepancies above the tolerance

    Raises:
        InvalidPeriodError: If the period ends before it starts
    """
    start, end = period_bounds(period_start, period_end)
    tolerance = to_decimal(tolerance) if tolerance is not None else default_tolerance()
    if reported is None:
        reported = _reported_for_period(period_start, period_end)

    opening = _sum_by_class(TransactionEntry.objects.filter(timestamp__lt=start))
    closing = _sum_by_class(TransactionEntry.objects.filter(timestamp__lt=end))
    movements = _movements(start, end)
    opening_proof = _proof_gallons_by_class(start)
    closing_proof = _proof_gallons_by_class(end)

    tax_classes = sorted(set(opening) | set(closing) | set(movements) | set(reported))

    rows = []
    discrepancies = []
    for tax_class in tax_classes:
        moved = {name: _gallons(movements.get(tax_class, {}).get(name)) for name in (*INFLOWS, *OUTFLOWS)}
        opening_gallons = _gallons(opening.get(tax_class))
        closing_gallons = _gallons(closing.get(tax_class))
        balance_variance = (
            opening_gallons
            + sum(moved[name] for name in INFLOWS)
            - sum(moved[name] for name in OUTFLOWS)
            - closing_gallons
        )
        class_discrepancies = []
        if abs(balance_variance) > tolerance:
            class_discrepancies.append(ReconciliationDiscrepancy(
                tax_class, 'balance', closing_gallons, None, balance_variance, tolerance
            ))

        figures = reported.get(tax_class) or {}
        reported_opening = figures.get('opening')
        reported_closing = figures.get('closing')
        opening_variance = _compare(
            tax_class, 'opening', opening_gallons, reported_opening, tolerance, class_discrepancies
        )
        closing_variance = _compare(
            tax_class, 'closing', closing_gallons, reported_closing, tolerance, class_discrepancies
        )

        is_spirit = tax_class in SPIRIT_TAX_CLASSES
        rows.append({
            'tax_class': tax_class,
            'opening_gallons': opening_gallons,
            'production_gallons': moved['production'],
            'receipts_gallons': moved['receipts'],
            'gains_gallons': moved['gains'],
            'removals_gallons': moved['removals'],
            'tax_paid_removals_gallons': _gallons(movements.get(tax_class, {}).get('tax_paid_removals')),
            'losses_gallons': moved['losses'],
            'reductions_gallons': moved['reductions'],
            'blended_out_gallons': moved['blended_out'],
            'closing_gallons': closing_gallons,
            'opening_proof_gallons': opening_proof.get(tax_class, Decimal('0')) if is_spirit else None,
            'closing_proof_gallons': closing_proof.get(tax_class, Decimal('0')) if is_spirit else None,
            'reported_opening_gallons': quantize_volume(reported_opening) if reported_opening is not None else None,
            'reported_closing_gallons': quantize_volume(reported_closing) if reported_closing is not None else None,
            'opening_variance_gallons': opening_variance,
            'closing_variance_gallons': closing_variance,
            'balance_variance_gallons': balance_variance,
            'balanced': not class_discrepancies,
        })
        discrepancies.extend(class_discrepancies)

    snapshot = ReconciliationSnapshot.objects.create(
        period_start=period_start,
        period_end=period_end,
        label=label,
        tolerance_gallons=tolerance,
        balanced=not discrepancies,
        discrepancy_count=len(discrepancies),
        computed_at=timezone.now(),
        created_by=actor,
    )
    lines = [ReconciliationLine.objects.create(snapshot=snapshot, **row) for row in rows]

    for discrepancy in discrepancies:
        logger.warning("Reconciliation %s: %s", snapshot.id, discrepancy.message)
    logger.info(
        "Reconciled %s..%s: %d tax class(es), %d discrepancy(ies)",
        period_start, period_end, len(lines), len(discrepancies)
    )
    return ReconciliationResult(snapshot=snapshot, lines=lines, discrepancies=discrepancies)


def get_reconciliation_snapshot(*, period_start: date, period_end: date) -> ReconciliationSnapshot:
    """
    Latest stored reconciliation for a period (getReconciliationSnapshot).

    Raises:
        SnapshotNotFoundError: If the period has never been reconciled
    """
    snapshot = (
        ReconciliationSnapshot.objects
        .filter(period_start=period_start, period_end=period_end)
        .select_related('created_by')
        .prefetch_related('lines')
        .order_by('-computed_at')
        .first()
    )
    if snapshot is None:
        raise SnapshotNotFoundError(f"No reconciliation for {period_start}..{period_end}")
    return snapshot


def _balance_snapshot(balance: ReportedBalance) -> dict:
    return {
        'id': balance.id,
        'tax_class': balance.tax_class,
        'period_start': balance.period_start,
        'period_end': balance.period_end,
        'opening_gallons': balance.opening_gallons,
        'closing_gallons': balance.closing_gallons,
        'source': balance.source,
        'notes': balance.notes,
        'version': balance.version,
    }


@transaction.atomic
def set_reported_balance(
    *,
    tax_class: str,
    period_start: date,
    period_end: date,
    opening_gallons: Decimal,
    closing_gallons: Optional[Decimal] = None,
    source: str = '',
    notes: str = '',
    actor: Optional[User] = None
) -> ReportedBalance:
    """
    Record or correct the externally reported balance for a period.

    Raises:
        InvalidReportedBalanceError: If the tax class is unknown or a figure is negative
        InvalidPeriodError: If the period ends before it starts
    """
    period_bounds(period_start, period_end)
    if tax_class not in TaxClass.values:
        raise InvalidReportedBalanceError(f"Unknown tax class: {tax_class}")
    opening_gallons = quantize_volume(opening_gallons)
    if closing_gallons is not None:
        closing_gallons = quantize_volume(closing_gallons)
    if opening_gallons < 0 or (closing_gallons is not None and closing_gallons < 0):
        raise InvalidReportedBalanceError("Reported balances cannot be negative")

    balance = (
        ReportedBalance.objects
        .select_for_update()
        .filter(tax_class=tax_class, period_start=period_start, period_end=period_end)
        .first()
    )
    if balance is None:
        balance = ReportedBalance.objects.create(
            tax_class=tax_class,
            period_start=period_start,
            period_end=period_end,
            opening_gallons=opening_gallons,
            closing_gallons=closing_gallons,
            source=source,
            notes=notes,
            created_by=actor,
        )
        before = None
        operation = AuditOperation.CREATE
    else:
        before = _balance_snapshot(balance)
        balance.opening_gallons = opening_gallons
        balance.closing_gallons = closing_gallons
        balance.source = source
        balance.notes = notes
        balance.version += 1
        balance.save()
        operation = AuditOperation.UPDATE

    record_audit(
        operation=operation,
        table_name=REPORTED_BALANCES_TABLE,
        record_id=balance.id,
        old=before,
        new=_balance_snapshot(balance),
        actor=actor,
        reason=f"Reported balance {tax_class} {period_start}..{period_end}",
    )
    logger.info(
        "Reported balance %s %s..%s: opening %s gal, closing %s gal",
        tax_class, period_start, period_end, opening_gallons, closing_gallons
    )
    return balance


def list_reported_balances(*, period_start: Optional[date] = None, period_end: Optional[date] = None):
    queryset = ReportedBalance.objects.all()
    if period_start:
        queryset = queryset.filter(period_start=period_start)
    if period_end:
        queryset = queryset.filter(period_end=period_end)
    return queryset
