# ==========================================
# apps/compliance/models.py
# ==========================================

from decimal import Decimal

from django.db import models
from django.utils import timezone
import uuid

from apps.audit.models import AppendOnlyModel
from apps.cellar.models import TaxClass

GALLON_DIGITS = 14
GALLON_PLACES = 3


def gallon_field(**kwargs):
    return models.DecimalField(max_digits=GALLON_DIGITS, decimal_places=GALLON_PLACES, **kwargs)


class PeriodType(models.TextChoices):
    MONTHLY = 'monthly', 'Monthly'
    QUARTERLY = 'quarterly', 'Quarterly'
    ANNUAL = 'annual', 'Annual'


class ReportedBalance(models.Model):
    """
    Opening/closing balance for one tax class and period as reported
    outside the ledger (the filed excise return, a physical inventory).
    Values are wine gallons.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tax_class = models.CharField(max_length=30, choices=TaxClass.choices)
    period_start = models.DateField()
    period_end = models.DateField()
    opening_gallons = gallon_field()
    closing_gallons = gallon_field(null=True, blank=True)
    source = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    version = models.PositiveIntegerField(default=1)
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reported_balances'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'reported_balances'
        ordering = ['-period_start', 'tax_class']
        constraints = [
            models.UniqueConstraint(
                fields=['tax_class', 'period_start', 'period_end'],
                name='reported_balance_unique_period'
            ),
        ]

    def __str__(self):
        return f"{self.tax_class} {self.period_start}..{self.period_end}"


class ReconciliationSnapshot(AppendOnlyModel):
    """
    Result of one reconciliation run. Never updated; running the same
    period again writes a new snapshot.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    period_start = models.DateField()
    period_end = models.DateField()
    label = models.CharField(max_length=50, blank=True)
    tolerance_gallons = gallon_field()
    balanced = models.BooleanField(default=True)
    discrepancy_count = models.PositiveIntegerField(default=0)
    computed_at = models.DateTimeField(default=timezone.now, db_index=True)
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reconciliation_snapshots'
    )

    class Meta:
        db_table = 'reconciliation_snapshots'
        ordering = ['-computed_at']
        indexes = [
            models.Index(fields=['period_start', 'period_end', 'computed_at'], name='recon_snap_period_idx'),
        ]

    def __str__(self):
        return f"Reconciliation {self.label or self.period_start} @ {self.computed_at:%Y-%m-%d %H:%M}"


class ReconciliationLine(AppendOnlyModel):
    """
    Totals for one tax class within a snapshot, in wine gallons.

    opening + production + receipts + gains
        = removals + losses + reductions + blended_out + closing
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    snapshot = models.ForeignKey(ReconciliationSnapshot, on_delete=models.PROTECT, related_name='lines')
    tax_class = models.CharField(max_length=30, choices=TaxClass.choices)

    opening_gallons = gallon_field(default=Decimal('0'))
    production_gallons = gallon_field(default=Decimal('0'))
    receipts_gallons = gallon_field(default=Decimal('0'))
    gains_gallons = gallon_field(default=Decimal('0'))
    removals_gallons = gallon_field(default=Decimal('0'))
    tax_paid_removals_gallons = gallon_field(default=Decimal('0'))
    losses_gallons = gallon_field(default=Decimal('0'))
    reductions_gallons = gallon_field(default=Decimal('0'))
    blended_out_gallons = gallon_field(default=Decimal('0'))
    closing_gallons = gallon_field(default=Decimal('0'))

    opening_proof_gallons = gallon_field(null=True, blank=True)
    closing_proof_gallons = gallon_field(null=True, blank=True)

    reported_opening_gallons = gallon_field(null=True, blank=True)
    reported_closing_gallons = gallon_field(null=True, blank=True)
    opening_variance_gallons = gallon_field(null=True, blank=True)
    closing_variance_gallons = gallon_field(null=True, blank=True)
    balance_variance_gallons = gallon_field(default=Decimal('0'))
    balanced = models.BooleanField(default=True)

    class Meta:
        db_table = 'reconciliation_lines'
        ordering = ['tax_class']
        constraints = [
            models.UniqueConstraint(fields=['snapshot', 'tax_class'], name='recon_line_unique_class'),
        ]

    def __str__(self):
        return f"{self.tax_class}: {self.opening_gallons} -> {self.closing_gallons} gal"
