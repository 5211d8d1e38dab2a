# ==========================================
# apps/cellar/models.py
# ==========================================

from decimal import Decimal
import uuid

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.audit.models import AppendOnlyModel
from apps.units import Quantity, Unit


VOLUME_DIGITS = 14
VOLUME_PLACES = 3
ABV_VALIDATORS = [MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]


class VolumeUnit(models.TextChoices):
    LITER = Unit.LITER.value, 'Liters'
    GALLON = Unit.GALLON.value, 'US gallons'


class VesselStatus(models.TextChoices):
    AVAILABLE = 'available', 'Available'
    OCCUPIED = 'occupied', 'Occupied'
    CLEANING = 'cleaning', 'Cleaning'
    MAINTENANCE = 'maintenance', 'Maintenance'
    RETIRED = 'retired', 'Retired'


class VesselType(models.TextChoices):
    FERMENTER = 'fermenter', 'Fermenter'
    CONDITIONING_TANK = 'conditioning_tank', 'Conditioning tank'
    BRIGHT_TANK = 'bright_tank', 'Bright tank'
    STORAGE = 'storage', 'Storage'
    BARREL = 'barrel', 'Barrel'


class VesselMaterial(models.TextChoices):
    STAINLESS_STEEL = 'stainless_steel', 'Stainless steel'
    OAK = 'oak', 'Oak'
    PLASTIC = 'plastic', 'Plastic'
    GLASS = 'glass', 'Glass'
    OTHER = 'other', 'Other'


class BatchStatus(models.TextChoices):
    FERMENTATION = 'fermentation', 'Fermentation'
    AGING = 'aging', 'Aging'
    CONDITIONING = 'conditioning', 'Conditioning'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class TaxClass(models.TextChoices):
    HARD_CIDER = 'hard_cider', 'Hard cider (<8.5% ABV)'
    WINE_UNDER_16 = 'wine_under_16', 'Still wine, not over 16% ABV'
    WINE_16_TO_21 = 'wine_16_to_21', 'Still wine, 16-21% ABV'
    WINE_21_TO_24 = 'wine_21_to_24', 'Still wine, 21-24% ABV'
    SPARKLING_WINE = 'sparkling_wine', 'Sparkling wine'
    CARBONATED_WINE = 'carbonated_wine', 'Artificially carbonated wine'
    APPLE_BRANDY = 'apple_brandy', 'Apple brandy'
    GRAPE_SPIRITS = 'grape_spirits', 'Grape spirits'
    NON_TAXABLE = 'non_taxable', 'Juice / non-taxable'


SPIRIT_TAX_CLASSES = (TaxClass.APPLE_BRANDY, TaxClass.GRAPE_SPIRITS)


class EntryType(models.TextChoices):
    FILL = 'fill', 'Fill'
    TRANSFER = 'transfer', 'Transfer'
    ADJUSTMENT = 'adjustment', 'Adjustment'
    BLEND = 'blend', 'Blend'
    SPLIT = 'split', 'Split'
    LOSS = 'loss', 'Loss'
    REMOVAL = 'removal', 'Removal'


class AdjustmentType(models.TextChoices):
    CORRECTION_UP = 'correction_up', 'Correction (increase)'
    CORRECTION_DOWN = 'correction_down', 'Correction (decrease)'
    MEASUREMENT_ERROR = 'measurement_error', 'Measurement error'
    EVAPORATION = 'evaporation', 'Evaporation'
    SAMPLING = 'sampling', 'Sampling'
    CONTAMINATION = 'contamination', 'Contamination'
    SPILLAGE = 'spillage', 'Spillage'
    THEFT = 'theft', 'Theft'
    SEDIMENT = 'sediment', 'Sediment'
    OTHER = 'other', 'Other'


INCREASE_ONLY_ADJUSTMENTS = frozenset({AdjustmentType.CORRECTION_UP})
DECREASE_ONLY_ADJUSTMENTS = frozenset({
    AdjustmentType.CORRECTION_DOWN,
    AdjustmentType.EVAPORATION,
    AdjustmentType.SAMPLING,
    AdjustmentType.CONTAMINATION,
    AdjustmentType.SPILLAGE,
    AdjustmentType.THEFT,
    AdjustmentType.SEDIMENT,
})


class LossReason(models.TextChoices):
    RACKING = 'racking', 'Racking'
    LEES = 'lees', 'Lees'
    FILTRATION = 'filtration', 'Filtration'
    TRANSFER = 'transfer', 'Transfer loss'
    OTHER = 'other', 'Other'


class RemovalCategory(models.TextChoices):
    PACKAGING = 'packaging', 'Packaging'
    DISTILLERY = 'distillery', 'Sent to distillery'
    TAX_PAID = 'tax_paid', 'Tax-paid removal'
    OTHER = 'other', 'Other'


class FillSource(models.TextChoices):
    PRESS = 'press', 'Press run'
    PURCHASED_JUICE = 'purchased_juice', 'Purchased juice'
    RECEIVED = 'received', 'Received in bond'
    DISTILLERY_RETURN = 'distillery_return', 'Returned from distillery'
    OTHER = 'other', 'Other'


class Vessel(models.Model):
    """Physical tank or barrel. Never deleted, only retired."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    vessel_type = models.CharField(max_length=30, choices=VesselType.choices, default=VesselType.FERMENTER)
    material = models.CharField(max_length=30, choices=VesselMaterial.choices, default=VesselMaterial.STAINLESS_STEEL)
    location = models.CharField(max_length=100, blank=True)
    capacity_liters = models.DecimalField(
        max_digits=VOLUME_DIGITS,
        decimal_places=VOLUME_PLACES,
        validators=[MinValueValidator(Decimal('0.001'))]
    )
    capacity_unit = models.CharField(max_length=10, choices=VolumeUnit.choices, default=VolumeUnit.LITER)
    status = models.CharField(max_length=20, choices=VesselStatus.choices, default=VesselStatus.AVAILABLE)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'vessels'
        indexes = [
            models.Index(fields=['status'], name='vessels_status_idx'),
        ]
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def capacity(self) -> Quantity:
        return Quantity(self.capacity_liters, Unit.LITER)

    @property
    def accepts_liquid(self) -> bool:
        return self.status in (VesselStatus.AVAILABLE, VesselStatus.OCCUPIED)


class Batch(models.Model):
    """
    A tracked quantity of liquid sharing provenance.

    ``current_volume_liters`` is a projection of the transaction log kept
    in step by the ledger services; the log is authoritative.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch_number = models.CharField(max_length=40, unique=True, db_index=True)
    name = models.CharField(max_length=200)
    status = models.CharField(max_length=20, choices=BatchStatus.choices, default=BatchStatus.FERMENTATION)
    tax_class = models.CharField(max_length=30, choices=TaxClass.choices, default=TaxClass.HARD_CIDER)
    abv = models.DecimalField(max_digits=6, decimal_places=3, null=True, blank=True, validators=ABV_VALIDATORS)
    current_volume_liters = models.DecimalField(
        max_digits=VOLUME_DIGITS,
        decimal_places=VOLUME_PLACES,
        default=Decimal('0')
    )
    version = models.PositiveIntegerField(default=1)
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='created_batches'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'batches'
        indexes = [
            models.Index(fields=['status', 'created_at'], name='batches_status_idx'),
            models.Index(fields=['tax_class'], name='batches_tax_class_idx'),
        ]
        ordering = ['-created_at']
        verbose_name_plural = 'batches'

    def __str__(self):
        return f"{self.batch_number} {self.name}"

    @property
    def is_open(self) -> bool:
        return self.status not in (BatchStatus.COMPLETED, BatchStatus.CANCELLED)

    @property
    def current_volume(self) -> Quantity:
        return Quantity(self.current_volume_liters, Unit.LITER, self.abv)


class Occupancy(models.Model):
    """Which batch is in which vessel. At most one active row per vessel."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    vessel = models.ForeignKey(Vessel, on_delete=models.PROTECT, related_name='occupancies')
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name='occupancies')
    since = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'vessel_occupancies'
        constraints = [
            models.UniqueConstraint(
                fields=['vessel'],
                condition=Q(ended_at__isnull=True),
                name='one_active_occupancy_per_vessel',
            ),
        ]
        indexes = [
            models.Index(fields=['batch', 'ended_at'], name='occupancy_batch_idx'),
        ]
        ordering = ['-since']
        verbose_name_plural = 'occupancies'

    def __str__(self):
        return f"{self.batch.batch_number} in {self.vessel.name}"

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class BatchSource(models.Model):
    """Composition provenance: what went into a batch, and in what share."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name='composition_sources')
    source_batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='contributions'
    )
    source_label = models.CharField(max_length=200, blank=True)
    volume_liters = models.DecimalField(max_digits=VOLUME_DIGITS, decimal_places=VOLUME_PLACES)
    abv = models.DecimalField(max_digits=6, decimal_places=3, null=True, blank=True)
    proportion = models.DecimalField(max_digits=7, decimal_places=6)
    operation_id = models.UUIDField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'batch_sources'
        ordering = ['created_at', '-proportion']

    def __str__(self):
        origin = self.source_batch.batch_number if self.source_batch_id else self.source_label
        return f"{origin} -> {self.batch.batch_number} ({self.proportion})"


class TransactionEntry(AppendOnlyModel):
    """
    One ledger-affecting event. Append-only.

    ``delta_liters`` is signed. The sum of deltas for a batch is its
    volume; the sum for a (batch, vessel) pair is that batch's volume in
    the vessel. ``sequence`` orders entries within a batch.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name='transactions')
    vessel = models.ForeignKey(
        Vessel,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transactions'
    )
    sequence = models.PositiveIntegerField()
    entry_type = models.CharField(max_length=20, choices=EntryType.choices)
    delta_liters = models.DecimalField(max_digits=VOLUME_DIGITS, decimal_places=VOLUME_PLACES)
    balance_after_liters = models.DecimalField(max_digits=VOLUME_DIGITS, decimal_places=VOLUME_PLACES)
    abv = models.DecimalField(max_digits=6, decimal_places=3, null=True, blank=True)
    reason_code = models.CharField(max_length=40, blank=True)
    notes = models.TextField(blank=True)
    operation_id = models.UUIDField(db_index=True)
    counterpart_batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    actor = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )

    class Meta:
        db_table = 'transaction_entries'
        constraints = [
            models.UniqueConstraint(fields=['batch', 'sequence'], name='unique_entry_sequence_per_batch'),
        ]
        indexes = [
            models.Index(fields=['batch', 'timestamp'], name='entries_batch_ts_idx'),
            models.Index(fields=['vessel', 'timestamp'], name='entries_vessel_ts_idx'),
            models.Index(fields=['entry_type', 'timestamp'], name='entries_type_ts_idx'),
        ]
        ordering = ['timestamp', 'sequence']
        verbose_name_plural = 'transaction entries'

    def __str__(self):
        return f"{self.entry_type} {self.delta_liters:+} L on {self.batch_id}"

    @property
    def balance_before_liters(self) -> Decimal:
        return self.balance_after_liters - self.delta_liters


class DistillationStatus(models.TextChoices):
    SENT = 'sent', 'Sent'
    RECEIVED = 'received', 'Received'


class DistillationRecord(models.Model):
    """Cider shipped to a distillery and the spirit that came back."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source_batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name='distillations_sent')
    source_vessel = models.ForeignKey(
        Vessel,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    distillery_name = models.CharField(max_length=200)
    volume_sent_liters = models.DecimalField(max_digits=VOLUME_DIGITS, decimal_places=VOLUME_PLACES)
    abv_sent = models.DecimalField(max_digits=6, decimal_places=3, validators=ABV_VALIDATORS)
    proof_gallons_sent = models.DecimalField(max_digits=VOLUME_DIGITS, decimal_places=VOLUME_PLACES)
    sent_at = models.DateTimeField(default=timezone.now)
    removal_operation_id = models.UUIDField()
    received_batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='distillations_received'
    )
    volume_received_liters = models.DecimalField(
        max_digits=VOLUME_DIGITS,
        decimal_places=VOLUME_PLACES,
        null=True,
        blank=True
    )
    abv_received = models.DecimalField(
        max_digits=6,
        decimal_places=3,
        null=True,
        blank=True,
        validators=ABV_VALIDATORS
    )
    proof_gallons_received = models.DecimalField(
        max_digits=VOLUME_DIGITS,
        decimal_places=VOLUME_PLACES,
        null=True,
        blank=True
    )
    received_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=DistillationStatus.choices, default=DistillationStatus.SENT)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='distillation_records'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'distillation_records'
        ordering = ['-sent_at']

    def __str__(self):
        return f"{self.source_batch.batch_number} -> {self.distillery_name} ({self.status})"

    @property
    def distillation_loss_proof_gallons(self):
        if self.proof_gallons_received is None:
            return None
        return self.proof_gallons_sent - self.proof_gallons_received
