from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from apps.units import Quantity, Unit
from apps.units.exceptions import UnitsError
from .models import (
    AdjustmentType,
    Batch,
    BatchSource,
    BatchStatus,
    DistillationRecord,
    FillSource,
    LossReason,
    RemovalCategory,
    TaxClass,
    TransactionEntry,
    Vessel,
    VesselMaterial,
    VesselStatus,
    VesselType,
)
from .services import current_composition

VOLUME_UNITS = [(unit.value, unit.value) for unit in Unit if unit.is_volume]


class QuantityInputSerializer(serializers.Serializer):
    """
    Volume input shared by ledger commands.

    ``quantity`` + ``unit`` (+ optional ``abv``) are combined into a
    ``Quantity`` under ``validated_data['volume']``.
    """

    quantity = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=0)
    unit = serializers.ChoiceField(choices=VOLUME_UNITS, default=Unit.LITER.value)
    abv = serializers.DecimalField(max_digits=6, decimal_places=3, required=False, allow_null=True)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        try:
            attrs['volume'] = Quantity(attrs.pop('quantity'), attrs.pop('unit'), attrs.get('abv'))
        except UnitsError as e:
            raise serializers.ValidationError({'quantity': str(e)})
        return attrs


# =============================================================================
# Read serializers
# =============================================================================

class VesselSerializer(serializers.ModelSerializer):
    occupant_batch_id = serializers.SerializerMethodField()

    class Meta:
        model = Vessel
        fields = [
            'id',
            'name',
            'vessel_type',
            'material',
            'location',
            'capacity_liters',
            'capacity_unit',
            'status',
            'occupant_batch_id',
            'version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_occupant_batch_id(self, obj):
        occupancy = obj.occupancies.filter(ended_at__isnull=True).first()
        return str(occupancy.batch_id) if occupancy else None


class BatchSourceSerializer(serializers.ModelSerializer):
    source_batch_number = serializers.CharField(source='source_batch.batch_number', read_only=True, default=None)

    class Meta:
        model = BatchSource
        fields = [
            'id',
            'source_batch',
            'source_batch_number',
            'source_label',
            'volume_liters',
            'abv',
            'proportion',
            'operation_id',
            'created_at',
        ]
        read_only_fields = fields


class BatchListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views."""

    class Meta:
        model = Batch
        fields = [
            'id',
            'batch_number',
            'name',
            'status',
            'tax_class',
            'abv',
            'current_volume_liters',
            'created_at',
        ]
        read_only_fields = fields


class BatchSerializer(serializers.ModelSerializer):
    composition = serializers.SerializerMethodField()
    composition_history = BatchSourceSerializer(source='composition_sources', many=True, read_only=True)
    created_by_email = serializers.EmailField(source='created_by.email', read_only=True, default=None)

    class Meta:
        model = Batch
        fields = [
            'id',
            'batch_number',
            'name',
            'status',
            'tax_class',
            'abv',
            'current_volume_liters',
            'composition',
            'composition_history',
            'version',
            'created_by',
            'created_by_email',
            'created_at',
            'updated_at',
            'completed_at',
        ]
        read_only_fields = fields

    @extend_schema_field(BatchSourceSerializer(many=True))
    def get_composition(self, obj):
        """Sources of the latest blend, split or sourced create."""
        return BatchSourceSerializer(current_composition(obj), many=True).data


class TransactionEntrySerializer(serializers.ModelSerializer):
    balance_before_liters = serializers.DecimalField(max_digits=18, decimal_places=3, read_only=True)

    class Meta:
        model = TransactionEntry
        fields = [
            'id',
            'batch',
            'vessel',
            'sequence',
            'entry_type',
            'delta_liters',
            'balance_before_liters',
            'balance_after_liters',
            'abv',
            'reason_code',
            'notes',
            'operation_id',
            'counterpart_batch',
            'timestamp',
            'actor',
        ]
        read_only_fields = fields


class HistoryRowSerializer(serializers.Serializer):
    """Row of a batch's transaction history."""

    id = serializers.UUIDField()
    sequence = serializers.IntegerField()
    entry_type = serializers.CharField()
    vessel_id = serializers.UUIDField(allow_null=True)
    vessel_name = serializers.CharField(allow_null=True)
    delta_liters = serializers.DecimalField(max_digits=18, decimal_places=3)
    balance_before_liters = serializers.DecimalField(max_digits=18, decimal_places=3)
    balance_after_liters = serializers.DecimalField(max_digits=18, decimal_places=3)
    abv = serializers.DecimalField(max_digits=6, decimal_places=3, allow_null=True)
    reason_code = serializers.CharField(allow_blank=True)
    notes = serializers.CharField(allow_blank=True)
    operation_id = serializers.UUIDField()
    counterpart_batch_id = serializers.UUIDField(allow_null=True)
    timestamp = serializers.DateTimeField()
    actor = serializers.CharField(allow_null=True)


class DistillationRecordSerializer(serializers.ModelSerializer):
    distillation_loss_proof_gallons = serializers.DecimalField(
        max_digits=18, decimal_places=3, read_only=True, allow_null=True
    )

    class Meta:
        model = DistillationRecord
        fields = [
            'id',
            'source_batch',
            'source_vessel',
            'distillery_name',
            'volume_sent_liters',
            'abv_sent',
            'proof_gallons_sent',
            'sent_at',
            'received_batch',
            'volume_received_liters',
            'abv_received',
            'proof_gallons_received',
            'received_at',
            'distillation_loss_proof_gallons',
            'status',
            'notes',
            'created_at',
        ]
        read_only_fields = fields


# =============================================================================
# Command serializers
# =============================================================================

class VesselCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    capacity = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=0)
    unit = serializers.ChoiceField(choices=VOLUME_UNITS, default=Unit.LITER.value)
    vessel_type = serializers.ChoiceField(choices=VesselType.choices, default=VesselType.FERMENTER)
    material = serializers.ChoiceField(choices=VesselMaterial.choices, default=VesselMaterial.STAINLESS_STEEL)
    location = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        attrs['capacity'] = Quantity(attrs['capacity'], attrs.pop('unit'))
        return attrs


class VesselStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=VesselStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    expected_version = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class BatchCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    batch_number = serializers.CharField(max_length=40, required=False, allow_null=True)
    tax_class = serializers.ChoiceField(choices=TaxClass.choices, default=TaxClass.HARD_CIDER)
    abv = serializers.DecimalField(
        max_digits=6, decimal_places=3, min_value=0, max_value=100, required=False, allow_null=True
    )
    status = serializers.ChoiceField(
        choices=[BatchStatus.FERMENTATION, BatchStatus.AGING, BatchStatus.CONDITIONING],
        default=BatchStatus.FERMENTATION
    )
    source_label = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')

    def validate_batch_number(self, value):
        if value and Batch.objects.filter(batch_number=value).exists():
            raise serializers.ValidationError("A batch with this number already exists.")
        return value


class BatchStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=BatchStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    expected_version = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class LedgerCommandSerializer(QuantityInputSerializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    expected_version = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    occurred_at = serializers.DateTimeField(required=False, allow_null=True)


class AssignSerializer(LedgerCommandSerializer):
    vessel_id = serializers.UUIDField()
    reason_code = serializers.ChoiceField(choices=FillSource.choices, default=FillSource.PRESS)


class FillSerializer(LedgerCommandSerializer):
    vessel_id = serializers.UUIDField(required=False, allow_null=True)
    reason_code = serializers.ChoiceField(choices=FillSource.choices, default=FillSource.PRESS)


class TransferSerializer(LedgerCommandSerializer):
    from_vessel_id = serializers.UUIDField()
    to_vessel_id = serializers.UUIDField()

    def validate(self, attrs):
        if attrs['from_vessel_id'] == attrs['to_vessel_id']:
            raise serializers.ValidationError("Source and destination vessel must differ.")
        return super().validate(attrs)


class AdjustmentSerializer(LedgerCommandSerializer):
    """``quantity`` is the newly measured volume, not the delta."""

    adjustment_type = serializers.ChoiceField(choices=AdjustmentType.choices)
    reason = serializers.CharField()
    vessel_id = serializers.UUIDField(required=False, allow_null=True)


class LossSerializer(LedgerCommandSerializer):
    loss_reason = serializers.ChoiceField(choices=LossReason.choices, default=LossReason.OTHER)
    vessel_id = serializers.UUIDField(required=False, allow_null=True)


class RemovalSerializer(LedgerCommandSerializer):
    category = serializers.ChoiceField(choices=RemovalCategory.choices)
    vessel_id = serializers.UUIDField(required=False, allow_null=True)


class SplitSerializer(QuantityInputSerializer):
    from_vessel_id = serializers.UUIDField(required=False, allow_null=True)
    to_vessel_id = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BlendSourceInputSerializer(QuantityInputSerializer):
    batch_id = serializers.UUIDField()
    vessel_id = serializers.UUIDField(required=False, allow_null=True)


class BlendCreateSerializer(serializers.Serializer):
    sources = BlendSourceInputSerializer(many=True, allow_empty=False)
    destination_vessel_id = serializers.UUIDField()
    target_batch_id = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    tax_class = serializers.ChoiceField(choices=TaxClass.choices, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BlendPreviewStreamSerializer(QuantityInputSerializer):
    abv = serializers.DecimalField(max_digits=6, decimal_places=3, min_value=0, max_value=100)


class BlendPreviewSerializer(serializers.Serializer):
    streams = BlendPreviewStreamSerializer(many=True, allow_empty=False)


class SendToDistillerySerializer(LedgerCommandSerializer):
    batch_id = serializers.UUIDField()
    distillery_name = serializers.CharField(max_length=200)
    vessel_id = serializers.UUIDField(required=False, allow_null=True)


class ReceiveFromDistillerySerializer(QuantityInputSerializer):
    abv = serializers.DecimalField(max_digits=6, decimal_places=3, min_value=0, max_value=100)
    vessel_id = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    tax_class = serializers.ChoiceField(choices=TaxClass.choices, default=TaxClass.APPLE_BRANDY)
    occurred_at = serializers.DateTimeField(required=False, allow_null=True)
