from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from apps.cellar.models import TaxClass
from .models import PeriodType, ReconciliationLine, ReconciliationSnapshot, ReportedBalance


class ReportedBalanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReportedBalance
        fields = [
            'id',
            'tax_class',
            'period_start',
            'period_end',
            'opening_gallons',
            'closing_gallons',
            'source',
            'notes',
            'version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ReportedBalanceInputSerializer(serializers.Serializer):
    tax_class = serializers.ChoiceField(choices=TaxClass.choices)
    period_start = serializers.DateField()
    period_end = serializers.DateField()
    opening_gallons = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0)
    closing_gallons = serializers.DecimalField(
        max_digits=14, decimal_places=3, min_value=0, required=False, allow_null=True
    )
    source = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ReconciliationLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReconciliationLine
        exclude = ['snapshot']
        read_only_fields = ['id']


class ReconciliationSnapshotSerializer(serializers.ModelSerializer):
    lines = ReconciliationLineSerializer(many=True, read_only=True)
    created_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = ReconciliationSnapshot
        fields = [
            'id',
            'period_start',
            'period_end',
            'label',
            'tolerance_gallons',
            'balanced',
            'discrepancy_count',
            'computed_at',
            'created_by',
            'lines',
        ]
        read_only_fields = fields


class PeriodSerializer(serializers.Serializer):
    """
    A reporting period, either as explicit dates or as
    ``period_type`` + ``year`` (+ ``number`` for months and quarters).
    """

    period_start = serializers.DateField(required=False)
    period_end = serializers.DateField(required=False)
    period_type = serializers.ChoiceField(choices=PeriodType.choices, required=False)
    year = serializers.IntegerField(required=False, min_value=2000, max_value=2100)
    number = serializers.IntegerField(required=False, min_value=1, max_value=12)

    def validate(self, attrs):
        has_dates = 'period_start' in attrs and 'period_end' in attrs
        has_period = 'period_type' in attrs and 'year' in attrs
        if not has_dates and not has_period:
            raise serializers.ValidationError(
                "Give period_start and period_end, or period_type and year."
            )
        if has_dates and attrs['period_end'] < attrs['period_start']:
            raise serializers.ValidationError("period_end must not be before period_start")
        return attrs


class ReconcileSerializer(PeriodSerializer):
    tolerance_gallons = serializers.DecimalField(
        max_digits=10, decimal_places=3, min_value=0, required=False, allow_null=True
    )
    label = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')


class TaxCalculationInputSerializer(serializers.Serializer):
    taxable_gallons = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0)
    prior_year_gallons_used = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0, default=0)


class PeriodTaxSerializer(PeriodSerializer):
    prior_year_gallons_used = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0, default=0)
