# ==========================================
# apps/cellar/admin.py
# ==========================================

from django.contrib import admin
from apps.cellar.models import (
    Batch,
    BatchSource,
    DistillationRecord,
    Occupancy,
    TransactionEntry,
    Vessel,
)


class ReadOnlyAdminMixin:
    """Ledger rows change only through the service layer."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Vessel)
class VesselAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['name', 'vessel_type', 'material', 'capacity_liters', 'status', 'location']
    list_filter = ['status', 'vessel_type', 'material']
    search_fields = ['name', 'location']


class BatchSourceInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = BatchSource
    fk_name = 'batch'
    extra = 0
    fields = ['source_batch', 'source_label', 'volume_liters', 'abv', 'proportion', 'created_at']
    readonly_fields = fields


@admin.register(Batch)
class BatchAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['batch_number', 'name', 'status', 'tax_class', 'abv', 'current_volume_liters', 'created_at']
    list_filter = ['status', 'tax_class', 'created_at']
    search_fields = ['batch_number', 'name']
    date_hierarchy = 'created_at'
    inlines = [BatchSourceInline]


@admin.register(Occupancy)
class OccupancyAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['vessel', 'batch', 'since', 'ended_at']
    list_filter = ['vessel']


@admin.register(TransactionEntry)
class TransactionEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['timestamp', 'batch', 'vessel', 'entry_type', 'delta_liters', 'balance_after_liters', 'reason_code']
    list_filter = ['entry_type', 'timestamp']
    search_fields = ['batch__batch_number', 'notes']
    date_hierarchy = 'timestamp'
    ordering = ['-timestamp']


@admin.register(DistillationRecord)
class DistillationRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['source_batch', 'distillery_name', 'volume_sent_liters', 'proof_gallons_sent', 'status', 'sent_at']
    list_filter = ['status', 'distillery_name']
