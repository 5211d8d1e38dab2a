# ==========================================
# apps/compliance/admin.py
# ==========================================

from django.contrib import admin
from apps.compliance.models import ReconciliationLine, ReconciliationSnapshot, ReportedBalance


@admin.register(ReportedBalance)
class ReportedBalanceAdmin(admin.ModelAdmin):
    """Reported balances are corrected through the API so each change is audited."""

    list_display = ['tax_class', 'period_start', 'period_end', 'opening_gallons', 'closing_gallons', 'source']
    list_filter = ['tax_class', 'period_start']
    search_fields = ['source', 'notes']
    readonly_fields = [
        'tax_class', 'period_start', 'period_end', 'opening_gallons', 'closing_gallons',
        'source', 'notes', 'version', 'created_by', 'created_at', 'updated_at',
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ReconciliationLineInline(admin.TabularInline):
    model = ReconciliationLine
    extra = 0
    can_delete = False
    fields = [
        'tax_class', 'opening_gallons', 'production_gallons', 'removals_gallons',
        'losses_gallons', 'closing_gallons', 'balance_variance_gallons', 'balanced',
    ]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ReconciliationSnapshot)
class ReconciliationSnapshotAdmin(admin.ModelAdmin):
    list_display = ['label', 'period_start', 'period_end', 'balanced', 'discrepancy_count', 'computed_at']
    list_filter = ['balanced', 'period_start']
    date_hierarchy = 'computed_at'
    inlines = [ReconciliationLineInline]
    readonly_fields = [
        'period_start', 'period_end', 'label', 'tolerance_gallons', 'balanced',
        'discrepancy_count', 'computed_at', 'created_by',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
