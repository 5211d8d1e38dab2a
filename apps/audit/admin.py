# ==========================================
# apps/audit/admin.py
# ==========================================

from django.contrib import admin
from apps.audit.models import AuditLogEntry


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    """Read-only admin for the audit log."""

    list_display = ['timestamp', 'table_name', 'record_id', 'operation', 'actor']
    list_filter = ['operation', 'table_name', 'timestamp']
    search_fields = ['record_id', 'reason', 'actor__email']
    date_hierarchy = 'timestamp'
    ordering = ['-timestamp']
    readonly_fields = [
        'table_name', 'record_id', 'operation', 'old_snapshot', 'new_snapshot',
        'diff', 'actor', 'reason', 'timestamp', 'audit_version', 'checksum',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
