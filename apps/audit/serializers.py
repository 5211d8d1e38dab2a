from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from .models import AuditLogEntry, AuditOperation
from .services import summarize_changes


class AuditLogEntrySerializer(serializers.ModelSerializer):
    """Full audit entry including both snapshots."""

    actor = UserMinimalSerializer(read_only=True)
    summary = serializers.SerializerMethodField()

    class Meta:
        model = AuditLogEntry
        fields = [
            'id',
            'table_name',
            'record_id',
            'operation',
            'old_snapshot',
            'new_snapshot',
            'diff',
            'summary',
            'actor',
            'reason',
            'timestamp',
            'audit_version',
            'checksum',
        ]
        read_only_fields = fields

    def get_summary(self, obj):
        return summarize_changes(obj.diff)


class AuditLogFilterSerializer(serializers.Serializer):
    """Query parameters accepted by the audit log listing."""

    table_name = serializers.CharField(required=False)
    record_id = serializers.CharField(required=False)
    operation = serializers.ChoiceField(choices=AuditOperation.choices, required=False)
    actor_id = serializers.UUIDField(required=False)
    since = serializers.DateTimeField(required=False)
    until = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        since = attrs.get('since')
        until = attrs.get('until')
        if since and until and since > until:
            raise serializers.ValidationError("'since' must be before 'until'")
        return attrs
