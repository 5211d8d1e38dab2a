from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .models import AuditLogEntry
from .serializers import AuditLogEntrySerializer, AuditLogFilterSerializer
from apps.audit.services import (
    get_audit_log,
    get_audit_entry,
    render_entry,
    verify_checksum,
    AuditEntryNotFoundError,
    InvalidAuditFilterError,
)


class AuditLogPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 500


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only access to the audit log (getAuditLog).

    list: Filtered audit entries, newest first
    retrieve: One entry with both snapshots
    rendered: Display form of an entry
    verify: Recompute and compare the entry checksum
    """

    queryset = AuditLogEntry.objects.select_related('actor')
    serializer_class = AuditLogEntrySerializer
    permission_classes = [IsAuthenticated]
    pagination_class = AuditLogPagination

    def get_queryset(self):
        if self.action != 'list':
            return self.queryset
        filters = AuditLogFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return get_audit_log(**filters.validated_data)

    @extend_schema(
        parameters=[
            OpenApiParameter('table_name', OpenApiTypes.STR, description='Logical table (batches, vessels, ...)'),
            OpenApiParameter('record_id', OpenApiTypes.STR, description='Primary key of the audited record'),
            OpenApiParameter('operation', OpenApiTypes.STR, description='create, update, delete, soft_delete, restore'),
            OpenApiParameter('actor_id', OpenApiTypes.UUID, description='User who made the change'),
            OpenApiParameter('since', OpenApiTypes.DATETIME, description='Entries at or after this time'),
            OpenApiParameter('until', OpenApiTypes.DATETIME, description='Entries at or before this time'),
        ],
        tags=['audit'],
    )
    def list(self, request, *args, **kwargs):
        try:
            return super().list(request, *args, **kwargs)
        except InvalidAuditFilterError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    @action(detail=True, methods=['get'])
    def rendered(self, request, pk=None):
        """Display form of an entry."""
        try:
            entry = get_audit_entry(entry_id=pk)
        except AuditEntryNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        return Response(render_entry(entry))

    @action(detail=True, methods=['get'])
    def verify(self, request, pk=None):
        """Check the stored checksum of an entry."""
        try:
            entry = get_audit_entry(entry_id=pk)
        except AuditEntryNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        return Response({'id': str(entry.id), 'valid': verify_checksum(entry)})
