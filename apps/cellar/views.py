import logging

from rest_framework import viewsets, status, mixins, serializers as drf_serializers
from rest_framework.decorators import api_view, action, permission_classes
from rest_framework.permissions import IsAuthenticated
from apps.accounts.permissions import CanWriteLedger
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.units.exceptions import UnitsError
from .models import Batch, DistillationRecord, Vessel
from .serializers import (
    AdjustmentSerializer,
    AssignSerializer,
    BatchCreateSerializer,
    BatchListSerializer,
    BatchSerializer,
    BatchStatusSerializer,
    BlendCreateSerializer,
    BlendPreviewSerializer,
    DistillationRecordSerializer,
    FillSerializer,
    HistoryRowSerializer,
    LossSerializer,
    ReceiveFromDistillerySerializer,
    RemovalSerializer,
    SendToDistillerySerializer,
    SplitSerializer,
    TransactionEntrySerializer,
    TransferSerializer,
    VesselCreateSerializer,
    VesselSerializer,
    VesselStatusSerializer,
)
from .services import (
    BlendOperation,
    BlendSource,
    CellarServiceError,
    LedgerConflictError,
    LedgerIntegrityError,
    BatchNotFoundError,
    VesselNotFoundError,
    DistillationNotFoundError,
    adjust,
    apply_blend,
    assign,
    blend,
    change_batch_status,
    change_vessel_status,
    create_batch,
    current_volume,
    entries_for_vessel,
    history,
    list_vessels,
    occupant,
    receive_from_distillery,
    record_fill,
    record_loss,
    record_removal,
    register_vessel,
    send_to_distillery,
    split_batch,
    transfer,
    vessel_volume,
    volume_by_vessel,
)

logger = logging.getLogger(__name__)

UUID_PATTERN = '[0-9a-fA-F-]{36}'
NOT_FOUND_ERRORS = (BatchNotFoundError, VesselNotFoundError, DistillationNotFoundError)


class ErrorResponseSerializer(drf_serializers.Serializer):
    error = drf_serializers.CharField()
    code = drf_serializers.CharField()
    message = drf_serializers.CharField()
    details = drf_serializers.DictField()
    retryable = drf_serializers.BooleanField()


def service_error_response(error):
    """Map a cellar service error to an HTTP response."""
    if isinstance(error, NOT_FOUND_ERRORS):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, LedgerConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, LedgerIntegrityError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response(error.as_dict(), status=code)


def units_error_response(error):
    return Response(
        {'error': str(error), 'code': error.__class__.__name__},
        status=status.HTTP_400_BAD_REQUEST
    )


def ledger_result_response(result, status_code=status.HTTP_200_OK):
    data = {
        'batch': BatchSerializer(result.batch).data,
        'operation_id': str(result.operation_id),
        'entries': TransactionEntrySerializer(result.entries, many=True).data,
        'warnings': [warning.as_dict() for warning in result.warnings],
    }
    if result.related_batches:
        data['related_batches'] = BatchSerializer(result.related_batches, many=True).data
    return Response(data, status=status_code)


class CellarPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 200


class VesselViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """
    Vessels (tanks and barrels).

    list: All vessels, optionally filtered by status
    create: Register a vessel
    retrieve: One vessel with its occupant
    status: Change lifecycle status (changeVesselStatus)
    occupant: Current occupant (getVesselOccupant)
    volume: Current contents
    transactions: Ledger entries booked against the vessel
    """

    queryset = Vessel.objects.all()
    serializer_class = VesselSerializer
    permission_classes = [CanWriteLedger]
    pagination_class = CellarPagination
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):
        if self.action == 'list':
            return list_vessels(status=self.request.query_params.get('status'))
        return super().get_queryset()

    @extend_schema(request=VesselCreateSerializer, responses={201: VesselSerializer, 400: ErrorResponseSerializer})
    def create(self, request, *args, **kwargs):
        """Register a new vessel."""
        serializer = VesselCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            vessel = register_vessel(actor=request.user, **serializer.validated_data)
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return Response(VesselSerializer(vessel).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=VesselStatusSerializer, responses={200: VesselSerializer, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        """Move the vessel to cleaning, maintenance, available or retired."""
        serializer = VesselStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            vessel = change_vessel_status(
                vessel_id=pk,
                new_status=serializer.validated_data['status'],
                reason=serializer.validated_data['reason'],
                expected_version=serializer.validated_data.get('expected_version'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)

        return Response(VesselSerializer(vessel).data)

    @action(detail=True, methods=['get'])
    def occupant(self, request, pk=None):
        """Batch currently in the vessel, or null."""
        try:
            batch_id = occupant(pk)
        except CellarServiceError as e:
            return service_error_response(e)

        if batch_id is None:
            return Response({'vessel_id': pk, 'batch': None})
        return Response({'vessel_id': pk, 'batch': BatchListSerializer(Batch.objects.get(id=batch_id)).data})

    @action(detail=True, methods=['get'])
    def volume(self, request, pk=None):
        """Current contents of the vessel."""
        try:
            quantity = vessel_volume(pk)
        except CellarServiceError as e:
            return service_error_response(e)
        return Response({'vessel_id': pk, **quantity.as_dict()})

    @action(detail=True, methods=['get'])
    def transactions(self, request, pk=None):
        """Ledger entries booked against the vessel, oldest first."""
        self.get_object()
        entries = entries_for_vessel(pk).queryset()
        page = self.paginate_queryset(entries)
        serializer = TransactionEntrySerializer(page, many=True)
        return self.get_paginated_response(serializer.data)


class BatchViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """
    Batches and the ledger commands that move their volume.

    list: Batches, filtered by status or tax class
    create: Create an empty batch
    retrieve: One batch with its composition
    assign: Put the batch into an empty vessel (assignBatchToVessel)
    fill: Add volume (recordFill)
    transfer: Move volume between vessels (transferVolume)
    adjust: Reconcile a measured volume (recordVolumeAdjustment)
    loss: Record process loss
    removal: Record volume leaving the cellar
    split: Move volume into a new child batch
    status: Change lifecycle status
    volume: Current volume (getCurrentVolume)
    history: Transaction history (getTransactionHistory)
    """

    queryset = Batch.objects.select_related('created_by').prefetch_related('composition_sources__source_batch')
    serializer_class = BatchSerializer
    permission_classes = [CanWriteLedger]
    pagination_class = CellarPagination
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action != 'list':
            return queryset

        batch_status = self.request.query_params.get('status')
        if batch_status:
            queryset = queryset.filter(status=batch_status)

        tax_class = self.request.query_params.get('tax_class')
        if tax_class:
            queryset = queryset.filter(tax_class=tax_class)

        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(name__icontains=search) | queryset.filter(batch_number__icontains=search)

        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return BatchListSerializer
        return BatchSerializer

    @extend_schema(request=BatchCreateSerializer, responses={201: BatchSerializer})
    def create(self, request, *args, **kwargs):
        """Create an empty batch."""
        serializer = BatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        batch = create_batch(actor=request.user, **serializer.validated_data)
        return Response(BatchSerializer(batch).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=AssignSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer, 409: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """Put the batch into an empty vessel."""
        serializer = AssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = assign(
                batch_id=pk,
                vessel_id=data['vessel_id'],
                quantity=data['volume'],
                abv=data.get('abv'),
                reason_code=data['reason_code'],
                notes=data['notes'],
                expected_version=data.get('expected_version'),
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=FillSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def fill(self, request, pk=None):
        """Add volume to the batch."""
        serializer = FillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = record_fill(
                batch_id=pk,
                quantity=data['volume'],
                vessel_id=data.get('vessel_id'),
                abv=data.get('abv'),
                reason_code=data['reason_code'],
                notes=data['notes'],
                expected_version=data.get('expected_version'),
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=TransferSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer, 409: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def transfer(self, request, pk=None):
        """Move volume from one vessel to another."""
        serializer = TransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = transfer(
                batch_id=pk,
                from_vessel_id=data['from_vessel_id'],
                to_vessel_id=data['to_vessel_id'],
                quantity=data['volume'],
                notes=data['notes'],
                expected_version=data.get('expected_version'),
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=AdjustmentSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def adjust(self, request, pk=None):
        """Record a measured volume; the ledger books the difference."""
        serializer = AdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = adjust(
                batch_id=pk,
                new_measured_volume=data['volume'],
                adjustment_type=data['adjustment_type'],
                reason=data['reason'],
                vessel_id=data.get('vessel_id'),
                expected_version=data.get('expected_version'),
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=LossSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def loss(self, request, pk=None):
        """Record process loss (racking, lees, filtration)."""
        serializer = LossSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = record_loss(
                batch_id=pk,
                quantity=data['volume'],
                loss_reason=data['loss_reason'],
                vessel_id=data.get('vessel_id'),
                notes=data['notes'],
                expected_version=data.get('expected_version'),
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=RemovalSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def removal(self, request, pk=None):
        """Record volume leaving the cellar."""
        serializer = RemovalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = record_removal(
                batch_id=pk,
                quantity=data['volume'],
                category=data['category'],
                vessel_id=data.get('vessel_id'),
                notes=data['notes'],
                expected_version=data.get('expected_version'),
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=SplitSerializer, responses={201: OpenApiTypes.OBJECT, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'])
    def split(self, request, pk=None):
        """Move part of the batch into a new batch."""
        serializer = SplitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = split_batch(
                batch_id=pk,
                quantity=data['volume'],
                from_vessel_id=data.get('from_vessel_id'),
                to_vessel_id=data.get('to_vessel_id'),
                name=data.get('name'),
                notes=data['notes'],
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return ledger_result_response(result, status.HTTP_201_CREATED)

    @extend_schema(request=BatchStatusSerializer, responses={200: BatchSerializer, 400: ErrorResponseSerializer})
    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        """Move the batch through its lifecycle."""
        serializer = BatchStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            batch = change_batch_status(
                batch_id=pk,
                new_status=serializer.validated_data['status'],
                reason=serializer.validated_data['reason'],
                expected_version=serializer.validated_data.get('expected_version'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)

        return Response(BatchSerializer(batch).data)

    @action(detail=True, methods=['get'])
    def volume(self, request, pk=None):
        """Current volume, total and per vessel."""
        try:
            quantity = current_volume(pk)
            locations = volume_by_vessel(pk)
        except CellarServiceError as e:
            return service_error_response(e)

        return Response({
            'batch_id': pk,
            **quantity.as_dict(),
            'locations': [
                {'vessel_id': vessel_id, 'liters': str(liters)}
                for vessel_id, liters in locations.items()
            ],
        })

    @extend_schema(responses={200: HistoryRowSerializer(many=True)})
    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        """Transaction history of the batch, oldest first."""
        self.get_object()
        rows = history(pk)
        return Response(HistoryRowSerializer(rows, many=True).data)


@extend_schema(
    request=BlendCreateSerializer,
    responses={201: BatchSerializer, 400: ErrorResponseSerializer, 409: ErrorResponseSerializer},
    description="Blend several batches into a vessel (createBlend).",
    tags=['cellar'],
)
@api_view(['POST'])
@permission_classes([CanWriteLedger])
def create_blend(request):
    """Run a blend against the ledger."""
    serializer = BlendCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    operation = BlendOperation(
        sources=[
            BlendSource(
                batch_id=source['batch_id'],
                volume=source['volume'],
                abv=source.get('abv'),
                vessel_id=source.get('vessel_id'),
            )
            for source in data['sources']
        ],
        destination_vessel_id=data['destination_vessel_id'],
        target_batch_id=data.get('target_batch_id'),
        name=data['name'],
        tax_class=data.get('tax_class'),
        notes=data['notes'],
    )

    try:
        result = apply_blend(operation, actor=request.user)
    except CellarServiceError as e:
        return service_error_response(e)
    except UnitsError as e:
        return units_error_response(e)

    return Response({
        'batch': BatchSerializer(result.batch).data,
        'created': result.created,
        'operation_id': str(result.operation_id),
        'total_volume_liters': str(result.computation.total_volume.amount),
        'weighted_abv': str(result.computation.weighted_abv),
        'entries': TransactionEntrySerializer(result.entries, many=True).data,
        'source_batches': BatchListSerializer(result.source_batches, many=True).data,
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    request=BlendPreviewSerializer,
    description="Compute a blend's volume and ABV without touching the ledger.",
    tags=['cellar'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def preview_blend(request):
    """Weighted-average calculation only."""
    serializer = BlendPreviewSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        computation = blend(stream['volume'] for stream in serializer.validated_data['streams'])
    except CellarServiceError as e:
        return service_error_response(e)

    return Response({
        'total_volume_liters': str(computation.total_volume.amount),
        'weighted_abv': str(computation.weighted_abv),
        'proportions': [str(p) for p in computation.proportions],
    })


class DistillationViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """
    Distillery shipments.

    list: All shipments, newest first
    create: Send cider to a distillery (sendToDistillery)
    retrieve: One shipment
    receive: Receive the spirit back (receiveFromDistillery)
    """

    queryset = DistillationRecord.objects.select_related('source_batch', 'received_batch')
    serializer_class = DistillationRecordSerializer
    permission_classes = [CanWriteLedger]
    pagination_class = CellarPagination
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):
        queryset = super().get_queryset()
        record_status = self.request.query_params.get('status')
        if record_status:
            queryset = queryset.filter(status=record_status)
        return queryset

    @extend_schema(
        request=SendToDistillerySerializer,
        responses={201: DistillationRecordSerializer, 400: ErrorResponseSerializer},
    )
    def create(self, request, *args, **kwargs):
        """Ship cider to a distillery."""
        serializer = SendToDistillerySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            record = send_to_distillery(
                batch_id=data['batch_id'],
                quantity=data['volume'],
                distillery_name=data['distillery_name'],
                vessel_id=data.get('vessel_id'),
                abv=data.get('abv'),
                notes=data['notes'],
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return Response(DistillationRecordSerializer(record).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        request=ReceiveFromDistillerySerializer,
        responses={200: DistillationRecordSerializer, 400: ErrorResponseSerializer, 404: ErrorResponseSerializer},
        parameters=[OpenApiParameter('id', OpenApiTypes.UUID, OpenApiParameter.PATH)],
    )
    @action(detail=True, methods=['post'])
    def receive(self, request, pk=None):
        """Receive spirit back from the distillery."""
        serializer = ReceiveFromDistillerySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            record = receive_from_distillery(
                record_id=pk,
                quantity=data['volume'],
                abv=data['abv'],
                vessel_id=data.get('vessel_id'),
                name=data['name'],
                tax_class=data['tax_class'],
                occurred_at=data.get('occurred_at'),
                actor=request.user,
            )
        except CellarServiceError as e:
            return service_error_response(e)
        except UnitsError as e:
            return units_error_response(e)

        return Response(DistillationRecordSerializer(record).data)
