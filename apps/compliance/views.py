from rest_framework import viewsets, status, mixins
from rest_framework.decorators import api_view, action, permission_classes
from rest_framework.permissions import IsAuthenticated
from apps.accounts.permissions import CanWriteLedger
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .models import ReconciliationSnapshot, ReportedBalance
from .serializers import (
    PeriodSerializer,
    PeriodTaxSerializer,
    ReconcileSerializer,
    ReconciliationSnapshotSerializer,
    ReportedBalanceInputSerializer,
    ReportedBalanceSerializer,
    TaxCalculationInputSerializer,
)
from .services import (
    ComplianceServiceError,
    SnapshotNotFoundError,
    calculate_hard_cider_tax,
    calculate_period_tax,
    get_reconciliation_snapshot,
    list_reported_balances,
    period_label,
    period_range,
    reconcile_period,
    set_reported_balance,
)

PERIOD_PARAMETERS = [
    OpenApiParameter('period_start', OpenApiTypes.DATE, description='First day of the period'),
    OpenApiParameter('period_end', OpenApiTypes.DATE, description='Last day of the period'),
    OpenApiParameter('period_type', OpenApiTypes.STR, description='monthly, quarterly or annual'),
    OpenApiParameter('year', OpenApiTypes.INT),
    OpenApiParameter('number', OpenApiTypes.INT, description='Month (1-12) or quarter (1-4)'),
]


def resolve_period(data):
    """(period_start, period_end, label) from validated PeriodSerializer data."""
    if data.get('period_start') and data.get('period_end'):
        return data['period_start'], data['period_end'], ''
    start, end = period_range(data['period_type'], data['year'], data.get('number'))
    return start, end, period_label(data['period_type'], data['year'], data.get('number'))


class CompliancePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class ReconciliationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Period reconciliations.

    list: Stored reconciliation snapshots, newest first
    retrieve: One snapshot with its lines
    create: Reconcile a period against reported balances
    snapshot: Latest snapshot for a period (getReconciliationSnapshot)
    """

    queryset = ReconciliationSnapshot.objects.select_related('created_by').prefetch_related('lines')
    serializer_class = ReconciliationSnapshotSerializer
    permission_classes = [CanWriteLedger]
    pagination_class = CompliancePagination

    @extend_schema(request=ReconcileSerializer, responses={201: OpenApiTypes.OBJECT})
    def create(self, request):
        """Run a reconciliation. Discrepancies are returned, never corrected."""
        serializer = ReconcileSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            period_start, period_end, label = resolve_period(data)
            result = reconcile_period(
                period_start=period_start,
                period_end=period_end,
                tolerance=data.get('tolerance_gallons'),
                label=data['label'] or label,
                actor=request.user,
            )
        except ComplianceServiceError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'snapshot': ReconciliationSnapshotSerializer(result.snapshot).data,
            'balanced': result.balanced,
            'warnings': [discrepancy.as_dict() for discrepancy in result.discrepancies],
        }, status=status.HTTP_201_CREATED)

    @extend_schema(parameters=PERIOD_PARAMETERS, responses={200: ReconciliationSnapshotSerializer})
    @action(detail=False, methods=['get'])
    def snapshot(self, request):
        """Latest reconciliation for a period."""
        serializer = PeriodSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        try:
            period_start, period_end, _ = resolve_period(serializer.validated_data)
            snapshot = get_reconciliation_snapshot(period_start=period_start, period_end=period_end)
        except SnapshotNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except ComplianceServiceError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(ReconciliationSnapshotSerializer(snapshot).data)


class ReportedBalanceViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """
    Externally reported balances.

    list: Reported balances (?period_start=&period_end=)
    create: Record or correct the balance of a tax class for a period
    """

    queryset = ReportedBalance.objects.all()
    serializer_class = ReportedBalanceSerializer
    permission_classes = [CanWriteLedger]
    pagination_class = CompliancePagination

    def get_queryset(self):
        if self.action != 'list':
            return super().get_queryset()
        return list_reported_balances(
            period_start=self.request.query_params.get('period_start'),
            period_end=self.request.query_params.get('period_end'),
        )

    @extend_schema(request=ReportedBalanceInputSerializer, responses={201: ReportedBalanceSerializer})
    def create(self, request, *args, **kwargs):
        serializer = ReportedBalanceInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            balance = set_reported_balance(actor=request.user, **serializer.validated_data)
        except ComplianceServiceError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(ReportedBalanceSerializer(balance).data, status=status.HTTP_201_CREATED)


@extend_schema(
    request=TaxCalculationInputSerializer,
    responses={200: OpenApiTypes.OBJECT},
    description="Hard cider excise with the small producer credit.",
    tags=['compliance'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def hard_cider_tax(request):
    serializer = TaxCalculationInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    calculation = calculate_hard_cider_tax(
        serializer.validated_data['taxable_gallons'],
        serializer.validated_data['prior_year_gallons_used'],
    )
    return Response(calculation.as_dict())


@extend_schema(
    parameters=[
        *PERIOD_PARAMETERS,
        OpenApiParameter('prior_year_gallons_used', OpenApiTypes.NUMBER),
    ],
    responses={200: OpenApiTypes.OBJECT},
    description="Excise owed on the tax-paid hard cider removals of a period.",
    tags=['compliance'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def period_tax(request):
    serializer = PeriodTaxSerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)

    try:
        period_start, period_end, label = resolve_period(serializer.validated_data)
        calculation = calculate_period_tax(
            period_start=period_start,
            period_end=period_end,
            prior_year_gallons_used=serializer.validated_data['prior_year_gallons_used'],
        )
    except ComplianceServiceError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    return Response({
        'period_start': period_start,
        'period_end': period_end,
        'label': label,
        **calculation.as_dict(),
    })
