from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'compliance'

router = DefaultRouter()
router.register(r'reconciliations', views.ReconciliationViewSet, basename='reconciliation')
router.register(r'reported-balances', views.ReportedBalanceViewSet, basename='reported-balance')

urlpatterns = [
    # Reconciliation
    # GET    /api/compliance/reconciliations/            - Stored snapshots
    # POST   /api/compliance/reconciliations/            - Reconcile a period
    # GET    /api/compliance/reconciliations/{id}/       - Snapshot with lines
    # GET    /api/compliance/reconciliations/snapshot/   - Latest snapshot for a period

    # Reported balances
    # GET    /api/compliance/reported-balances/          - List (?period_start=&period_end=)
    # POST   /api/compliance/reported-balances/          - Record or correct a balance

    # Excise
    # POST   /api/compliance/tax/hard-cider/             - Tax for a gallon figure
    # GET    /api/compliance/tax/period/                 - Tax for a period's removals
    path('tax/hard-cider/', views.hard_cider_tax, name='hard-cider-tax'),
    path('tax/period/', views.period_tax, name='period-tax'),
    path('', include(router.urls)),
]
