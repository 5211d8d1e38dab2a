from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'audit'

router = DefaultRouter()
router.register(r'', views.AuditLogViewSet, basename='audit-entry')

urlpatterns = [
    # GET /api/audit/                  - Filtered audit log
    # GET /api/audit/{id}/             - Entry with snapshots
    # GET /api/audit/{id}/rendered/    - Display form
    # GET /api/audit/{id}/verify/      - Checksum verification
    path('', include(router.urls)),
]
