from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'cellar'

router = DefaultRouter()
router.register(r'vessels', views.VesselViewSet, basename='vessel')
router.register(r'batches', views.BatchViewSet, basename='batch')
router.register(r'distillations', views.DistillationViewSet, basename='distillation')

urlpatterns = [
    # Vessels
    # GET    /api/cellar/vessels/                    - List vessels (?status=)
    # POST   /api/cellar/vessels/                    - Register vessel
    # GET    /api/cellar/vessels/{id}/               - Vessel detail
    # POST   /api/cellar/vessels/{id}/status/        - Change vessel status
    # GET    /api/cellar/vessels/{id}/occupant/      - Current occupant
    # GET    /api/cellar/vessels/{id}/volume/        - Current contents
    # GET    /api/cellar/vessels/{id}/transactions/  - Entries booked against the vessel

    # Batches
    # GET    /api/cellar/batches/                    - List batches (?status=&tax_class=&search=)
    # POST   /api/cellar/batches/                    - Create empty batch
    # GET    /api/cellar/batches/{id}/               - Batch detail with composition
    # POST   /api/cellar/batches/{id}/assign/        - Assign to empty vessel
    # POST   /api/cellar/batches/{id}/fill/          - Record fill
    # POST   /api/cellar/batches/{id}/transfer/      - Transfer between vessels
    # POST   /api/cellar/batches/{id}/adjust/        - Volume adjustment
    # POST   /api/cellar/batches/{id}/loss/          - Process loss
    # POST   /api/cellar/batches/{id}/removal/       - Removal from the cellar
    # POST   /api/cellar/batches/{id}/split/         - Split into new batch
    # POST   /api/cellar/batches/{id}/status/        - Change batch status
    # GET    /api/cellar/batches/{id}/volume/        - Current volume
    # GET    /api/cellar/batches/{id}/history/       - Transaction history

    # Distillery round trip
    # GET    /api/cellar/distillations/              - List shipments
    # POST   /api/cellar/distillations/              - Send to distillery
    # POST   /api/cellar/distillations/{id}/receive/ - Receive spirit back

    path('blends/', views.create_blend, name='blend-create'),
    path('blends/preview/', views.preview_blend, name='blend-preview'),
    path('', include(router.urls)),
]
