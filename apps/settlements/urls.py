from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'settlements'

router = DefaultRouter()
router.register(r'', views.SettlementViewSet, basename='settlement')

urlpatterns = [
    # GET  /api/settlements/                  - List settlements
    # GET  /api/settlements/{id}/             - Settlement detail
    # POST /api/settlements/generate/         - Run batch for a period (admin)
    # POST /api/settlements/{id}/mark-paid/   - Record payout (admin)
    path('', include(router.urls)),
]
