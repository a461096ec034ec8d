from django.urls import path
from . import views

app_name = 'credits'

urlpatterns = [
    # GET /api/credits/balances/                      - Balances per merchant
    # GET /api/credits/events/                        - Credit history
    # GET /api/credits/merchants/{id}/available/      - Spendable at a merchant
    path('balances/', views.my_balances, name='balances'),
    path('events/', views.my_events, name='events'),
    path('merchants/<uuid:merchant_id>/available/', views.available_at_merchant, name='available'),
]
