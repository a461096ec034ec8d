from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    # Merchant side
    # POST /api/payments/transactions/                 - Open a bill
    # POST /api/payments/transactions/{id}/confirm/    - Confirm customer code
    # POST /api/payments/complete/                     - Capture by payment code
    # POST /api/payments/void/                         - Void by payment code
    # GET  /api/payments/status/{payment_code}/        - Status by payment code
    # GET  /api/payments/notifications/                - Merchant notifications
    path('transactions/', views.create_transaction_view, name='transaction-create'),
    path('transactions/<uuid:transaction_id>/', views.transaction_detail_view, name='transaction-detail'),
    path('transactions/<uuid:transaction_id>/confirm/', views.confirm_transaction_view, name='transaction-confirm'),
    path('complete/', views.complete_transaction_view, name='complete'),
    path('void/', views.void_transaction_view, name='void'),
    path('status/<str:payment_code>/', views.transaction_status_view, name='status'),
    path('notifications/', views.notifications_view, name='notifications'),
    path('notifications/read/', views.mark_notifications_read_view, name='notifications-read'),

    # Customer side
    # GET  /api/payments/terminals/{terminal}/pending/        - Open bills at terminal
    # POST /api/payments/terminals/{terminal}/claim/          - Claim with lane token
    # POST /api/payments/transactions/{id}/select-credits/    - Live credit selection
    path('terminals/<str:terminal_id>/pending/', views.terminal_pending_view, name='terminal-pending'),
    path('terminals/<str:terminal_id>/claim/', views.claim_view, name='terminal-claim'),
    path(
        'transactions/<uuid:transaction_id>/select-credits/',
        views.select_credits_view,
        name='transaction-select-credits'
    ),
]
