import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.accounts.identity import resolve_identity
from apps.credits.services import CreditsServiceError
from apps.merchants.models import Deal, Grab
from apps.merchants.services import (
    get_merchant,
    has_merchant_access,
    require_merchant_access,
    MerchantsServiceError,
    DealUnavailableError,
    GrabNotFoundError,
)

from .models import PendingTransaction
from .runtime import context_for_request
from .serializers import (
    TransactionSerializer,
    CustomerTransactionSerializer,
    CreateTransactionSerializer,
    ClaimSerializer,
    SelectCreditsSerializer,
    ConfirmSerializer,
    PaymentCodeSerializer,
    VoidSerializer,
    MerchantNotificationSerializer,
    MarkReadSerializer,
)
from apps.payments.services import (
    create_pending_transaction,
    find_pending_for_terminal,
    claim_with_token,
    select_credits,
    confirm_transaction,
    complete_transaction,
    void_transaction,
    get_transaction,
    get_transaction_status,
    list_notifications,
    mark_notifications_read,
    # Exceptions
    PaymentsServiceError,
    TransactionNotFoundError,
    TokenRequiredError,
)

logger = logging.getLogger(__name__)


STATUS_BY_CODE = {
    'NOT_FOUND': status.HTTP_404_NOT_FOUND,
    'FORBIDDEN': status.HTTP_403_FORBIDDEN,
    'EXPIRED': status.HTTP_410_GONE,
    'ALREADY_CLOSED': status.HTTP_409_CONFLICT,
    'INVALID_STATE': status.HTTP_409_CONFLICT,
    'TOKEN_REQUIRED': status.HTTP_409_CONFLICT,
    'INSUFFICIENT_BALANCE': status.HTTP_409_CONFLICT,
    'INVALID_CODE': status.HTTP_400_BAD_REQUEST,
    'EXCEEDS_BALANCE': status.HTTP_400_BAD_REQUEST,
    'EXCEEDS_CAP': status.HTTP_400_BAD_REQUEST,
    'NEGATIVE_AMOUNT': status.HTTP_400_BAD_REQUEST,
    'FLOW_DISABLED': status.HTTP_400_BAD_REQUEST,
    'DEAL_UNAVAILABLE': status.HTTP_400_BAD_REQUEST,
    'CARD_DECLINED': status.HTTP_402_PAYMENT_REQUIRED,
    'INTERNAL_ERROR': status.HTTP_503_SERVICE_UNAVAILABLE,
}

SERVICE_ERRORS = (PaymentsServiceError, CreditsServiceError, MerchantsServiceError)


def error_response(exc):
    """Convert a domain exception into {'error', 'code', 'retryable'}."""
    body = {'error': str(exc), 'code': exc.code, 'retryable': exc.retryable}
    if isinstance(exc, TokenRequiredError):
        body['candidates'] = [
            {'token': c.token, 'amount': c.amount_cents, 'expires_at': c.expires_at}
            for c in exc.candidates
        ]
    return Response(body, status=STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST))


def _staff_merchant(request, merchant_id):
    """
    Raises:
        MerchantNotFoundError, MerchantAccessDeniedError
    """
    merchant = get_merchant(merchant_id=merchant_id)
    require_merchant_access(user=resolve_identity(request), merchant=merchant)
    return merchant


def _context(request):
    try:
        return context_for_request(request), None
    except ValueError as e:
        return None, Response({'error': str(e), 'code': 'INVALID_MODE'}, status=status.HTTP_400_BAD_REQUEST)


MODE_PARAM = OpenApiParameter('mode', str, enum=['live', 'simulated'], required=False)


# =============================================================================
# Merchant side
# =============================================================================

@extend_schema(
    request=CreateTransactionSerializer,
    responses={201: TransactionSerializer},
    parameters=[MODE_PARAM],
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_transaction_view(request):
    """
    Open a bill.

    POST /api/payments/transactions/
    Body: {"merchant": "<uuid>", "amount": "20.00", "flow": "token_queue",
           "terminal_id": "T1", "deal": "<uuid>", "grab": "<uuid>", "payment_method": "cash"}
    """
    ctx, error = _context(request)
    if error:
        return error

    serializer = CreateTransactionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        merchant = _staff_merchant(request, data['merchant'])

        deal = grab = None
        if data.get('deal'):
            deal = Deal.objects.filter(id=data['deal'], merchant=merchant).first()
            if deal is None:
                raise DealUnavailableError("Deal not found for this merchant")
        if data.get('grab'):
            grab = Grab.objects.filter(id=data['grab'], merchant=merchant).select_related('deal').first()
            if grab is None:
                raise GrabNotFoundError("Grab not found")

        txn = create_pending_transaction(
            merchant=merchant,
            amount_cents=data['amount'],
            ctx=ctx,
            flow=data['flow'],
            terminal_id=data.get('terminal_id'),
            deal=deal,
            grab=grab,
            payment_method=data['payment_method'],
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)


@extend_schema(
    request=ConfirmSerializer,
    parameters=[MODE_PARAM],
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def confirm_transaction_view(request, transaction_id):
    """
    Merchant enters the customer's code; selected credit is debited.

    POST /api/payments/transactions/{id}/confirm/
    Body: {"code": "123456"}
    """
    ctx, error = _context(request)
    if error:
        return error

    serializer = ConfirmSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        merchant_id = (
            PendingTransaction.objects
            .filter(pk=transaction_id, mode=ctx.mode)
            .values_list('merchant_id', flat=True)
            .first()
        )
        if merchant_id is None:
            raise TransactionNotFoundError("Transaction not found")
        _staff_merchant(request, merchant_id)

        result = confirm_transaction(
            transaction_id=transaction_id,
            code=serializer.validated_data['code'],
            ctx=ctx,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    body = {
        'transaction': TransactionSerializer(result.transaction).data,
        'net_payable': result.net_payable,
        'completed': result.completion is not None,
    }
    if result.completion is not None:
        body['credits_earned'] = result.completion.credits_earned.total
        body['completed_at'] = result.completion.completed_at
    return Response(body, status=status.HTTP_200_OK)


@extend_schema(
    request=PaymentCodeSerializer,
    parameters=[MODE_PARAM],
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_transaction_view(request):
    """
    Capture a transaction by payment code. Safe to repeat.

    POST /api/payments/complete/
    Body: {"merchant": "<uuid>", "payment_code": "123456"}
    """
    ctx, error = _context(request)
    if error:
        return error

    serializer = PaymentCodeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        merchant = _staff_merchant(request, data['merchant'])
        result = complete_transaction(payment_code=data['payment_code'], ctx=ctx, merchant=merchant)
    except SERVICE_ERRORS as e:
        return error_response(e)

    return Response({
        'transaction_id': result.transaction.id,
        'credits_earned': result.credits_earned.total,
        'credits_earned_local': result.credits_earned.local,
        'credits_earned_network': result.credits_earned.network,
        'completed_at': result.completed_at,
        'already_processed': result.already_processed,
    }, status=status.HTTP_200_OK)


@extend_schema(
    request=VoidSerializer,
    parameters=[MODE_PARAM],
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def void_transaction_view(request):
    """
    Cancel an open transaction, restoring any debited credit.

    POST /api/payments/void/
    Body: {"merchant": "<uuid>", "payment_code": "123456", "reason": "Customer left"}
    """
    ctx, error = _context(request)
    if error:
        return error

    serializer = VoidSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        merchant = _staff_merchant(request, data['merchant'])
        result = void_transaction(
            payment_code=data['payment_code'],
            ctx=ctx,
            merchant=merchant,
            reason=data['reason'],
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    return Response({
        'transaction_id': result.transaction.id,
        'voided_at': result.voided_at,
        'credits_restored': result.credits_restored.total,
    }, status=status.HTTP_200_OK)


@extend_schema(
    responses={200: TransactionSerializer},
    parameters=[MODE_PARAM, OpenApiParameter('merchant', str, required=True)],
    tags=['payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transaction_status_view(request, payment_code):
    """GET /api/payments/status/{payment_code}/?merchant=<uuid>"""
    ctx, error = _context(request)
    if error:
        return error

    merchant_id = request.query_params.get('merchant')
    if not merchant_id:
        return Response({'error': 'merchant is required', 'code': 'INVALID_REQUEST'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        merchant = _staff_merchant(request, merchant_id)
        txn = get_transaction_status(payment_code=payment_code, ctx=ctx, merchant=merchant)
    except SERVICE_ERRORS as e:
        return error_response(e)

    return Response(TransactionSerializer(txn).data)


@extend_schema(
    responses={200: MerchantNotificationSerializer(many=True)},
    parameters=[
        OpenApiParameter('merchant', str, required=True),
        OpenApiParameter('unread', bool, required=False),
    ],
    tags=['payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications_view(request):
    """GET /api/payments/notifications/?merchant=<uuid>&unread=true"""
    merchant_id = request.query_params.get('merchant')
    if not merchant_id:
        return Response({'error': 'merchant is required', 'code': 'INVALID_REQUEST'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        merchant = _staff_merchant(request, merchant_id)
    except MerchantsServiceError as e:
        return error_response(e)

    unread_only = request.query_params.get('unread', '').lower() in ('1', 'true', 'yes')
    notifications = list_notifications(merchant=merchant, unread_only=unread_only)[:100]
    return Response(MerchantNotificationSerializer(notifications, many=True).data)


@extend_schema(request=MarkReadSerializer, tags=['payments'])
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def mark_notifications_read_view(request):
    """POST /api/payments/notifications/read/"""
    serializer = MarkReadSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        merchant = _staff_merchant(request, data['merchant'])
    except MerchantsServiceError as e:
        return error_response(e)

    count = mark_notifications_read(merchant=merchant, notification_ids=data.get('ids'))
    return Response({'marked_read': count})


# =============================================================================
# Customer side
# =============================================================================

@extend_schema(
    parameters=[MODE_PARAM, OpenApiParameter('merchant', str, required=True)],
    tags=['payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def terminal_pending_view(request, terminal_id):
    """
    Look up open bills at a terminal.

    GET /api/payments/terminals/{terminal_id}/pending/?merchant=<uuid>

    One open bill: {"auto_match": true, "transaction": {...}}
    Several: {"auto_match": false, "needs_token": true, "candidates": [{"token", "amount"}]}
    """
    ctx, error = _context(request)
    if error:
        return error

    merchant_id = request.query_params.get('merchant')
    if not merchant_id:
        return Response({'error': 'merchant is required', 'code': 'INVALID_REQUEST'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        merchant = get_merchant(merchant_id=merchant_id)
        match = find_pending_for_terminal(merchant=merchant, terminal_id=terminal_id, ctx=ctx)
    except SERVICE_ERRORS as e:
        return error_response(e)

    if match.auto_match:
        return Response({
            'auto_match': True,
            'needs_token': False,
            'transaction': CustomerTransactionSerializer(match.transaction).data,
        })
    return Response({
        'auto_match': False,
        'needs_token': True,
        'candidates': [
            {'token': c.token, 'amount': c.amount_cents, 'expires_at': c.expires_at}
            for c in match.candidates
        ],
    })


@extend_schema(
    request=ClaimSerializer,
    responses={200: CustomerTransactionSerializer},
    parameters=[MODE_PARAM],
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def claim_view(request, terminal_id):
    """
    Claim an open bill at a terminal, with a lane token when the terminal is busy.

    POST /api/payments/terminals/{terminal_id}/claim/
    Body: {"token": "K7QD"}
    """
    ctx, error = _context(request)
    if error:
        return error

    serializer = ClaimSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        txn = claim_with_token(
            terminal_id=terminal_id,
            token=serializer.validated_data.get('token') or None,
            user=resolve_identity(request),
            ctx=ctx,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    return Response(CustomerTransactionSerializer(txn).data)


@extend_schema(
    request=SelectCreditsSerializer,
    parameters=[MODE_PARAM],
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def select_credits_view(request, transaction_id):
    """
    Set the customer's credit selection and get a code to show the cashier.

    POST /api/payments/transactions/{id}/select-credits/
    Body: {"local_cents": 1000, "network_cents": 0}
    """
    ctx, error = _context(request)
    if error:
        return error

    serializer = SelectCreditsSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        selection = select_credits(
            transaction_id=transaction_id,
            user=resolve_identity(request),
            local_cents=data['local_cents'],
            network_cents=data['network_cents'],
            ctx=ctx,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    return Response({
        'transaction': CustomerTransactionSerializer(selection.transaction).data,
        'live_net_amount': selection.live_net_amount,
        'customer_code': selection.customer_code,
        'local_available': selection.local_available,
        'network_available': selection.network_available,
    })


@extend_schema(parameters=[MODE_PARAM], tags=['payments'])
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transaction_detail_view(request, transaction_id):
    """
    GET /api/payments/transactions/{id}/

    Merchant staff get the full record; the bound customer gets their view.
    """
    ctx, error = _context(request)
    if error:
        return error

    try:
        txn = get_transaction(transaction_id=transaction_id, ctx=ctx)
    except SERVICE_ERRORS as e:
        return error_response(e)

    user = resolve_identity(request)
    if has_merchant_access(user=user, merchant=txn.merchant):
        return Response(TransactionSerializer(txn).data)
    if txn.user_id is not None and user is not None and txn.user_id == user.id:
        return Response(CustomerTransactionSerializer(txn).data)
    return Response({'error': 'Transaction not found', 'code': 'NOT_FOUND'},
                    status=status.HTTP_404_NOT_FOUND)
