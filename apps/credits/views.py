from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.accounts.identity import resolve_identity
from apps.credits.models import CreditBalance, ExecutionMode
from apps.credits.money import format_cents
from apps.credits.services import get_available_credits, get_credit_history
from apps.merchants.services import get_merchant, MerchantNotFoundError
from .serializers import CreditBalanceSerializer, CreditEventSerializer


class CreditEventPagination(PageNumberPagination):
    """Custom pagination for credit history."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 200


MODE_PARAM = OpenApiParameter('mode', str, enum=['live', 'simulated'], required=False)


def _mode(request):
    mode = request.query_params.get('mode') or ExecutionMode.LIVE
    if mode not in ExecutionMode.values:
        return None
    return mode


def _invalid_mode():
    return Response({'error': 'Unknown execution mode', 'code': 'INVALID_MODE'},
                    status=status.HTTP_400_BAD_REQUEST)


@extend_schema(
    responses={200: CreditBalanceSerializer(many=True)},
    parameters=[MODE_PARAM],
    tags=['credits'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_balances(request):
    """GET /api/credits/balances/ - The current user's balance at every merchant."""
    mode = _mode(request)
    if mode is None:
        return _invalid_mode()

    balances = (
        CreditBalance.objects
        .filter(user=resolve_identity(request), mode=mode)
        .select_related('merchant')
        .order_by('merchant__name')
    )
    return Response(CreditBalanceSerializer(balances, many=True).data)


@extend_schema(
    responses={200: CreditEventSerializer(many=True)},
    parameters=[MODE_PARAM, OpenApiParameter('merchant', str, required=False)],
    tags=['credits'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_events(request):
    """GET /api/credits/events/?merchant=<uuid> - Paginated credit history."""
    mode = _mode(request)
    if mode is None:
        return _invalid_mode()

    merchant = None
    merchant_id = request.query_params.get('merchant')
    if merchant_id:
        try:
            merchant = get_merchant(merchant_id=merchant_id, active_only=False)
        except MerchantNotFoundError as e:
            return Response({'error': str(e), 'code': e.code}, status=status.HTTP_404_NOT_FOUND)

    events = get_credit_history(user=resolve_identity(request), mode=mode, merchant=merchant)

    paginator = CreditEventPagination()
    page = paginator.paginate_queryset(events, request)
    return paginator.get_paginated_response(CreditEventSerializer(page, many=True).data)


@extend_schema(parameters=[MODE_PARAM], tags=['credits'])
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def available_at_merchant(request, merchant_id):
    """
    GET /api/credits/merchants/{merchant_id}/available/

    Local credit at this merchant plus network credit from everywhere.
    """
    mode = _mode(request)
    if mode is None:
        return _invalid_mode()

    try:
        merchant = get_merchant(merchant_id=merchant_id)
    except MerchantNotFoundError as e:
        return Response({'error': str(e), 'code': e.code}, status=status.HTTP_404_NOT_FOUND)

    available = get_available_credits(user=resolve_identity(request), merchant=merchant, mode=mode)
    return Response({
        'merchant_id': merchant.id,
        'mode': mode,
        'local_cents': available.local,
        'network_cents': available.network,
        'total_cents': available.local + available.network,
        'total_display': format_cents(available.local + available.network),
    })
