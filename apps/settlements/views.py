from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from apps.merchants.models import StaffRole
from apps.merchants.permissions import IsMerchantStaff
from .models import Settlement
from .serializers import SettlementSerializer, GenerateSettlementsSerializer
from apps.settlements.services import (
    generate_settlements,
    mark_settlement_paid,
    # Exceptions
    SettlementsServiceError,
    SettlementNotFoundError,
)


class SettlementPagination(PageNumberPagination):
    """Custom pagination for settlements."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class SettlementViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Settlements, read-only except for the admin actions.

    list: Platform staff see everything; merchant owners and managers see
        their own merchants' settlements
    retrieve: Get one settlement
    generate: Run the batch for a period (admin)
    mark_paid: Record a payout (admin)
    """

    serializer_class = SettlementSerializer
    permission_classes = [IsAuthenticated, IsMerchantStaff]
    merchant_role = StaffRole.MANAGER
    pagination_class = SettlementPagination

    def get_queryset(self):
        queryset = Settlement.objects.select_related('merchant')
        user = self.request.user
        if not user.is_staff:
            queryset = queryset.filter(
                Q(merchant__owner=user) |
                Q(merchant__staff__user=user,
                  merchant__staff__role__in=[StaffRole.MANAGER, StaffRole.OWNER])
            ).distinct()

        merchant_id = self.request.query_params.get('merchant')
        if merchant_id:
            queryset = queryset.filter(merchant_id=merchant_id)
        settlement_status = self.request.query_params.get('status')
        if settlement_status:
            queryset = queryset.filter(status=settlement_status)
        return queryset.order_by('-period_end', 'merchant__name')

    @extend_schema(request=GenerateSettlementsSerializer, tags=['settlements'])
    @action(detail=False, methods=['post'], permission_classes=[IsAuthenticated, IsAdminUser])
    def generate(self, request):
        """POST /api/settlements/generate/"""
        serializer = GenerateSettlementsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            run = generate_settlements(
                period_start=data['period_start'],
                period_end=data['period_end'],
                dry_run=data['dry_run'],
            )
        except SettlementsServiceError as e:
            return Response({'error': str(e), 'code': e.code}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'settlements_created': run.settlements_created,
            'skipped_existing': run.skipped_existing,
            'skipped_empty': run.skipped_empty,
            'dry_run': data['dry_run'],
            'settlements': SettlementSerializer(run.settlements, many=True).data,
        }, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses={200: SettlementSerializer}, tags=['settlements'])
    @action(detail=True, methods=['post'], url_path='mark-paid',
            permission_classes=[IsAuthenticated, IsAdminUser])
    def mark_paid(self, request, pk=None):
        """POST /api/settlements/{id}/mark-paid/"""
        try:
            settlement = mark_settlement_paid(settlement_id=pk)
        except SettlementNotFoundError as e:
            return Response({'error': str(e), 'code': e.code}, status=status.HTTP_404_NOT_FOUND)
        except SettlementsServiceError as e:
            return Response({'error': str(e), 'code': e.code}, status=status.HTTP_409_CONFLICT)

        return Response(SettlementSerializer(settlement).data)
