import logging

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from .serializers import GrabSerializer, ValidateGrabSerializer
from apps.merchants.services import (
    get_merchant,
    require_merchant_access,
    resolve_reward_terms,
    validate_grab,
    # Exceptions
    MerchantNotFoundError,
    MerchantAccessDeniedError,
    GrabNotFoundError,
    GrabExpiredError,
    GrabAlreadyUsedError,
)

logger = logging.getLogger(__name__)


@extend_schema(
    request=ValidateGrabSerializer,
    responses={200: GrabSerializer},
    tags=['merchants'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def validate_grab_view(request):
    """
    Validate a grab presented at the counter by PIN or QR token.

    POST /api/merchants/grabs/validate/
    Body: {"merchant": "<uuid>", "pin": "123456"} or {"merchant": ..., "qr_token": ...}

    Does not consume the grab; it is marked used when the payment completes.
    """
    serializer = ValidateGrabSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        merchant = get_merchant(merchant_id=data['merchant'])
        require_merchant_access(user=request.user, merchant=merchant)
        grab = validate_grab(
            now=timezone.now(),
            pin=data.get('pin'),
            qr_token=data.get('qr_token'),
            merchant=merchant,
        )
    except MerchantNotFoundError as e:
        return Response({'error': str(e), 'code': 'NOT_FOUND'}, status=status.HTTP_404_NOT_FOUND)
    except MerchantAccessDeniedError as e:
        return Response({'error': str(e), 'code': 'FORBIDDEN'}, status=status.HTTP_403_FORBIDDEN)
    except GrabNotFoundError as e:
        return Response({'error': str(e), 'code': 'NOT_FOUND'}, status=status.HTTP_404_NOT_FOUND)
    except GrabExpiredError as e:
        return Response({'error': str(e), 'code': 'EXPIRED'}, status=status.HTTP_410_GONE)
    except GrabAlreadyUsedError as e:
        return Response({'error': str(e), 'code': 'ALREADY_CLOSED'}, status=status.HTTP_409_CONFLICT)

    terms = resolve_reward_terms(merchant=merchant, grab=grab)
    payload = GrabSerializer(grab).data
    payload['cashback_pct'] = str(terms.cashback_pct)
    payload['discount_pct'] = str(terms.discount_pct)
    return Response(payload, status=status.HTTP_200_OK)
