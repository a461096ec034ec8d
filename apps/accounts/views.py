from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from .identity import resolve_identity
from .serializers import UserSerializer


@extend_schema(
    responses={200: UserSerializer},
    description="Current user profile with reward totals.",
    tags=['auth'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_current_user(request):
    """Get current authenticated user profile."""
    return Response(UserSerializer(resolve_identity(request)).data)
