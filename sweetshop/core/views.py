from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response

from .auth import register_account, authenticate_account, issue_token
from .models import AuditLog
from .permissions import IsAdminRole
from .serializers import RegisterSerializer, LoginSerializer, UserSerializer, AuditLogSerializer
from .utils import create_audit_log


def token_response(user, status_code=status.HTTP_200_OK):
    return Response({
        'token': issue_token(user),
        'user': UserSerializer(user).data,
    }, status=status_code)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def health(request):
    return Response({'ok': True})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def register(request):
    """Create an account and return a bearer token for it"""
    serializer = RegisterSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = register_account(**serializer.validated_data)

    create_audit_log(
        request=request,
        user=user,
        action='register',
        model_name='User',
        object_id=user.id,
        object_name=user.email,
        changes={'role': user.role},
    )
    return token_response(user, status.HTTP_201_CREATED)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login(request):
    """Exchange email and password for a bearer token"""
    serializer = LoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = authenticate_account(**serializer.validated_data)
    return token_response(user)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get the account behind the presented token"""
    return Response(UserSerializer(request.user).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_log_list(request):
    """List audit log entries, newest first"""
    logs = AuditLog.objects.select_related('user')
    action = request.query_params.get('action')
    model_name = request.query_params.get('model_name')
    if action:
        logs = logs.filter(action=action)
    if model_name:
        logs = logs.filter(model_name=model_name)

    try:
        limit = max(1, min(int(request.query_params.get('limit', 100)), 500))
    except ValueError:
        limit = 100
    serializer = AuditLogSerializer(logs[:limit], many=True)
    return Response(serializer.data)
