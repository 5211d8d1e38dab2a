from rest_framework import status, generics, serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken
from drf_spectacular.utils import extend_schema
from .models import User
from .permissions import IsCellarManager
from .serializers import (
    DeactivateSerializer,
    OperatorRegistrationSerializer,
    RoleChangeSerializer,
    UserLoginSerializer,
    UserSerializer,
)
from .services import (
    AccountsServiceError,
    InactiveAccountError,
    InvalidCredentialsError,
    OperatorRegistrationError,
    UserNotFoundError,
    authenticate_operator,
    change_operator_role,
    deactivate_operator,
    reactivate_operator,
    register_operator,
)


# Response serializers for API documentation
class TokensResponseSerializer(serializers.Serializer):
    refresh = serializers.CharField()
    access = serializers.CharField()


class AuthResponseSerializer(serializers.Serializer):
    message = serializers.CharField()
    user = UserSerializer()
    tokens = TokensResponseSerializer()


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()


def tokens_for(user):
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


def account_error_response(error):
    if isinstance(error, UserNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, InvalidCredentialsError):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(error, InactiveAccountError):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response({'error': str(error)}, status=code)


@extend_schema(
    request=OperatorRegistrationSerializer,
    responses={
        201: AuthResponseSerializer,
        400: ErrorResponseSerializer,
    },
    description="Register an operator account and receive JWT tokens.",
    tags=['auth'],
)
@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Register an operator account."""
    serializer = OperatorRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    data = serializer.validated_data.copy()
    data.pop('password_confirm', None)

    try:
        user = register_operator(**data)
    except OperatorRegistrationError as e:
        return account_error_response(e)

    return Response({
        'message': 'Registration successful.',
        'user': UserSerializer(user).data,
        'tokens': tokens_for(user),
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    request=UserLoginSerializer,
    responses={
        200: AuthResponseSerializer,
        400: ErrorResponseSerializer,
        401: ErrorResponseSerializer,
        403: ErrorResponseSerializer,
    },
    description="Authenticate with email and password to receive JWT tokens.",
    tags=['auth'],
)
@api_view(['POST'])
@permission_classes([AllowAny])
def login(request):
    """Login with email and password."""
    serializer = UserLoginSerializer(data=request.data)

    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        user = authenticate_operator(**serializer.validated_data)
    except AccountsServiceError as e:
        return account_error_response(e)

    return Response({
        'message': 'Login successful',
        'user': UserSerializer(user).data,
        'tokens': tokens_for(user),
    })


@extend_schema(
    responses={200: UserSerializer},
    description="Get the current operator's profile.",
    tags=['auth'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_current_user(request):
    """Get current authenticated user profile."""
    return Response(UserSerializer(request.user).data)


@extend_schema(
    request=UserSerializer,
    responses={
        200: UserSerializer,
        400: ErrorResponseSerializer,
    },
    description="Update the current operator's display name.",
    tags=['auth'],
)
@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def update_profile(request):
    """Update user profile."""
    serializer = UserSerializer(request.user, data=request.data, partial=True)

    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)

    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class OperatorListView(generics.ListAPIView):
    """All operator accounts (managers only)."""

    queryset = User.objects.all().order_by('email')
    serializer_class = UserSerializer
    permission_classes = [IsCellarManager]


@extend_schema(
    request=RoleChangeSerializer,
    responses={200: UserSerializer, 400: ErrorResponseSerializer, 404: ErrorResponseSerializer},
    description="Change an operator's role (managers only).",
    tags=['auth'],
)
@api_view(['POST'])
@permission_classes([IsCellarManager])
def change_role(request, pk):
    serializer = RoleChangeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        user = change_operator_role(user_id=pk, role=serializer.validated_data['role'], actor=request.user)
    except AccountsServiceError as e:
        return account_error_response(e)

    return Response(UserSerializer(user).data)


@extend_schema(
    request=DeactivateSerializer,
    responses={200: UserSerializer, 400: ErrorResponseSerializer, 404: ErrorResponseSerializer},
    description="Deactivate an operator account. Accounts are never deleted.",
    tags=['auth'],
)
@api_view(['POST'])
@permission_classes([IsCellarManager])
def deactivate(request, pk):
    serializer = DeactivateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        user = deactivate_operator(user_id=pk, actor=request.user, reason=serializer.validated_data['reason'])
    except AccountsServiceError as e:
        return account_error_response(e)

    return Response(UserSerializer(user).data)


@extend_schema(
    request=None,
    responses={200: UserSerializer, 404: ErrorResponseSerializer},
    description="Reactivate an operator account.",
    tags=['auth'],
)
@api_view(['POST'])
@permission_classes([IsCellarManager])
def reactivate(request, pk):
    try:
        user = reactivate_operator(user_id=pk, actor=request.user)
    except AccountsServiceError as e:
        return account_error_response(e)

    return Response(UserSerializer(user).data)
