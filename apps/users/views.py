"""
Users API views - registration, profile, identity verification and the
admin user-management endpoints.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from apps.common.throttling import AuthOperationsThrottle
from apps.common.permissions import IsPlatformAdmin
from apps.common.exceptions import NotFoundError
from apps.common.serializers import (
    ErrorResponseSerializer, ValidationErrorResponseSerializer, TokenResponseSerializer,
    SuccessMessageSerializer, DashboardSerializer
)
from .serializers import (
    UserSerializer, LoginSerializer, VerificationRequestSerializer,
    SubmitVerificationSerializer, VerificationStatusSerializer, ReviewVerificationSerializer
)
from .services import UserService, AdminService, VerificationService

# Initialize services once
user_service = UserService()
admin_service = AdminService()
verification_service = VerificationService()


@extend_schema(
    request=UserSerializer,
    responses={
        201: UserSerializer,
        400: ValidationErrorResponseSerializer,
        403: ErrorResponseSerializer
    },
    summary="Register a new user",
    description="Create a borrower ('user') or 'donor' account"
)
@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthOperationsThrottle])
def register(request):
    """Register a new borrower or donor"""
    serializer = UserSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = user_service.register_user(dict(serializer.validated_data))
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@extend_schema(
    request=LoginSerializer,
    responses={
        200: TokenResponseSerializer,
        400: ValidationErrorResponseSerializer
    },
    summary="User login",
    description="Authenticate user and return access token"
)
@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthOperationsThrottle])
def login(request):
    """Authenticate user and return token"""
    serializer = LoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    auth_data = user_service.authenticate_user(
        serializer.validated_data['username'],
        serializer.validated_data['password']
    )
    return Response({
        'token': auth_data['token'],
        'user': UserSerializer(auth_data['user']).data
    }, status=status.HTTP_200_OK)


@extend_schema(
    responses={
        200: UserSerializer,
        404: ErrorResponseSerializer
    },
    summary="Get user profile",
    description="Retrieve authenticated user's profile information"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile(request):
    """Get authenticated user's profile"""
    user = user_service.get_user_profile(request.user.id)
    return Response(UserSerializer(user).data, status=status.HTTP_200_OK)


@extend_schema(
    request=UserSerializer,
    responses={
        200: UserSerializer,
        400: ValidationErrorResponseSerializer,
        404: ErrorResponseSerializer
    },
    summary="Update user profile",
    description="Update authenticated user's profile information"
)
@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def update_profile(request):
    """Update authenticated user's profile"""
    serializer = UserSerializer(request.user, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    user_data = dict(serializer.validated_data)
    profile_data = user_data.pop('profile', {})

    user = user_service.update_user_profile(request.user.id, user_data, profile_data)
    return Response(UserSerializer(user).data, status=status.HTTP_200_OK)


@extend_schema(
    request=SubmitVerificationSerializer,
    responses={
        201: VerificationRequestSerializer,
        400: ValidationErrorResponseSerializer,
        422: ErrorResponseSerializer
    },
    summary="Submit identity verification",
    description="Submit an NID number and supporting document names for review"
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([AuthOperationsThrottle])
def submit_verification(request):
    serializer = SubmitVerificationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    verification = verification_service.submit(
        request.user, serializer.validated_data['nid_number'], serializer.validated_data['documents']
    )
    return Response(VerificationRequestSerializer(verification).data, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: VerificationStatusSerializer},
    summary="Get verification status",
    description="Current verification status and the latest submission"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def verification_status(request):
    return Response(
        VerificationStatusSerializer(verification_service.get_status(request.user)).data,
        status=status.HTTP_200_OK
    )


@extend_schema(
    parameters=[OpenApiParameter('userId', int, description="Admins only: whose history to list")],
    responses={200: VerificationRequestSerializer(many=True), 403: ErrorResponseSerializer},
    summary="Get verification history",
    description="Every verification submission, newest first"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def verification_history(request):
    user_id = request.query_params.get('userId', request.user.id)
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        user_id = request.user.id
    history = verification_service.get_history(user_id, request.user)
    return Response(VerificationRequestSerializer(history, many=True).data, status=status.HTTP_200_OK)


@extend_schema(
    parameters=[OpenApiParameter('status', str, description="Filter by request status")],
    responses={200: VerificationRequestSerializer(many=True), 403: ErrorResponseSerializer},
    summary="List verification requests",
    description="Verification requests awaiting or past review (admins only)"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def admin_verification_requests(request):
    requests = verification_service.list_requests(request.user, request.query_params.get('status'))
    return Response(VerificationRequestSerializer(requests, many=True).data, status=status.HTTP_200_OK)


@extend_schema(
    request=ReviewVerificationSerializer,
    responses={
        200: VerificationRequestSerializer,
        400: ValidationErrorResponseSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        422: ErrorResponseSerializer
    },
    summary="Review a verification request",
    description="Approve, reject (reason required) or ask for more information"
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def review_verification(request, request_id, action):
    """Apply an admin decision to a pending verification request"""
    serializer = ReviewVerificationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    reason = serializer.validated_data['reason']

    if action == 'approve':
        verification = verification_service.approve(request_id, request.user)
    elif action == 'reject':
        verification = verification_service.reject(request_id, request.user, reason)
    elif action == 'request-info':
        verification = verification_service.request_info(request_id, request.user, reason)
    else:
        raise NotFoundError(f"Unknown review action '{action}'")
    return Response(VerificationRequestSerializer(verification).data, status=status.HTTP_200_OK)


@extend_schema(
    parameters=[OpenApiParameter('role', str, description="Filter by role")],
    responses={200: UserSerializer(many=True), 403: ErrorResponseSerializer},
    summary="List users",
    description="Every registered user (admins only)"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def users(request):
    user_list = admin_service.list_users(request.user, request.query_params.get('role'))
    return Response(UserSerializer(user_list, many=True).data, status=status.HTTP_200_OK)


@extend_schema(
    request=None,
    responses={200: UserSerializer, 403: ErrorResponseSerializer, 404: ErrorResponseSerializer},
    summary="Promote a user to admin"
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def promote_user(request, user_id):
    user = admin_service.promote_to_admin(user_id, request.user)
    return Response(UserSerializer(user).data, status=status.HTTP_200_OK)


@extend_schema(
    responses={
        200: SuccessMessageSerializer,
        400: ValidationErrorResponseSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer
    },
    summary="Delete a user",
    description="Deactivate a user account (admins only, never their own); their loans and offers are kept"
)
@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def delete_user(request, user_id):
    admin_service.delete_user(user_id, request.user)
    return Response({'message': f'User {user_id} deactivated'}, status=status.HTTP_200_OK)


@extend_schema(
    responses={200: DashboardSerializer, 403: ErrorResponseSerializer},
    summary="Admin dashboard",
    description="Platform-wide counters for the admin overview"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def dashboard(request):
    return Response(DashboardSerializer(admin_service.get_dashboard(request.user)).data, status=status.HTTP_200_OK)
