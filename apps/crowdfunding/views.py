"""
Crowdfunding API views - campaigns and simulated donations.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from apps.common.throttling import FinancialOperationsThrottle
from apps.common.serializers import (
    ErrorResponseSerializer, ValidationErrorResponseSerializer, DonationResponseSerializer
)
from .serializers import (
    FundraiserSerializer, PublicFundraiserSerializer, DonationSerializer, DonateSerializer, serialize_fundraiser
)
from .services import FundraiserService

fundraiser_service = FundraiserService()


@extend_schema(
    methods=['GET'],
    parameters=[OpenApiParameter('email', str, description="Only campaigns registered with this email")],
    responses={200: PublicFundraiserSerializer(many=True)},
    summary="List fundraising campaigns",
    description="Contact details are included only for your own campaigns (or for admins)"
)
@extend_schema(
    methods=['POST'],
    request=FundraiserSerializer,
    responses={201: FundraiserSerializer, 400: ValidationErrorResponseSerializer},
    summary="Start a fundraising campaign",
    description="Terms must be agreed to; the campaign starts with nothing raised"
)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticatedOrReadOnly])
def fundraisers(request):
    if request.method == 'GET':
        fundraiser_list = fundraiser_service.list_fundraisers(request.query_params.get('email'))
        data = [serialize_fundraiser(fundraiser, request.user) for fundraiser in fundraiser_list]
        return Response(data, status=status.HTTP_200_OK)

    serializer = FundraiserSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    fundraiser = fundraiser_service.create_fundraiser(request.user, dict(serializer.validated_data))
    return Response(FundraiserSerializer(fundraiser).data, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: PublicFundraiserSerializer, 404: ErrorResponseSerializer},
    summary="Get campaign details",
    description="Contact details are included only for the owner or an admin"
)
@api_view(['GET'])
@permission_classes([IsAuthenticatedOrReadOnly])
def fundraiser_detail(request, fundraiser_id):
    fundraiser = fundraiser_service.get_fundraiser(fundraiser_id)
    return Response(serialize_fundraiser(fundraiser, request.user), status=status.HTTP_200_OK)


@extend_schema(
    request=DonateSerializer,
    responses={
        201: DonationResponseSerializer,
        400: ValidationErrorResponseSerializer,
        404: ErrorResponseSerializer
    },
    summary="Donate to a campaign",
    description="Record a simulated donation and raise the campaign total"
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([FinancialOperationsThrottle])
def donate(request, fundraiser_id):
    """Donate to a campaign (simulated, no payment is taken)"""
    serializer = DonateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    result = fundraiser_service.donate(fundraiser_id, request.user, serializer.validated_data['amount'])
    return Response({
        'message': 'Donation recorded',
        'donation': DonationSerializer(result['donation']).data,
        'fundraiser': serialize_fundraiser(result['fundraiser'], request.user),
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: DonationSerializer(many=True), 404: ErrorResponseSerializer},
    summary="List donations to a campaign"
)
@api_view(['GET'])
@permission_classes([IsAuthenticatedOrReadOnly])
def donations(request, fundraiser_id):
    return Response(
        DonationSerializer(fundraiser_service.get_donations(fundraiser_id), many=True).data,
        status=status.HTTP_200_OK
    )
