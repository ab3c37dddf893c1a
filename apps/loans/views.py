"""
Loans and offers API views - function-based DRF views.

Services raise platform errors; the custom exception handler turns them into
the standard error envelope, so views only deal with the happy path.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from apps.common.throttling import FinancialOperationsThrottle, LoanCreationThrottle, OfferThrottle
from apps.common.exceptions import ValidationError
from apps.common.serializers import ErrorResponseSerializer, ValidationErrorResponseSerializer
from .serializers import (
    LoanSerializer, LoanWithOffersSerializer, CreateLoanSerializer,
    UpdateLoanStatusSerializer, OfferSerializer, CreateOfferSerializer
)
from .services import LoanService, OfferService

# Initialize services once
loan_service = LoanService()
offer_service = OfferService()


def _offer_list(offers):
    offers = list(offers)
    return OfferSerializer(offers, many=True, context={'offers': offers}).data


@extend_schema(
    methods=['GET'],
    parameters=[OpenApiParameter('status', str, description="Admins only: a loan status or 'all'")],
    responses={200: LoanSerializer(many=True), 403: ErrorResponseSerializer},
    summary="List loan requests",
    description="Loans open for bidding (donors); admins may list any status"
)
@extend_schema(
    methods=['POST'],
    request=CreateLoanSerializer,
    responses={
        201: LoanSerializer,
        400: ValidationErrorResponseSerializer,
        403: ErrorResponseSerializer
    },
    summary="Create a new loan request",
    description="Create a new loan request (borrowers only)"
)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([LoanCreationThrottle])
def loans(request):
    """List open loan requests or create a new one"""
    if request.method == 'GET':
        loan_list = loan_service.list_loans(request.user, request.query_params.get('status'))
        return Response(LoanSerializer(loan_list, many=True).data, status=status.HTTP_200_OK)

    serializer = CreateLoanSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    loan = loan_service.create_loan(request.user, serializer.validated_data)
    return Response(LoanSerializer(loan).data, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: LoanWithOffersSerializer(many=True), 403: ErrorResponseSerializer},
    summary="Get a user's loans",
    description="Loan requests of one user, each with its offers"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_loans(request, user_id):
    """Get all loan requests of a user"""
    loan_list = loan_service.get_loans_for_user(user_id, request.user)
    return Response(LoanWithOffersSerializer(loan_list, many=True).data, status=status.HTTP_200_OK)


@extend_schema(
    methods=['GET'],
    responses={200: LoanSerializer, 404: ErrorResponseSerializer},
    summary="Get loan details",
    description="Get detailed information about a specific loan"
)
@extend_schema(
    methods=['PATCH'],
    request=UpdateLoanStatusSerializer,
    responses={
        200: LoanSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
        422: ErrorResponseSerializer
    },
    summary="Change loan status",
    description="Cancel or complete your own loan; admins may reject pending loans"
)
@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def loan_detail(request, loan_id):
    """Get a loan or move it to a new status"""
    if request.method == 'GET':
        loan = loan_service.get_loan_details(loan_id)
        return Response(LoanSerializer(loan).data, status=status.HTTP_200_OK)

    serializer = UpdateLoanStatusSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    loan = loan_service.update_loan_status(loan_id, request.user, serializer.validated_data['status'])
    return Response(LoanSerializer(loan).data, status=status.HTTP_200_OK)


@extend_schema(
    request=None,
    responses={
        200: LoanSerializer,
        403: ErrorResponseSerializer,
        422: ErrorResponseSerializer
    },
    summary="Fund a loan",
    description="Fund an approved loan (the accepted donor only); payment is simulated"
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([FinancialOperationsThrottle])
def fund_loan(request, loan_id):
    """Fund an approved loan"""
    loan = loan_service.fund_loan(loan_id, request.user)
    return Response(LoanSerializer(loan).data, status=status.HTTP_200_OK)


@extend_schema(
    methods=['GET'],
    responses={200: OfferSerializer(many=True), 403: ErrorResponseSerializer},
    summary="List all offers",
    description="Every offer on the platform (admins only)"
)
@extend_schema(
    methods=['POST'],
    request=CreateOfferSerializer,
    responses={
        201: OfferSerializer,
        400: ValidationErrorResponseSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        409: ErrorResponseSerializer
    },
    summary="Submit an offer",
    description="Bid on a pending loan with an amount and an annual interest rate (donors only)"
)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([OfferThrottle])
def offers(request):
    """List every offer or submit a new one"""
    if request.method == 'GET':
        return Response(_offer_list(offer_service.get_all_offers(request.user)), status=status.HTTP_200_OK)

    serializer = CreateOfferSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    offer = offer_service.submit_offer(
        data['loan_id'], request.user, data['amount'], data['interest_rate'], data.get('message', '')
    )
    return Response(OfferSerializer(offer).data, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: OfferSerializer(many=True), 403: ErrorResponseSerializer, 404: ErrorResponseSerializer},
    summary="Get offers for a loan",
    description="Offers on one of your loans, lowest rate first"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def loan_offers(request, loan_id):
    """Get all offers for a loan"""
    return Response(_offer_list(offer_service.get_offers_for_loan(loan_id, request.user)), status=status.HTTP_200_OK)


@extend_schema(
    parameters=[OpenApiParameter('userId', int, description="Borrower whose incoming offers to list")],
    responses={200: OfferSerializer(many=True), 403: ErrorResponseSerializer},
    summary="Get my incoming offers",
    description="All offers across the borrower's loans, for comparison and selection"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_offers(request):
    """Get every offer addressed to the acting borrower"""
    user_id = request.query_params.get('userId', request.user.id)
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError("userId must be an integer")
    return Response(_offer_list(offer_service.get_offers_for_requester(user_id, request.user)), status=status.HTTP_200_OK)


@extend_schema(
    responses={200: OfferSerializer(many=True), 403: ErrorResponseSerializer},
    summary="Get a donor's offers",
    description="Offer history of one donor"
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def donor_offers(request, donor_id):
    """Get all offers made by a donor"""
    return Response(_offer_list(offer_service.get_offers_by_donor(donor_id, request.user)), status=status.HTTP_200_OK)


@extend_schema(
    request=None,
    responses={
        200: OfferSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
        422: ErrorResponseSerializer
    },
    summary="Accept an offer",
    description="Atomically accept one offer and approve its loan. 409 LOAN_LOCKED when another offer won."
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([OfferThrottle])
def accept_offer(request, offer_id):
    """Accept a donor's offer for one of your loans"""
    offer = offer_service.accept_offer(offer_id, request.user)
    return Response(OfferSerializer(offer).data, status=status.HTTP_200_OK)


@extend_schema(
    request=None,
    responses={
        200: OfferSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        422: ErrorResponseSerializer
    },
    summary="Reject an offer",
    description="Reject one offer; other offers on the loan are unaffected"
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reject_offer(request, offer_id):
    """Reject a donor's offer for one of your loans"""
    offer = offer_service.reject_offer(offer_id, request.user)
    return Response(OfferSerializer(offer).data, status=status.HTTP_200_OK)
