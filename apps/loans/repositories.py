from typing import Optional, List
from django.contrib.auth import get_user_model
from django.utils import timezone
from .models import LoanRequest, Offer
from . import lifecycle

User = get_user_model()


class LoanRepository:
    @staticmethod
    def create_loan(requester: User, **kwargs) -> LoanRequest:
        loan = LoanRequest.objects.create(requester=requester, **kwargs)
        return loan

    @staticmethod
    def get_loan_by_id(loan_id: int) -> Optional[LoanRequest]:
        try:
            return LoanRequest.objects.select_related('requester').prefetch_related('offers').get(id=loan_id)
        except LoanRequest.DoesNotExist:
            return None

    @staticmethod
    def get_loan_for_update(loan_id: int) -> Optional[LoanRequest]:
        """Row-lock the loan for the rest of the surrounding transaction."""
        try:
            return LoanRequest.objects.select_for_update().get(id=loan_id)
        except LoanRequest.DoesNotExist:
            return None

    @staticmethod
    def get_open_loans() -> List[LoanRequest]:
        return list(
            LoanRequest.objects.filter(status=lifecycle.LOAN_PENDING)
            .select_related('requester').prefetch_related('offers').order_by('-requested_at')
        )

    @staticmethod
    def get_all_loans(status: Optional[str] = None) -> List[LoanRequest]:
        loans = LoanRequest.objects.select_related('requester').order_by('-requested_at')
        if status:
            loans = loans.filter(status=status)
        return loans

    @staticmethod
    def get_loans_by_requester(requester_id: int) -> List[LoanRequest]:
        return LoanRequest.objects.filter(requester_id=requester_id).select_related('requester') \
            .prefetch_related('offers', 'offers__donor').order_by('-requested_at')

    @staticmethod
    def transition_status(loan_id: int, from_status: str, to_status: str, **fields) -> bool:
        """
        Compare-and-swap on the loan status.

        Returns False when the loan was no longer in ``from_status``.
        """
        updated = LoanRequest.objects.filter(id=loan_id, status=from_status).update(
            status=to_status, updated_at=timezone.now(), **fields
        )
        return updated == 1

    @staticmethod
    def count_by_status(status: str) -> int:
        return LoanRequest.objects.filter(status=status).count()


class OfferRepository:
    @staticmethod
    def create_offer(loan: LoanRequest, donor: User, **kwargs) -> Offer:
        offer = Offer.objects.create(loan=loan, donor=donor, **kwargs)
        return offer

    @staticmethod
    def get_offer_by_id(offer_id: int) -> Optional[Offer]:
        try:
            return Offer.objects.select_related('loan', 'loan__requester', 'donor').get(id=offer_id)
        except Offer.DoesNotExist:
            return None

    @staticmethod
    def get_offers_for_loan(loan: LoanRequest) -> List[Offer]:
        return Offer.objects.filter(loan=loan).select_related('loan', 'donor').order_by('interest_rate', 'created_at')

    @staticmethod
    def get_offers_for_requester(requester_id: int) -> List[Offer]:
        """Every offer addressed to the requester's loans, grouped by loan."""
        return Offer.objects.filter(loan__requester_id=requester_id) \
            .select_related('loan', 'loan__requester', 'donor').order_by('loan_id', 'interest_rate', 'created_at')

    @staticmethod
    def get_offers_by_donor(donor_id: int) -> List[Offer]:
        return Offer.objects.filter(donor_id=donor_id) \
            .select_related('loan', 'loan__requester', 'donor').order_by('-created_at')

    @staticmethod
    def get_all_offers() -> List[Offer]:
        return Offer.objects.select_related('loan', 'loan__requester', 'donor').order_by('-created_at')

    @staticmethod
    def has_accepted_offer(loan_id: int) -> bool:
        return Offer.objects.filter(loan_id=loan_id, status=lifecycle.OFFER_ACCEPTED).exists()

    @staticmethod
    def transition_status(offer_id: int, from_status: str, to_status: str, **fields) -> bool:
        """Compare-and-swap on the offer status."""
        updated = Offer.objects.filter(id=offer_id, status=from_status).update(
            status=to_status, updated_at=timezone.now(), **fields
        )
        return updated == 1
