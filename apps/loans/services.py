from typing import Optional, Dict, Any, List
from decimal import Decimal, InvalidOperation
import logging
from django.db import transaction, IntegrityError
from django.conf import settings
from django.utils import timezone
from django.contrib.auth import get_user_model
from .repositories import LoanRepository, OfferRepository
from .models import LoanRequest, Offer
from . import lifecycle
from apps.common.cache_utils import LoanCache
from apps.common.exception_handler import log_financial_operation
from apps.common.permissions import ROLE_USER, ROLE_DONOR, ROLE_ADMIN, has_role, is_admin
from apps.common.exceptions import (
    ValidationError, RolePermissionError, UnauthorizedLoanAccessError,
    LoanNotFoundError, LoanNotOpenError, OfferNotFoundError, LoanLockedError,
    ConflictError, OfferStateError, InvalidLoanStateError
)

User = get_user_model()
logger = logging.getLogger('apps.loans')


def _to_decimal(value, field: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", details={field: ["Must be a number"]})
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number", details={field: ["Must be a number"]})
    return number


def validate_offer_terms(amount, interest_rate) -> Dict[str, Decimal]:
    """Bounds every offer must satisfy before anything is persisted."""
    amount = _to_decimal(amount, 'amount')
    interest_rate = _to_decimal(interest_rate, 'interest_rate')
    min_rate = Decimal(str(settings.OFFER_MIN_RATE))
    max_rate = Decimal(str(settings.OFFER_MAX_RATE))

    if amount <= 0:
        raise ValidationError("Offer amount must be greater than 0",
                              details={'amount': ["Must be greater than 0"]})
    if not min_rate <= interest_rate <= max_rate:
        raise ValidationError(f"Interest rate must be between {min_rate} and {max_rate}",
                              details={'interest_rate': [f"Must be between {min_rate} and {max_rate}"]})
    return {'amount': amount, 'interest_rate': interest_rate}


def validate_loan_terms(amount, term_months, purpose) -> Dict[str, Any]:
    amount = _to_decimal(amount, 'amount')
    max_amount = Decimal(str(settings.LOAN_MAX_AMOUNT))
    max_term = settings.LOAN_MAX_TERM_MONTHS

    if amount <= 0:
        raise ValidationError("Loan amount must be greater than 0",
                              details={'amount': ["Must be greater than 0"]})
    if amount > max_amount:
        raise ValidationError(f"Loan amount cannot exceed {max_amount}",
                              details={'amount': [f"Cannot exceed {max_amount}"]})
    try:
        term_months = int(term_months)
    except (TypeError, ValueError):
        raise ValidationError("Repayment term must be a whole number of months",
                              details={'term_months': ["Must be a whole number"]})
    if not 1 <= term_months <= max_term:
        raise ValidationError(f"Repayment term must be between 1 and {max_term} months",
                              details={'term_months': [f"Must be between 1 and {max_term}"]})
    purpose = (purpose or '').strip()
    if len(purpose) < 3:
        raise ValidationError("Purpose must be at least 3 characters",
                              details={'purpose': ["Please add a few more details"]})
    return {'amount': amount, 'term_months': term_months, 'purpose': purpose}


class LoanService:
    def __init__(self):
        self.loan_repo = LoanRepository()
        self.offer_repo = OfferRepository()

    def create_loan(self, requester: User, loan_data: Dict[str, Any]) -> LoanRequest:
        # Validate requester role
        if not has_role(requester, ROLE_USER):
            raise RolePermissionError("Only borrowers can create loan requests")

        terms = validate_loan_terms(
            loan_data.get('amount'), loan_data.get('term_months'), loan_data.get('purpose')
        )
        loan = self.loan_repo.create_loan(
            requester=requester,
            description=(loan_data.get('description') or '').strip(),
            **terms
        )

        logger.info(
            f"Loan {loan.id} requested by user {requester.id}",
            extra={
                'user_id': requester.id,
                'loan_id': loan.id,
                'amount': float(loan.amount),
                'term_months': loan.term_months,
            }
        )

        LoanCache.invalidate_open_loans()
        return loan

    def get_open_loans(self) -> List[LoanRequest]:
        cached_loans = LoanCache.get_open_loans()
        if cached_loans is not None:
            logger.debug("Retrieved open loans from cache")
            return cached_loans

        loans = self.loan_repo.get_open_loans()
        LoanCache.set_open_loans(loans)
        logger.debug(f"Retrieved {len(loans)} open loans from database and cached")
        return loans

    def list_loans(self, acting_user: User, status: Optional[str] = None) -> List[LoanRequest]:
        """Open loans for donors; admins may list every loan or filter by status."""
        if is_admin(acting_user) and status:
            if status == 'all':
                return self.loan_repo.get_all_loans()
            if status not in lifecycle.LOAN_STATUSES:
                raise ValidationError(f"Unknown loan status '{status}'")
            return self.loan_repo.get_all_loans(status)

        if not has_role(acting_user, ROLE_DONOR, ROLE_ADMIN):
            raise RolePermissionError("Only donors can browse open loan requests")
        return self.get_open_loans()

    def get_loan_details(self, loan_id: int) -> LoanRequest:
        loan = self.loan_repo.get_loan_by_id(loan_id)
        if not loan:
            raise LoanNotFoundError()
        return loan

    def get_loans_for_user(self, user_id: int, acting_user: User) -> List[LoanRequest]:
        if acting_user.id != user_id and not is_admin(acting_user):
            raise UnauthorizedLoanAccessError("You can only view your own loan requests")
        return self.loan_repo.get_loans_by_requester(user_id)

    def update_loan_status(self, loan_id: int, acting_user: User, new_status: str) -> LoanRequest:
        actions = {
            lifecycle.LOAN_CANCELLED: self.cancel_loan,
            lifecycle.LOAN_COMPLETED: self.complete_loan,
            lifecycle.LOAN_REJECTED: self.reject_loan,
            lifecycle.LOAN_FUNDED: self.fund_loan,
        }
        if new_status == lifecycle.LOAN_APPROVED:
            raise InvalidLoanStateError("Loans are approved by accepting one of their offers")
        action = actions.get(new_status)
        if action is None:
            raise ValidationError(f"Unknown loan status '{new_status}'")
        return action(loan_id, acting_user)

    def cancel_loan(self, loan_id: int, acting_user: User) -> LoanRequest:
        loan = self.get_loan_details(loan_id)
        if loan.requester_id != acting_user.id:
            raise UnauthorizedLoanAccessError("You can only cancel your own loan requests")
        return self._transition(loan, lifecycle.LOAN_CANCELLED, acting_user)

    def complete_loan(self, loan_id: int, acting_user: User) -> LoanRequest:
        loan = self.get_loan_details(loan_id)
        if loan.requester_id != acting_user.id and not is_admin(acting_user):
            raise UnauthorizedLoanAccessError("You can only complete your own loans")
        return self._transition(loan, lifecycle.LOAN_COMPLETED, acting_user, completed_at=timezone.now())

    def reject_loan(self, loan_id: int, acting_user: User) -> LoanRequest:
        if not is_admin(acting_user):
            raise RolePermissionError("Only admins can reject loan requests")
        loan = self.get_loan_details(loan_id)
        return self._transition(loan, lifecycle.LOAN_REJECTED, acting_user)

    def fund_loan(self, loan_id: int, acting_user: User) -> LoanRequest:
        loan = self.get_loan_details(loan_id)
        accepted_offer = loan.accepted_offer
        if not is_admin(acting_user) and (accepted_offer is None or accepted_offer.donor_id != acting_user.id):
            raise UnauthorizedLoanAccessError("Only the donor whose offer was accepted can fund this loan")

        if accepted_offer is None:
            raise InvalidLoanStateError(f"A {loan.status} loan without an accepted offer cannot be funded")

        loan = self._transition(loan, lifecycle.LOAN_FUNDED, acting_user, funded_at=timezone.now())

        # Payment processing is simulated; the transfer is only recorded
        log_financial_operation(
            operation_type='LOAN_FUNDING',
            user_id=acting_user.id,
            amount=accepted_offer.amount,
            reference_id=f'loan_{loan.id}',
            details={
                'loan_id': loan.id,
                'requester_id': loan.requester_id,
                'offer_id': accepted_offer.id,
                'donor_id': accepted_offer.donor_id,
                'simulated': True,
            }
        )
        return loan

    def _transition(self, loan: LoanRequest, target: str, acting_user: User, **fields) -> LoanRequest:
        if not lifecycle.can_transition(loan.status, target):
            raise InvalidLoanStateError(f"Cannot move a {loan.status} loan to {target}")

        if not self.loan_repo.transition_status(loan.id, loan.status, target, **fields):
            raise ConflictError("This loan was changed by another request")

        logger.info(
            f"Loan {loan.id} moved from {loan.status} to {target} by user {acting_user.id}",
            extra={'loan_id': loan.id, 'from_status': loan.status, 'to_status': target, 'user_id': acting_user.id}
        )
        LoanCache.invalidate_open_loans()
        return self.get_loan_details(loan.id)


class OfferService:
    def __init__(self):
        self.offer_repo = OfferRepository()
        self.loan_repo = LoanRepository()

    def submit_offer(self, loan_id: int, donor: User, amount, interest_rate, message: str = '') -> Offer:
        if not has_role(donor, ROLE_DONOR, ROLE_ADMIN):
            raise RolePermissionError("Only donors can make offers")

        # Input bounds come first so an invalid bid never touches the store
        terms = validate_offer_terms(amount, interest_rate)

        with transaction.atomic():
            loan = self.loan_repo.get_loan_for_update(loan_id)
            if not loan:
                raise LoanNotFoundError()

            if loan.status != lifecycle.LOAN_PENDING:
                raise LoanNotOpenError(f"This loan is {loan.status} and no longer accepts offers")

            if loan.requester_id == donor.id:
                raise RolePermissionError("Cannot make offer on your own loan")

            offer = self.offer_repo.create_offer(
                loan, donor, message=(message or '').strip(), **terms
            )

        logger.info(
            f"Offer {offer.id} submitted for loan {loan.id} by donor {donor.id}",
            extra={
                'offer_id': offer.id,
                'loan_id': loan.id,
                'donor_id': donor.id,
                'amount': float(offer.amount),
                'interest_rate': float(offer.interest_rate),
            }
        )
        return offer

    def get_offers_for_loan(self, loan_id: int, acting_user: User) -> List[Offer]:
        loan = self.loan_repo.get_loan_by_id(loan_id)
        if not loan:
            raise LoanNotFoundError()
        if loan.requester_id != acting_user.id and not is_admin(acting_user):
            raise UnauthorizedLoanAccessError("You can only view offers on your own loans")
        return self.offer_repo.get_offers_for_loan(loan)

    def get_offers_for_requester(self, user_id: int, acting_user: User) -> List[Offer]:
        if acting_user.id != user_id and not is_admin(acting_user):
            raise UnauthorizedLoanAccessError("You can only view offers on your own loans")
        return self.offer_repo.get_offers_for_requester(user_id)

    def get_offers_by_donor(self, donor_id: int, acting_user: User) -> List[Offer]:
        if acting_user.id != donor_id and not is_admin(acting_user):
            raise RolePermissionError("You can only view your own offers")
        return self.offer_repo.get_offers_by_donor(donor_id)

    def get_all_offers(self, acting_user: User) -> List[Offer]:
        if not is_admin(acting_user):
            raise RolePermissionError("Only admins can list every offer")
        return self.offer_repo.get_all_offers()

    def accept_offer(self, offer_id: int, acting_user: User) -> Offer:
        """
        Accept one offer and approve its loan in a single transaction.

        The loan row is locked, its status is compare-and-swapped from pending
        to approved and the offer from pending to accepted. Losing a race
        surfaces as LoanLockedError; nothing is retried.
        """
        offer = self.offer_repo.get_offer_by_id(offer_id)
        if not offer:
            raise OfferNotFoundError()

        if offer.loan.requester_id != acting_user.id and not is_admin(acting_user):
            raise UnauthorizedLoanAccessError("You can only accept offers on your own loans")

        if offer.status != lifecycle.OFFER_PENDING:
            raise OfferStateError(f"This offer has already been {offer.status}")

        try:
            with transaction.atomic():
                loan = self.loan_repo.get_loan_for_update(offer.loan_id)
                if not loan:
                    raise LoanNotFoundError()

                if self.offer_repo.has_accepted_offer(loan.id):
                    raise LoanLockedError()
                if loan.status != lifecycle.LOAN_PENDING:
                    raise LoanLockedError("This loan is no longer accepting offers")

                if not self.loan_repo.transition_status(loan.id, lifecycle.LOAN_PENDING, lifecycle.LOAN_APPROVED):
                    raise LoanLockedError()
                if not self.offer_repo.transition_status(
                    offer.id, lifecycle.OFFER_PENDING, lifecycle.OFFER_ACCEPTED, accepted_at=timezone.now()
                ):
                    raise OfferStateError("This offer was resolved by another request")
        except (LoanLockedError, IntegrityError) as exc:
            logger.warning(
                f"Accept of offer {offer.id} lost: loan {offer.loan_id} is locked",
                extra={'offer_id': offer.id, 'loan_id': offer.loan_id, 'user_id': acting_user.id}
            )
            if isinstance(exc, IntegrityError):
                raise LoanLockedError() from exc
            raise

        logger.info(
            f"Offer {offer.id} accepted; loan {offer.loan_id} approved",
            extra={'offer_id': offer.id, 'loan_id': offer.loan_id, 'user_id': acting_user.id}
        )
        LoanCache.invalidate_open_loans()
        return self.offer_repo.get_offer_by_id(offer.id)

    def reject_offer(self, offer_id: int, acting_user: User) -> Offer:
        """Reject one offer. Sibling offers and the loan are left untouched."""
        offer = self.offer_repo.get_offer_by_id(offer_id)
        if not offer:
            raise OfferNotFoundError()

        if offer.loan.requester_id != acting_user.id and not is_admin(acting_user):
            raise UnauthorizedLoanAccessError("You can only reject offers on your own loans")

        if offer.status != lifecycle.OFFER_PENDING:
            raise OfferStateError(f"This offer has already been {offer.status}")

        if not self.offer_repo.transition_status(offer.id, lifecycle.OFFER_PENDING, lifecycle.OFFER_REJECTED):
            raise OfferStateError("This offer was resolved by another request")

        logger.info(
            f"Offer {offer.id} rejected for loan {offer.loan_id}",
            extra={'offer_id': offer.id, 'loan_id': offer.loan_id, 'user_id': acting_user.id}
        )
        return self.offer_repo.get_offer_by_id(offer.id)
