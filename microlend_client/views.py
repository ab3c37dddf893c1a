"""
View models for the borrower and donor screens.

Each view holds the state a screen renders (records, ``busy``, ``alert``) and
talks to the API through a ``LendingAPIClient``. Lock and selectability rules
come from ``apps.loans.lifecycle`` so every screen agrees on them.

Requests carry a generation number. A response is applied only if no newer
request started on the same view and the view was not closed; anything else
is dropped.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from apps.common.exceptions import ConflictError, LendingPlatformError, TransportError
from apps.loans import lifecycle

logger = logging.getLogger('microlend_client')

LOAN_LOCKED_MESSAGE = "This loan already has an accepted offer"

DEFAULT_MIN_RATE = Decimal('0.1')
DEFAULT_MAX_RATE = Decimal('50')


class BaseView:
    def __init__(self, api):
        self.api = api
        self.busy = False
        self.alert: Optional[Dict[str, str]] = None
        self.closed = False
        self._generation = 0

    def close(self) -> None:
        """Leave the screen; responses still in flight become no-ops."""
        self.closed = True
        self._generation += 1
        self.busy = False

    def _start(self) -> int:
        self._generation += 1
        self.busy = True
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return not self.closed and generation == self._generation

    def _finish(self, generation: int) -> bool:
        """Clear ``busy`` for the current request. False means drop the response."""
        if not self._is_current(generation):
            logger.debug(f"{type(self).__name__}: dropping stale response #{generation}")
            return False
        self.busy = False
        return True

    def _set_alert(self, kind: str, message: str) -> None:
        if not self.closed:
            self.alert = {'kind': kind, 'message': message}

    def _error_alert(self, exc: LendingPlatformError) -> None:
        self._set_alert(exc.kind, str(exc.message))

    def dismiss_alert(self) -> None:
        self.alert = None


class BidSubmissionView(BaseView):
    """Donor form for bidding on an open loan."""

    def __init__(self, api, min_rate=DEFAULT_MIN_RATE, max_rate=DEFAULT_MAX_RATE):
        super().__init__(api)
        self.min_rate = Decimal(str(min_rate))
        self.max_rate = Decimal(str(max_rate))
        self.open_loans: List[Dict[str, Any]] = []
        self.errors: Dict[str, str] = {}
        self.last_offer: Optional[Dict[str, Any]] = None
        self.reset_form()

    def reset_form(self) -> None:
        self.loan_id = None
        self.amount = ''
        self.interest_rate = ''
        self.message = ''
        self.errors = {}

    def refresh(self) -> List[Dict[str, Any]]:
        generation = self._start()
        try:
            loans = self.api.get_open_loans()
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
            return self.open_loans

        if self._finish(generation):
            self.open_loans = loans
        return self.open_loans

    def validate(self) -> bool:
        """Input bounds only; the server repeats every check."""
        errors = {}
        if self.loan_id in (None, ''):
            errors['loan_id'] = "Choose a loan to bid on"

        try:
            amount = Decimal(str(self.amount))
            if not amount.is_finite() or amount <= 0:
                errors['amount'] = "Amount must be greater than 0"
        except (InvalidOperation, ValueError):
            errors['amount'] = "Amount must be a number"

        try:
            rate = Decimal(str(self.interest_rate))
            if not rate.is_finite() or not self.min_rate <= rate <= self.max_rate:
                errors['interest_rate'] = f"Interest rate must be between {self.min_rate} and {self.max_rate}"
        except (InvalidOperation, ValueError):
            errors['interest_rate'] = "Interest rate must be a number"

        self.errors = errors
        return not errors

    def submit(self) -> Optional[Dict[str, Any]]:
        if not self.validate():
            self._set_alert('validation', next(iter(self.errors.values())))
            return None

        generation = self._start()
        try:
            offer = self.api.submit_offer(self.loan_id, self.amount, self.interest_rate, self.message)
        except LendingPlatformError as exc:
            if not self._finish(generation):
                return None
            self._error_alert(exc)
            if exc.kind == 'validation' and isinstance(exc.details, dict):
                self.errors = {field: ' '.join(map(str, msgs)) if isinstance(msgs, list) else str(msgs)
                               for field, msgs in exc.details.items()}
            elif exc.kind in ('not_found', 'conflict'):
                # The loan closed or vanished under us
                self.refresh()
            return None

        if not self._finish(generation):
            return offer
        self.last_offer = offer
        self.reset_form()
        self._set_alert('success', "Offer submitted")
        logger.info(f"Offer {offer.get('id')} submitted for loan {offer.get('loan_id')}")
        return offer


class ComparisonView(BaseView):
    """
    Borrower screen comparing every incoming offer, grouped by loan.

    The offer list is a read cache: it is re-fetched after every mutation and
    never patched locally.
    """

    def __init__(self, api, user_id: Optional[int] = None):
        super().__init__(api)
        self.user_id = user_id
        self.offers: List[Dict[str, Any]] = []
        self.groups: List[Dict[str, Any]] = []
        self.selected_offer_id = None

    def refresh(self) -> List[Dict[str, Any]]:
        generation = self._start()
        try:
            offers = self.api.get_my_offers(self.user_id)
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
            return self.groups

        if self._finish(generation):
            self.offers = offers
            self.groups = lifecycle.group_offers_by_loan(offers)
            if self.selected_offer_id is not None and not self.can_select(self.selected_offer_id):
                self.selected_offer_id = None
        return self.groups

    def get_offer(self, offer_id) -> Optional[Dict[str, Any]]:
        for offer in self.offers:
            if str(offer.get('id')) == str(offer_id):
                return offer
        return None

    def can_select(self, offer_id) -> bool:
        offer = self.get_offer(offer_id)
        return offer is not None and lifecycle.can_select(offer, self.offers)

    def is_loan_locked(self, loan_id) -> bool:
        for group in self.groups:
            if str(group['loan_id']) == str(loan_id):
                return group['locked']
        return False

    @property
    def selectable(self) -> List[Dict[str, Any]]:
        """Offers the borrower may still pick, across every loan."""
        return lifecycle.selectable_offers(self.offers)


    def select(self, offer_id) -> bool:
        if not self.can_select(offer_id):
            self._set_alert('state', "This offer can no longer be selected")
            return False
        self.selected_offer_id = offer_id
        return True

    def accept(self, offer_id=None) -> Optional[Dict[str, Any]]:
        offer_id = offer_id if offer_id is not None else self.selected_offer_id
        if offer_id is None:
            self._set_alert('validation', "Select an offer first")
            return None
        if not self.can_select(offer_id):
            self._set_alert('state', "This offer can no longer be selected")
            self.selected_offer_id = None
            return None

        generation = self._start()
        try:
            accepted = self.api.accept_offer(offer_id)
        except ConflictError:
            if self._finish(generation):
                self.selected_offer_id = None
                self._set_alert('conflict', LOAN_LOCKED_MESSAGE)
                self.refresh()
            return None
        except LendingPlatformError as exc:
            if self._finish(generation):
                self.selected_offer_id = None
                self._error_alert(exc)
                if not isinstance(exc, TransportError):
                    self.refresh()
            return None

        if self._finish(generation):
            self.selected_offer_id = None
            self._set_alert('success', "Offer accepted")
            self.refresh()
        return accepted

    def reject(self, offer_id) -> Optional[Dict[str, Any]]:
        generation = self._start()
        try:
            rejected = self.api.reject_offer(offer_id)
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
                if not isinstance(exc, TransportError):
                    self.refresh()
            return None

        if self._finish(generation):
            if str(self.selected_offer_id) == str(offer_id):
                self.selected_offer_id = None
            self._set_alert('success', "Offer rejected")
            self.refresh()
        return rejected


class StatusView(BaseView):
    """Borrower's own loans with their offers; cancel and complete actions."""

    def __init__(self, api, user_id: int):
        super().__init__(api)
        self.user_id = user_id
        self.loans: List[Dict[str, Any]] = []
        # Offers fetched on demand for one loan, keyed by str(loan id)
        self.loan_offers: Dict[str, List[Dict[str, Any]]] = {}

    def refresh(self) -> List[Dict[str, Any]]:
        generation = self._start()
        try:
            loans = self.api.get_user_loans(self.user_id)
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
            return self.loans

        if self._finish(generation):
            self.loans = loans
            self.loan_offers = {}
        return self.loans

    def load_offers(self, loan_id) -> List[Dict[str, Any]]:
        """Fetch the current offers of one loan, replacing the embedded copy."""
        generation = self._start()
        try:
            offers = self.api.get_loan_offers(loan_id)
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
                if exc.kind == 'not_found':
                    self.refresh()
            return self.offers_for(loan_id)

        if self._finish(generation):
            self.loan_offers[str(loan_id)] = offers
        return self.offers_for(loan_id)

    def get_loan(self, loan_id) -> Optional[Dict[str, Any]]:
        for loan in self.loans:
            if str(loan.get('id')) == str(loan_id):
                return loan
        return None

    def offers_for(self, loan_id) -> List[Dict[str, Any]]:
        if str(loan_id) in self.loan_offers:
            return list(self.loan_offers[str(loan_id)])
        loan = self.get_loan(loan_id)
        return list(loan.get('offers', [])) if loan else []

    def is_loan_locked(self, loan_id) -> bool:
        loan = self.get_loan(loan_id)
        if loan is None:
            return False
        return lifecycle.is_loan_locked(loan['id'], self.offers_for(loan_id), loan_status=loan['status'])

    def can_cancel(self, loan_id) -> bool:
        loan = self.get_loan(loan_id)
        return loan is not None and lifecycle.can_transition(loan['status'], lifecycle.LOAN_CANCELLED)

    def can_complete(self, loan_id) -> bool:
        loan = self.get_loan(loan_id)
        return loan is not None and lifecycle.can_transition(loan['status'], lifecycle.LOAN_COMPLETED)

    def cancel(self, loan_id) -> Optional[Dict[str, Any]]:
        if not self.can_cancel(loan_id):
            self._set_alert('state', "Only pending loans can be cancelled")
            return None
        return self._change_status(loan_id, lifecycle.LOAN_CANCELLED, "Loan cancelled")

    def complete(self, loan_id) -> Optional[Dict[str, Any]]:
        if not self.can_complete(loan_id):
            self._set_alert('state', "Only funded loans can be marked completed")
            return None
        return self._change_status(loan_id, lifecycle.LOAN_COMPLETED, "Loan marked as completed")

    def _change_status(self, loan_id, target: str, success_message: str) -> Optional[Dict[str, Any]]:
        generation = self._start()
        try:
            loan = self.api.update_loan_status(loan_id, target)
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
                if not isinstance(exc, TransportError):
                    self.refresh()
            return None

        if self._finish(generation):
            self._set_alert('success', success_message)
            self.refresh()
        return loan


class HistoryView(BaseView):
    """
    Everything the signed-in user has done on the platform: their loan
    requests, the offers they made as a donor and their fundraising campaigns.
    """

    TABS = ('loans', 'offers', 'fundraising')

    def __init__(self, api, user: Dict[str, Any]):
        super().__init__(api)
        self.user = user
        self.loans: List[Dict[str, Any]] = []
        self.offers: List[Dict[str, Any]] = []
        self.fundraisers: List[Dict[str, Any]] = []

    @property
    def is_donor(self) -> bool:
        return self.user.get('role') == 'donor'

    def refresh(self) -> Dict[str, List[Dict[str, Any]]]:
        generation = self._start()
        try:
            loans = self.api.get_user_loans(self.user['id'])
            offers = self.api.get_donor_offers(self.user['id']) if self.is_donor else []
            fundraisers = self.api.get_fundraisers(self.user.get('email')) if self.user.get('email') else []
        except LendingPlatformError as exc:
            if self._finish(generation):
                self._error_alert(exc)
            return self.history

        if self._finish(generation):
            self.loans = loans
            self.offers = offers
            self.fundraisers = fundraisers
        return self.history

    @property
    def history(self) -> Dict[str, List[Dict[str, Any]]]:
        return {'loans': self.loans, 'offers': self.offers, 'fundraising': self.fundraisers}

    def items(self, tab: str = 'loans', status: str = 'all') -> List[Dict[str, Any]]:
        items = self.history.get(tab, [])
        if status == 'all':
            return list(items)
        return [item for item in items if item.get('status') == status]
