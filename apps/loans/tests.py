import threading
from decimal import Decimal
from unittest import mock
from django.core.cache import cache
from django.db import IntegrityError, connection, transaction
from django.test import SimpleTestCase, TestCase, TransactionTestCase, skipUnlessDBFeature
from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase
from rest_framework import status
from rest_framework.authtoken.models import Token
from apps.common.exceptions import (
    ValidationError, RolePermissionError, UnauthorizedLoanAccessError, LoanLockedError,
    LoanNotOpenError, LoanNotFoundError, OfferNotFoundError, OfferStateError,
    InvalidLoanStateError, ConflictError, NotFoundError
)
from .models import LoanRequest, Offer
from .services import LoanService, OfferService
from .tasks import loan_status_summary_report
from . import lifecycle

User = get_user_model()


def _offer(offer_id, loan_id, offer_status='pending', loan_status='pending'):
    return {'id': offer_id, 'loan_id': loan_id, 'status': offer_status, 'loan_status': loan_status}


class LifecycleTest(SimpleTestCase):
    def test_loan_unlocked_while_every_offer_pending(self):
        offers = [_offer(1, 10), _offer(2, 10)]
        self.assertFalse(lifecycle.is_loan_locked(10, offers))
        self.assertTrue(lifecycle.can_select(offers[0], offers))

    def test_accepted_sibling_locks_pending_offers(self):
        offers = [_offer(1, 10, 'accepted', 'approved'), _offer(2, 10)]
        self.assertTrue(lifecycle.is_loan_locked(10, offers))
        self.assertFalse(lifecycle.can_select(offers[1], offers))

    def test_lock_is_scoped_to_one_loan(self):
        offers = [_offer(1, 10, 'accepted'), _offer(2, 11)]
        self.assertFalse(lifecycle.is_loan_locked(11, offers))
        self.assertTrue(lifecycle.can_select(offers[1], offers))

    def test_loan_that_left_pending_is_locked(self):
        offers = [_offer(1, 10, loan_status='cancelled')]
        self.assertTrue(lifecycle.is_loan_locked(10, offers))
        self.assertFalse(lifecycle.can_select(offers[0], offers))
        self.assertTrue(lifecycle.is_loan_locked(10, [], loan_status='approved'))

    def test_ids_compare_across_int_and_str(self):
        offers = [_offer(1, '10', 'accepted'), _offer(2, 10)]
        self.assertTrue(lifecycle.is_loan_locked(10, offers))

    def test_rejecting_a_sibling_does_not_change_selectability(self):
        offers = [_offer(1, 10), _offer(2, 10), _offer(3, 10)]
        before = lifecycle.can_select(offers[2], offers)
        offers[1]['status'] = 'rejected'
        self.assertEqual(lifecycle.can_select(offers[2], offers), before)
        self.assertFalse(lifecycle.can_select(offers[1], offers))

    def test_group_offers_by_loan(self):
        offers = [
            _offer(1, 10, 'accepted', 'approved'), _offer(2, 10),
            _offer(3, 11), _offer(4, 11, 'rejected'),
        ]
        groups = lifecycle.group_offers_by_loan(offers)
        self.assertEqual([group['loan_id'] for group in groups], [10, 11])

        first, second = groups
        self.assertTrue(first['has_accepted'])
        self.assertTrue(first['locked'])
        self.assertEqual(first['selectable_offer_ids'], [])
        self.assertFalse(second['has_accepted'])
        self.assertFalse(second['locked'])
        self.assertEqual(second['selectable_offer_ids'], [3])

    def test_selectable_offers(self):
        offers = [
            _offer(1, 10, 'accepted', 'approved'), _offer(2, 10),
            _offer(3, 11), _offer(4, 11, 'rejected'), _offer(5, 12, loan_status='cancelled'),
        ]
        self.assertEqual([offer['id'] for offer in lifecycle.selectable_offers(offers)], [3])
        self.assertEqual(lifecycle.selectable_offers(iter([_offer(6, 13)])), [_offer(6, 13)])

    def test_transition_table(self):

        self.assertTrue(lifecycle.can_transition('pending', 'approved'))
        self.assertTrue(lifecycle.can_transition('pending', 'cancelled'))
        self.assertTrue(lifecycle.can_transition('funded', 'completed'))
        self.assertFalse(lifecycle.can_transition('approved', 'cancelled'))
        self.assertFalse(lifecycle.can_transition('pending', 'completed'))
        self.assertFalse(lifecycle.can_transition('completed', 'pending'))


class LoanTestMixin:
    def create_users(self):
        cache.clear()
        self.borrower = User.objects.create_user(
            username='borrower',
            email='borrower@example.com',
            password='testpass123',
            role='user'
        )
        self.donor = User.objects.create_user(
            username='donor',
            email='donor@example.com',
            password='testpass123',
            role='donor'
        )
        self.other_donor = User.objects.create_user(
            username='donor2',
            email='donor2@example.com',
            password='testpass123',
            role='donor'
        )
        self.admin = User.objects.create_user(
            username='admin',
            email='admin@example.com',
            password='testpass123',
            role='admin'
        )

    def create_loan(self, requester=None, **kwargs):
        fields = {'amount': Decimal('8000.00'), 'purpose': 'Sewing machines', 'term_months': 12}
        fields.update(kwargs)
        return LoanRequest.objects.create(requester=requester or self.borrower, **fields)

    def create_offer(self, loan, donor=None, amount='5000.00', rate='10.00', **kwargs):
        return Offer.objects.create(
            loan=loan, donor=donor or self.donor, amount=Decimal(amount), interest_rate=Decimal(rate), **kwargs
        )


class LoanModelTest(LoanTestMixin, TestCase):
    def setUp(self):
        self.create_users()

    def test_loan_creation(self):
        loan = self.create_loan()
        self.assertEqual(loan.requester, self.borrower)
        self.assertEqual(loan.status, 'pending')
        self.assertTrue(loan.is_open)
        self.assertFalse(loan.is_locked)
        self.assertIsNone(loan.repayment_due_date)

    def test_monthly_payment_calculation(self):
        loan = self.create_loan(amount=Decimal('1000.00'), term_months=6)
        offer = self.create_offer(loan, amount='1000.00', rate='12.00')
        # Standard amortisation: 1000 at 1% a month over 6 months
        self.assertEqual(offer.monthly_payment, Decimal('172.55'))
        self.assertEqual(offer.total_repayment, Decimal('1035.30'))

    def test_zero_rate_splits_evenly(self):
        loan = self.create_loan(amount=Decimal('1200.00'), term_months=12)
        offer = self.create_offer(loan, amount='1200.00', rate='0')
        self.assertEqual(offer.monthly_payment, Decimal('100.00'))

    def test_database_refuses_second_accepted_offer(self):
        loan = self.create_loan()
        self.create_offer(loan, status='accepted')
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self.create_offer(loan, donor=self.other_donor, status='accepted')


class LoanServiceTest(LoanTestMixin, TestCase):
    def setUp(self):
        self.create_users()
        self.loan_service = LoanService()
        self.offer_service = OfferService()

    def test_create_loan(self):
        loan = self.loan_service.create_loan(self.borrower, {
            'amount': Decimal('1500.00'),
            'purpose': 'Rickshaw repair',
            'term_months': 6,
        })
        self.assertEqual(loan.requester, self.borrower)
        self.assertEqual(loan.status, 'pending')

    def test_only_borrowers_create_loans(self):
        with self.assertRaises(RolePermissionError):
            self.loan_service.create_loan(self.donor, {
                'amount': Decimal('1500.00'), 'purpose': 'Rickshaw repair', 'term_months': 6,
            })

    def test_loan_terms_are_bounded(self):
        bad_terms = [
            {'amount': Decimal('0'), 'purpose': 'Rickshaw repair', 'term_months': 6},
            {'amount': Decimal('2000000'), 'purpose': 'Rickshaw repair', 'term_months': 6},
            {'amount': Decimal('100'), 'purpose': 'Rickshaw repair', 'term_months': 61},
            {'amount': Decimal('100'), 'purpose': 'Rickshaw repair', 'term_months': 0},
            {'amount': Decimal('100'), 'purpose': 'ab', 'term_months': 6},
        ]
        for terms in bad_terms:
            with self.subTest(terms=terms):
                with self.assertRaises(ValidationError):
                    self.loan_service.create_loan(self.borrower, terms)
        self.assertEqual(LoanRequest.objects.count(), 0)

    def test_cancel_pending_loan(self):
        loan = self.create_loan()
        loan = self.loan_service.update_loan_status(loan.id, self.borrower, 'cancelled')
        self.assertEqual(loan.status, 'cancelled')

    def test_only_requester_cancels(self):
        loan = self.create_loan()
        with self.assertRaises(UnauthorizedLoanAccessError):
            self.loan_service.cancel_loan(loan.id, self.donor)

    def test_approved_loan_cannot_be_cancelled(self):
        loan = self.create_loan(status='approved')
        with self.assertRaises(InvalidLoanStateError):
            self.loan_service.cancel_loan(loan.id, self.borrower)

    def test_approval_only_through_accept(self):
        loan = self.create_loan()
        with self.assertRaises(InvalidLoanStateError):
            self.loan_service.update_loan_status(loan.id, self.admin, 'approved')
        loan.refresh_from_db()
        self.assertEqual(loan.status, 'pending')

    def test_fund_and_complete(self):
        loan = self.create_loan()
        offer = self.create_offer(loan)
        self.offer_service.accept_offer(offer.id, self.borrower)

        with self.assertRaises(UnauthorizedLoanAccessError):
            self.loan_service.fund_loan(loan.id, self.other_donor)

        loan = self.loan_service.fund_loan(loan.id, self.donor)
        self.assertEqual(loan.status, 'funded')
        self.assertIsNotNone(loan.funded_at)
        self.assertIsNotNone(loan.repayment_due_date)

        loan = self.loan_service.update_loan_status(loan.id, self.borrower, 'completed')
        self.assertEqual(loan.status, 'completed')
        self.assertIsNotNone(loan.completed_at)

    def test_complete_requires_funded(self):
        loan = self.create_loan()
        with self.assertRaises(InvalidLoanStateError):
            self.loan_service.complete_loan(loan.id, self.borrower)

    def test_admin_rejects_pending_loan(self):
        loan = self.create_loan()
        with self.assertRaises(RolePermissionError):
            self.loan_service.reject_loan(loan.id, self.borrower)
        loan = self.loan_service.reject_loan(loan.id, self.admin)
        self.assertEqual(loan.status, 'rejected')

    def test_stale_status_update_is_a_conflict(self):
        loan = self.create_loan()
        stale = LoanRequest.objects.get(id=loan.id)
        LoanRequest.objects.filter(id=loan.id).update(status='cancelled')
        with mock.patch.object(self.loan_service, 'get_loan_details', return_value=stale):
            with self.assertRaises(ConflictError):
                self.loan_service.cancel_loan(loan.id, self.borrower)

    def test_missing_loan(self):
        with self.assertRaises(LoanNotFoundError):
            self.loan_service.get_loan_details(9999)

    def test_open_loans_lists_pending_only(self):
        pending = self.create_loan()
        self.create_loan(status='cancelled')
        self.assertEqual([loan.id for loan in self.loan_service.list_loans(self.donor)], [pending.id])
        with self.assertRaises(RolePermissionError):
            self.loan_service.list_loans(self.borrower)
        self.assertEqual(len(self.loan_service.list_loans(self.admin, 'all')), 2)


class OfferServiceTest(LoanTestMixin, TestCase):
    def setUp(self):
        self.create_users()
        self.offer_service = OfferService()
        self.loan = self.create_loan()
        self.o1 = self.create_offer(self.loan, amount='5000.00', rate='10.00')
        self.o2 = self.create_offer(self.loan, donor=self.other_donor, amount='3000.00', rate='8.00')

    def snapshot(self):
        return list(Offer.objects.filter(loan=self.loan).select_related('loan'))

    def test_submit_offer(self):
        loan = self.create_loan()
        offer = self.offer_service.submit_offer(loan.id, self.donor, '2500', '12.5', ' Happy to help ')
        self.assertEqual(offer.status, 'pending')
        self.assertEqual(offer.amount, Decimal('2500'))
        self.assertEqual(offer.message, 'Happy to help')

    def test_invalid_offer_is_never_persisted(self):
        loan = self.create_loan()
        for amount, rate in [(-5, 9), (0, 9), (100, '0.05'), (100, 51), ('abc', 9), (100, 'NaN')]:
            with self.subTest(amount=amount, rate=rate):
                with self.assertRaises(ValidationError):
                    self.offer_service.submit_offer(loan.id, self.donor, amount, rate)
        self.assertEqual(Offer.objects.filter(loan=loan).count(), 0)

    def test_rate_bounds_are_inclusive(self):
        loan = self.create_loan()
        self.offer_service.submit_offer(loan.id, self.donor, 100, '0.1')
        self.offer_service.submit_offer(loan.id, self.other_donor, 100, 50)
        self.assertEqual(Offer.objects.filter(loan=loan).count(), 2)

    def test_borrowers_cannot_bid(self):
        with self.assertRaises(RolePermissionError):
            self.offer_service.submit_offer(self.loan.id, self.borrower, 100, 10)

    def test_cannot_bid_on_own_loan(self):
        own_loan = self.create_loan(requester=self.donor)
        with self.assertRaises(RolePermissionError):
            self.offer_service.submit_offer(own_loan.id, self.donor, 100, 10)

    def test_offer_on_missing_loan(self):
        with self.assertRaises(LoanNotFoundError):
            self.offer_service.submit_offer(9999, self.donor, 100, 10)

    def test_accept_first_offer_locks_sibling(self):
        accepted = self.offer_service.accept_offer(self.o1.id, self.borrower)

        self.assertEqual(accepted.status, 'accepted')
        self.assertIsNotNone(accepted.accepted_at)
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, 'approved')

        offers = self.snapshot()
        o2 = next(offer for offer in offers if offer.id == self.o2.id)
        self.assertEqual(o2.status, 'pending')
        self.assertFalse(lifecycle.can_select(o2, offers))

    def test_accept_second_offer_locks_first(self):
        self.offer_service.accept_offer(self.o2.id, self.borrower)

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, 'approved')
        offers = self.snapshot()
        o1 = next(offer for offer in offers if offer.id == self.o1.id)
        self.assertFalse(lifecycle.can_select(o1, offers))
        self.assertEqual(Offer.objects.filter(loan=self.loan, status='accepted').get().id, self.o2.id)

    def test_losing_accept_gets_conflict(self):
        self.offer_service.accept_offer(self.o1.id, self.borrower)
        with self.assertRaises(LoanLockedError) as ctx:
            self.offer_service.accept_offer(self.o2.id, self.borrower)

        self.assertEqual(ctx.exception.kind, 'conflict')
        self.assertEqual(ctx.exception.message, "This loan already has an accepted offer")
        self.assertEqual(Offer.objects.filter(loan=self.loan, status='accepted').count(), 1)
        self.o2.refresh_from_db()
        self.assertEqual(self.o2.status, 'pending')

    def test_stale_pending_read_loses_on_status_swap(self):
        # The second accept read the loan before the first committed
        stale_loan = LoanRequest.objects.get(id=self.loan.id)
        self.offer_service.accept_offer(self.o1.id, self.borrower)

        with mock.patch.object(self.offer_service.loan_repo, 'get_loan_for_update', return_value=stale_loan), \
                mock.patch.object(self.offer_service.offer_repo, 'has_accepted_offer', return_value=False):
            with self.assertRaises(LoanLockedError):
                self.offer_service.accept_offer(self.o2.id, self.borrower)

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, 'approved')
        self.assertEqual(Offer.objects.filter(loan=self.loan, status='accepted').get().id, self.o1.id)

    def test_unique_index_backstops_the_accept(self):
        stale_loan = LoanRequest.objects.get(id=self.loan.id)
        self.offer_service.accept_offer(self.o1.id, self.borrower)

        with mock.patch.object(self.offer_service.loan_repo, 'get_loan_for_update', return_value=stale_loan), \
                mock.patch.object(self.offer_service.offer_repo, 'has_accepted_offer', return_value=False), \
                mock.patch.object(self.offer_service.loan_repo, 'transition_status', return_value=True):
            with self.assertRaises(LoanLockedError):
                self.offer_service.accept_offer(self.o2.id, self.borrower)

        self.assertEqual(Offer.objects.filter(loan=self.loan, status='accepted').count(), 1)

    def test_accept_resolved_offer_is_state_error(self):
        self.offer_service.reject_offer(self.o1.id, self.borrower)
        with self.assertRaises(OfferStateError) as ctx:
            self.offer_service.accept_offer(self.o1.id, self.borrower)
        self.assertEqual(ctx.exception.kind, 'state')

    def test_accept_missing_offer(self):
        with self.assertRaises(OfferNotFoundError):
            self.offer_service.accept_offer(9999, self.borrower)

    def test_only_requester_or_admin_accepts(self):
        with self.assertRaises(UnauthorizedLoanAccessError):
            self.offer_service.accept_offer(self.o1.id, self.donor)
        accepted = self.offer_service.accept_offer(self.o1.id, self.admin)
        self.assertEqual(accepted.status, 'accepted')

    def test_reject_leaves_siblings_and_loan_alone(self):
        o3 = self.create_offer(self.loan, amount='1000.00', rate='9.00')
        self.offer_service.reject_offer(self.o2.id, self.borrower)

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, 'pending')
        offers = self.snapshot()
        o3 = next(offer for offer in offers if offer.id == o3.id)
        self.assertTrue(lifecycle.can_select(o3, offers))
        self.assertFalse(lifecycle.is_loan_locked(self.loan.id, offers, loan_status=self.loan.status))

    def test_cancelled_loan_blocks_selection_and_bids(self):
        LoanService().cancel_loan(self.loan.id, self.borrower)

        offers = self.snapshot()
        self.assertFalse(any(lifecycle.can_select(offer, offers) for offer in offers))
        with self.assertRaises(LoanNotOpenError) as ctx:
            self.offer_service.submit_offer(self.loan.id, self.donor, 100, 10)
        self.assertIsInstance(ctx.exception, NotFoundError)
        with self.assertRaises(LoanLockedError):
            self.offer_service.accept_offer(self.o1.id, self.borrower)

    def test_offer_listings_are_scoped(self):
        self.assertEqual(len(self.offer_service.get_offers_for_requester(self.borrower.id, self.borrower)), 2)
        with self.assertRaises(UnauthorizedLoanAccessError):
            self.offer_service.get_offers_for_requester(self.borrower.id, self.donor)
        with self.assertRaises(UnauthorizedLoanAccessError):
            self.offer_service.get_offers_for_loan(self.loan.id, self.donor)
        self.assertEqual(len(self.offer_service.get_offers_by_donor(self.donor.id, self.donor)), 1)
        with self.assertRaises(RolePermissionError):
            self.offer_service.get_all_offers(self.donor)


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentAcceptTest(LoanTestMixin, TransactionTestCase):
    """Two accept transactions for one loan running at the same time."""

    def setUp(self):
        self.create_users()
        self.loan = self.create_loan()
        self.o1 = self.create_offer(self.loan, self.donor, '5000.00', '10.00')
        self.o2 = self.create_offer(self.loan, self.other_donor, '3000.00', '8.00')

    def test_exactly_one_accept_wins(self):
        barrier = threading.Barrier(2)
        outcomes = {}

        def accept(offer_id):
            try:
                barrier.wait(timeout=5)
                OfferService().accept_offer(offer_id, self.borrower)
                outcomes[offer_id] = 'accepted'
            except LoanLockedError as exc:
                outcomes[offer_id] = exc.kind
            finally:
                connection.close()

        threads = [threading.Thread(target=accept, args=(offer.id,)) for offer in (self.o1, self.o2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(sorted(outcomes.values()), ['accepted', 'conflict'])
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, 'approved')
        winner = Offer.objects.get(loan=self.loan, status='accepted')
        self.assertEqual(outcomes[winner.id], 'accepted')
        self.assertEqual(Offer.objects.filter(loan=self.loan, status='pending').count(), 1)


class LoanAPITest(LoanTestMixin, APITestCase):

    def setUp(self):
        self.create_users()
        self.borrower_token = Token.objects.create(user=self.borrower)
        self.donor_token = Token.objects.create(user=self.donor)
        self.other_donor_token = Token.objects.create(user=self.other_donor)

    def authenticate(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def test_create_loan(self):
        self.authenticate(self.borrower_token)
        data = {
            'amount': '1000.00',
            'term_months': 6,
            'purpose': 'Business expansion',
            'description': 'Two more sewing machines'
        }
        response = self.client.post('/api/loans/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(LoanRequest.objects.count(), 1)

    def test_create_loan_validation_envelope(self):
        self.authenticate(self.borrower_token)
        response = self.client.post('/api/loans/', {'amount': '-1', 'term_months': 6, 'purpose': 'Stock'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['kind'], 'validation')
        self.assertIn('amount', response.data['details'])

    def test_requires_authentication(self):
        response = self.client.get('/api/loans/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['kind'], 'permission')

    def test_donor_browses_open_loans(self):
        loan = self.create_loan()
        self.create_loan(status='cancelled')
        self.authenticate(self.donor_token)
        response = self.client.get('/api/loans/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['id'] for item in response.data], [loan.id])

    def test_borrower_cannot_browse_open_loans(self):
        self.authenticate(self.borrower_token)
        response = self.client.get('/api/loans/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error_code'], 'ROLE_PERMISSION_ERROR')

    def test_submit_offer(self):
        loan = self.create_loan()
        self.authenticate(self.donor_token)
        response = self.client.post('/api/offers/', {
            'loan_id': loan.id, 'amount': '5000.00', 'interest_rate': '10.00', 'message': 'Good luck'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertTrue(response.data['selectable'])

    def test_offer_rate_out_of_range(self):
        loan = self.create_loan()
        self.authenticate(self.donor_token)
        response = self.client.post('/api/offers/', {
            'loan_id': loan.id, 'amount': '5000.00', 'interest_rate': '50.01'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation')
        self.assertEqual(Offer.objects.count(), 0)

    def test_offer_on_closed_loan_is_409(self):
        loan = self.create_loan(status='cancelled')
        self.authenticate(self.donor_token)
        response = self.client.post('/api/offers/', {
            'loan_id': loan.id, 'amount': '5000.00', 'interest_rate': '10.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_code'], 'LOAN_NOT_OPEN')
        self.assertEqual(response.data['kind'], 'not_found')

    def test_accept_then_conflict(self):
        loan = self.create_loan()
        o1 = self.create_offer(loan, amount='5000.00', rate='10.00')
        o2 = self.create_offer(loan, donor=self.other_donor, amount='3000.00', rate='8.00')

        self.authenticate(self.borrower_token)
        response = self.client.post(f'/api/offers/{o1.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')
        self.assertEqual(response.data['loan_status'], 'approved')

        response = self.client.post(f'/api/offers/{o2.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_code'], 'LOAN_LOCKED')
        self.assertEqual(response.data['kind'], 'conflict')
        self.assertEqual(response.data['message'], "This loan already has an accepted offer")

    def test_accept_rejected_offer_is_422(self):
        loan = self.create_loan()
        offer = self.create_offer(loan, status='rejected')
        self.authenticate(self.borrower_token)
        response = self.client.post(f'/api/offers/{offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['kind'], 'state')

    def test_accept_missing_offer_is_404(self):
        self.authenticate(self.borrower_token)
        response = self.client.post('/api/offers/9999/accept/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_my_offers_reports_lock_state(self):
        loan = self.create_loan()
        o1 = self.create_offer(loan, amount='5000.00', rate='10.00')
        o2 = self.create_offer(loan, donor=self.other_donor, amount='3000.00', rate='8.00')
        other_loan = self.create_loan(purpose='Rice paddy')
        o3 = self.create_offer(other_loan, amount='700.00', rate='9.00')
        OfferService().accept_offer(o1.id, self.borrower)

        self.authenticate(self.borrower_token)
        response = self.client.get('/api/offers/my-offers/', {'userId': self.borrower.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        by_id = {item['id']: item for item in response.data}
        self.assertEqual(set(by_id), {o1.id, o2.id, o3.id})
        self.assertTrue(by_id[o2.id]['loan_locked'])
        self.assertFalse(by_id[o2.id]['selectable'])
        self.assertFalse(by_id[o3.id]['loan_locked'])
        self.assertTrue(by_id[o3.id]['selectable'])

    def test_my_offers_of_someone_else(self):
        self.authenticate(self.donor_token)
        response = self.client.get('/api/offers/my-offers/', {'userId': self.borrower.id})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_loan_offers_sorted_by_rate(self):
        loan = self.create_loan()
        self.create_offer(loan, amount='5000.00', rate='10.00')
        self.create_offer(loan, donor=self.other_donor, amount='3000.00', rate='8.00')
        self.authenticate(self.borrower_token)
        response = self.client.get(f'/api/offers/loan/{loan.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['interest_rate'] for item in response.data], ['8.00', '10.00'])

    def test_user_loans_include_offers(self):
        loan = self.create_loan()
        self.create_offer(loan)
        self.authenticate(self.borrower_token)
        response = self.client.get(f'/api/loans/user/{self.borrower.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(len(response.data[0]['offers']), 1)

    def test_cancel_through_patch(self):
        loan = self.create_loan()
        self.authenticate(self.borrower_token)
        response = self.client.patch(f'/api/loans/{loan.id}/', {'status': 'cancelled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')

        response = self.client.patch(f'/api/loans/{loan.id}/', {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_reject_offer(self):
        loan = self.create_loan()
        offer = self.create_offer(loan)
        self.authenticate(self.borrower_token)
        response = self.client.post(f'/api/offers/{offer.id}/reject/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'rejected')


class LoanThrottleTest(LoanTestMixin, APITestCase):
    RATES = {
        'financial_operations': '1000/hour',
        'auth_operations': '1000/hour',
        'loan_creation': '1/hour',
        'offer_operations': '1/hour',
    }

    def setUp(self):
        self.create_users()
        patcher = mock.patch('rest_framework.throttling.SimpleRateThrottle.THROTTLE_RATES', self.RATES)
        patcher.start()
        self.addCleanup(patcher.stop)

    def authenticate(self, user):
        token, _ = Token.objects.get_or_create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def test_browsing_does_not_spend_the_write_budget(self):
        loan = self.create_loan()
        self.authenticate(self.donor)
        for _ in range(3):
            self.assertEqual(self.client.get('/api/loans/').status_code, status.HTTP_200_OK)
            self.assertEqual(self.client.get('/api/offers/my-offers/').status_code, status.HTTP_200_OK)

        response = self.client.post('/api/offers/', {
            'loan_id': loan.id, 'amount': '500.00', 'interest_rate': '9.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post('/api/offers/', {
            'loan_id': loan.id, 'amount': '400.00', 'interest_rate': '9.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data['kind'], 'throttled')

    def test_loan_and_offer_budgets_are_separate(self):
        self.authenticate(self.borrower)
        data = {'amount': '1000.00', 'term_months': 6, 'purpose': 'Business expansion'}
        response = self.client.post('/api/loans/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        offer = self.create_offer(LoanRequest.objects.get(id=response.data['id']), amount='1000.00')
        response = self.client.post(f'/api/offers/{offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.post('/api/loans/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)


class LoanTaskTest(LoanTestMixin, TestCase):

    def setUp(self):
        self.create_users()

    def test_summary_report(self):
        loan = self.create_loan()
        self.create_loan(status='cancelled')
        offer = self.create_offer(loan)
        self.create_offer(loan, donor=self.other_donor)
        OfferService().accept_offer(offer.id, self.borrower)

        report = loan_status_summary_report.apply().get()

        self.assertEqual(report['status'], 'completed')
        self.assertEqual(report['loan_status_counts']['approved'], 1)
        self.assertEqual(report['loan_status_counts']['cancelled'], 1)
        self.assertEqual(report['offer_status_counts']['accepted'], 1)
        self.assertEqual(report['offer_status_counts']['pending'], 1)
        self.assertEqual(report['loans_with_multiple_accepted_offers'], [])
        self.assertEqual(report['metrics']['total_loans'], 2)
        self.assertEqual(report['metrics']['loan_decision_rate'], 100.0)
