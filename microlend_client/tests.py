from decimal import Decimal
from unittest import TestCase, mock

import requests

from apps.common.exceptions import (
    ConflictError, LendingPlatformError, NotFoundError, StateError, TransportError, ValidationError
)
from .api import LendingAPIClient
from .views import BidSubmissionView, ComparisonView, StatusView, HistoryView, LOAN_LOCKED_MESSAGE


def _response(status_code, payload=None, content=b'{}'):
    response = mock.Mock(status_code=status_code, content=content)
    if payload is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = payload
    return response


def _offer(offer_id, loan_id, offer_status='pending', loan_status='pending'):
    return {'id': offer_id, 'loan_id': loan_id, 'status': offer_status, 'loan_status': loan_status,
            'purpose': f'Loan {loan_id}'}


class LendingAPIClientTest(TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.session.headers = {}
        self.client = LendingAPIClient('http://testserver/api/', session=self.session)

    def test_login_stores_token(self):
        self.session.request.return_value = _response(200, {'token': 'abc123', 'user': {'id': 7, 'role': 'user'}})
        self.client.login('borrower', 'testpass123')

        self.assertEqual(self.session.headers['Authorization'], 'Token abc123')
        self.assertEqual(self.client.user_id, 7)
        self.assertEqual(self.client.role, 'user')
        method, url = self.session.request.call_args[0]
        self.assertEqual((method, url), ('POST', 'http://testserver/api/users/login/'))

    def test_decimal_payload_is_sent_as_string(self):
        self.session.request.return_value = _response(201, {'id': 1})
        self.client.submit_offer(3, Decimal('5000.00'), Decimal('10.5'), 'Good luck')

        body = self.session.request.call_args[1]['json']
        self.assertEqual(body, {'loan_id': 3, 'amount': '5000.00', 'interest_rate': '10.5', 'message': 'Good luck'})

    def test_my_offers_passes_user_id(self):
        self.session.request.return_value = _response(200, [])
        self.client.get_my_offers(7)
        self.assertEqual(self.session.request.call_args[1]['params'], {'userId': 7})

    def test_offer_listing_urls(self):
        self.session.request.return_value = _response(200, [])
        self.client.get_loan_offers(3)
        self.assertEqual(self.session.request.call_args[0], ('GET', 'http://testserver/api/offers/loan/3/'))
        self.client.get_donor_offers(8)
        self.assertEqual(self.session.request.call_args[0], ('GET', 'http://testserver/api/offers/donor/8/'))

    def test_conflict_envelope(self):

        self.session.request.return_value = _response(409, {
            'success': False, 'error_code': 'LOAN_LOCKED', 'kind': 'conflict',
            'message': 'This loan already has an accepted offer', 'details': None,
        })
        with self.assertRaises(ConflictError) as ctx:
            self.client.accept_offer(2)
        self.assertEqual(ctx.exception.error_code, 'LOAN_LOCKED')
        self.assertEqual(ctx.exception.status_code, 409)

    def test_kind_wins_over_status(self):
        self.session.request.return_value = _response(409, {
            'error_code': 'LOAN_NOT_OPEN', 'kind': 'not_found', 'message': 'This loan is not open for offers',
        })
        with self.assertRaises(NotFoundError):
            self.client.submit_offer(3, 100, 10)

    def test_error_without_envelope_falls_back_to_status(self):
        self.session.request.return_value = _response(422, {'detail': 'Nope'})
        with self.assertRaises(StateError):
            self.client.update_loan_status(1, 'completed')

        self.session.request.return_value = _response(500, None, content=b'<html>')
        with self.assertRaises(LendingPlatformError) as ctx:
            self.client.get_open_loans()
        self.assertEqual(ctx.exception.status_code, 500)

    def test_network_failure_is_transport_error(self):
        self.session.request.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(TransportError) as ctx:
            self.client.get_open_loans()
        self.assertEqual(ctx.exception.kind, 'transport')


class BidSubmissionViewTest(TestCase):
    def setUp(self):
        self.api = mock.Mock()
        self.view = BidSubmissionView(self.api)

    def fill(self, amount='5000', rate='10', loan_id=1):
        self.view.loan_id = loan_id
        self.view.amount = amount
        self.view.interest_rate = rate

    def test_out_of_range_input_never_reaches_the_api(self):
        for amount, rate in [('-5', '9'), ('0', '9'), ('100', '0.05'), ('100', '50.5'), ('abc', '9'), ('', '')]:
            with self.subTest(amount=amount, rate=rate):
                self.fill(amount, rate)
                self.assertIsNone(self.view.submit())
                self.assertEqual(self.view.alert['kind'], 'validation')
        self.api.submit_offer.assert_not_called()

    def test_bounds_are_inclusive(self):
        self.fill('1', '0.1')
        self.assertTrue(self.view.validate())
        self.fill('1', '50')
        self.assertTrue(self.view.validate())

    def test_successful_submit_clears_form(self):
        self.api.submit_offer.return_value = {'id': 9, 'loan_id': 1, 'status': 'pending'}
        self.fill()
        self.view.message = 'Happy to help'

        offer = self.view.submit()

        self.assertEqual(offer['id'], 9)
        self.api.submit_offer.assert_called_once_with(1, '5000', '10', 'Happy to help')
        self.assertIsNone(self.view.loan_id)
        self.assertEqual(self.view.amount, '')
        self.assertEqual(self.view.alert['kind'], 'success')
        self.assertFalse(self.view.busy)

    def test_closed_loan_refreshes_listing(self):
        self.api.submit_offer.side_effect = NotFoundError("This loan is not open for offers")
        self.api.get_open_loans.return_value = [{'id': 2}]
        self.fill()

        self.assertIsNone(self.view.submit())
        self.assertEqual(self.view.alert, {'kind': 'not_found', 'message': 'This loan is not open for offers'})
        self.assertEqual(self.view.open_loans, [{'id': 2}])
        self.assertEqual(self.view.amount, '5000')

    def test_server_field_errors_are_kept(self):
        self.api.submit_offer.side_effect = ValidationError(
            "Interest rate must be between 0.1 and 50", details={'interest_rate': ['Must be between 0.1 and 50']}
        )
        self.fill()
        self.view.submit()
        self.assertEqual(self.view.errors, {'interest_rate': 'Must be between 0.1 and 50'})


class ComparisonViewTest(TestCase):
    def setUp(self):
        self.api = mock.Mock()
        self.offers = [_offer(1, 10), _offer(2, 10), _offer(3, 11)]
        self.api.get_my_offers.return_value = self.offers
        self.view = ComparisonView(self.api, user_id=7)
        self.view.refresh()

    def test_refresh_groups_offers(self):
        self.api.get_my_offers.assert_called_once_with(7)
        self.assertEqual([group['loan_id'] for group in self.view.groups], [10, 11])
        self.assertTrue(self.view.can_select(1))
        self.assertFalse(self.view.busy)

    def test_selectable_offers_follow_lock(self):
        self.assertEqual([offer['id'] for offer in self.view.selectable], [1, 2, 3])

        self.api.get_my_offers.return_value = [
            _offer(1, 10, 'accepted', 'approved'), _offer(2, 10, loan_status='approved'), _offer(3, 11)
        ]
        self.view.refresh()
        self.assertEqual([offer['id'] for offer in self.view.selectable], [3])

    def test_dismiss_alert(self):
        self.view.select(99)
        self.assertEqual(self.view.alert['kind'], 'state')
        self.view.dismiss_alert()
        self.assertIsNone(self.view.alert)

    def test_accept_refetches_instead_of_patching(self):

        locked = [_offer(1, 10, 'accepted', 'approved'), _offer(2, 10, loan_status='approved'), _offer(3, 11)]
        self.api.accept_offer.return_value = locked[0]
        self.api.get_my_offers.return_value = locked

        self.assertTrue(self.view.select(1))
        self.view.accept()

        self.api.accept_offer.assert_called_once_with(1)
        self.assertEqual(self.api.get_my_offers.call_count, 2)
        self.assertTrue(self.view.is_loan_locked(10))
        self.assertFalse(self.view.can_select(2))
        self.assertTrue(self.view.can_select(3))
        self.assertIsNone(self.view.selected_offer_id)
        self.assertEqual(self.view.alert['kind'], 'success')

    def test_lost_race_shows_conflict_and_refetches(self):
        self.api.accept_offer.side_effect = ConflictError("This loan already has an accepted offer",
                                                          error_code='LOAN_LOCKED')
        self.api.get_my_offers.return_value = [
            _offer(1, 10, 'accepted', 'approved'), _offer(2, 10, loan_status='approved'), _offer(3, 11)
        ]

        self.assertIsNone(self.view.accept(2))

        self.assertEqual(self.view.alert, {'kind': 'conflict', 'message': LOAN_LOCKED_MESSAGE})
        self.assertEqual(self.api.get_my_offers.call_count, 2)
        self.assertFalse(self.view.can_select(2))

    def test_state_error_also_refetches(self):
        self.api.accept_offer.side_effect = StateError("This offer has already been rejected")
        self.view.accept(1)
        self.assertEqual(self.view.alert['kind'], 'state')
        self.assertEqual(self.api.get_my_offers.call_count, 2)

    def test_transport_error_reverts_selection_only(self):
        self.api.accept_offer.side_effect = TransportError("Could not reach the lending service")
        self.view.select(1)
        self.view.accept()
        self.assertIsNone(self.view.selected_offer_id)
        self.assertEqual(self.view.alert['kind'], 'transport')
        self.assertEqual(self.api.get_my_offers.call_count, 1)
        self.assertFalse(self.view.busy)

    def test_locked_offer_is_not_sent(self):
        self.api.get_my_offers.return_value = [_offer(1, 10, 'accepted', 'approved'), _offer(2, 10)]
        self.view.refresh()

        self.assertFalse(self.view.select(2))
        self.assertIsNone(self.view.accept(2))
        self.api.accept_offer.assert_not_called()

    def test_reject_keeps_siblings_selectable(self):
        self.api.reject_offer.return_value = _offer(2, 10, 'rejected')
        self.api.get_my_offers.return_value = [_offer(1, 10), _offer(2, 10, 'rejected'), _offer(3, 11)]

        self.view.reject(2)

        self.assertTrue(self.view.can_select(1))
        self.assertFalse(self.view.can_select(2))
        self.assertFalse(self.view.is_loan_locked(10))

    def test_older_response_is_discarded(self):
        newer = [_offer(1, 10, 'accepted', 'approved')]
        responses = [self.offers, newer]

        def fetch(user_id):
            data = responses.pop(0)
            if responses:
                # A newer refresh starts before this one returns
                self.view.refresh()
            return data

        self.api.get_my_offers.side_effect = fetch
        self.view.refresh()

        self.assertEqual(self.view.offers, newer)
        self.assertFalse(self.view.busy)

    def test_response_after_close_is_a_no_op(self):
        def accept_then_leave(offer_id):
            self.view.close()
            return _offer(offer_id, 10, 'accepted', 'approved')

        self.api.accept_offer.side_effect = accept_then_leave
        result = self.view.accept(1)

        self.assertEqual(result['status'], 'accepted')
        self.assertIsNone(self.view.alert)
        self.assertEqual(self.api.get_my_offers.call_count, 1)
        self.assertEqual(self.view.offers, self.offers)


class StatusViewTest(TestCase):
    def setUp(self):
        self.api = mock.Mock()
        self.api.get_user_loans.return_value = [
            {'id': 1, 'status': 'pending', 'offers': [_offer(5, 1)]},
            {'id': 2, 'status': 'funded', 'offers': [_offer(6, 2, 'accepted', 'funded')]},
        ]
        self.view = StatusView(self.api, user_id=7)
        self.view.refresh()

    def test_available_actions(self):
        self.assertTrue(self.view.can_cancel(1))
        self.assertFalse(self.view.can_complete(1))
        self.assertTrue(self.view.can_complete(2))
        self.assertFalse(self.view.can_cancel(2))
        self.assertFalse(self.view.is_loan_locked(1))
        self.assertTrue(self.view.is_loan_locked(2))
        self.assertEqual(len(self.view.offers_for(1)), 1)

    def test_cancel_pending_loan(self):
        self.api.update_loan_status.return_value = {'id': 1, 'status': 'cancelled'}
        self.view.cancel(1)
        self.api.update_loan_status.assert_called_once_with(1, 'cancelled')
        self.assertEqual(self.api.get_user_loans.call_count, 2)
        self.assertEqual(self.view.alert['kind'], 'success')

    def test_complete_funded_loan(self):
        self.api.update_loan_status.return_value = {'id': 2, 'status': 'completed'}
        self.view.complete(2)
        self.api.update_loan_status.assert_called_once_with(2, 'completed')

    def test_illegal_transition_stays_local(self):
        self.assertIsNone(self.view.cancel(2))
        self.assertIsNone(self.view.complete(1))
        self.assertEqual(self.view.alert['kind'], 'state')
        self.api.update_loan_status.assert_not_called()

    def test_server_refusal_refreshes(self):
        self.api.update_loan_status.side_effect = StateError("Cannot move a approved loan to cancelled")
        self.view.cancel(1)
        self.assertEqual(self.view.alert['kind'], 'state')
        self.assertEqual(self.api.get_user_loans.call_count, 2)

    def test_load_offers_replaces_embedded_copy(self):
        self.api.get_loan_offers.return_value = [_offer(5, 1), _offer(7, 1, 'accepted', 'approved')]

        offers = self.view.load_offers(1)

        self.api.get_loan_offers.assert_called_once_with(1)
        self.assertEqual([offer['id'] for offer in offers], [5, 7])
        self.assertTrue(self.view.is_loan_locked(1))

        # A full refresh drops the per-loan copies
        self.view.refresh()
        self.assertEqual([offer['id'] for offer in self.view.offers_for(1)], [5])

    def test_load_offers_for_vanished_loan_refreshes(self):
        self.api.get_loan_offers.side_effect = NotFoundError("The requested loan was not found")
        self.view.load_offers(1)
        self.assertEqual(self.view.alert['kind'], 'not_found')
        self.assertEqual(self.api.get_user_loans.call_count, 2)


class HistoryViewTest(TestCase):
    def setUp(self):
        self.api = mock.Mock()
        self.api.get_user_loans.return_value = [{'id': 1, 'status': 'pending'}, {'id': 2, 'status': 'funded'}]
        self.api.get_donor_offers.return_value = [_offer(5, 9, 'accepted', 'approved'), _offer(6, 8)]
        self.api.get_fundraisers.return_value = [{'id': 3, 'title': 'Surgery for Karim'}]

    def test_donor_history(self):
        view = HistoryView(self.api, {'id': 7, 'role': 'donor', 'email': 'jane@example.com'})
        history = view.refresh()

        self.api.get_donor_offers.assert_called_once_with(7)
        self.api.get_fundraisers.assert_called_once_with('jane@example.com')
        self.assertEqual(len(history['offers']), 2)
        self.assertEqual([item['id'] for item in view.items('offers', 'accepted')], [5])
        self.assertEqual([item['id'] for item in view.items('loans', 'funded')], [2])
        self.assertEqual(len(view.items('fundraising')), 1)
        self.assertFalse(view.busy)

    def test_borrower_skips_offer_history(self):
        view = HistoryView(self.api, {'id': 7, 'role': 'user', 'email': 'rahima@example.com'})
        view.refresh()

        self.api.get_donor_offers.assert_not_called()
        self.assertEqual(view.items('offers'), [])
        self.assertEqual(len(view.items('loans')), 2)

    def test_failure_keeps_previous_history(self):
        view = HistoryView(self.api, {'id': 7, 'role': 'user', 'email': 'rahima@example.com'})
        view.refresh()
        self.api.get_user_loans.side_effect = TransportError("Could not reach the lending service")

        view.refresh()

        self.assertEqual(view.alert['kind'], 'transport')
        self.assertEqual(len(view.loans), 2)
        self.assertFalse(view.busy)
