"""
Integration tests for the complete MicroLend workflow.
Tests the full scenario from loan request to completion, the lost accept race
and the client view models running against a live server.

Usage:
    # Run with Django test runner (recommended):
    python manage.py test test_integration

    # Or with pytest:
    pytest test_integration.py
"""

import os
import django

# Setup Django environment before importing models
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'microlend.settings')
django.setup()

from decimal import Decimal
from django.core.cache import cache
from django.contrib.auth import get_user_model
from django.test import LiveServerTestCase
from rest_framework.test import APITestCase
from rest_framework import status
from rest_framework.authtoken.models import Token
from apps.loans.models import LoanRequest, Offer
from microlend_client import LendingAPIClient, ComparisonView, StatusView, BidSubmissionView
from microlend_client.views import LOAN_LOCKED_MESSAGE

User = get_user_model()


class MicroLendIntegrationTest(APITestCase):
    """
    Complete integration test for the marketplace.
    Tests the full workflow: loan request → competing offers → acceptance → funding → completion
    """

    def setUp(self):
        """Set up a borrower, two donors and their tokens"""
        cache.clear()
        self.borrower = User.objects.create_user(
            username='rahima_borrower',
            email='rahima@example.com',
            password='testpass123',
            role='user',
            first_name='Rahima',
            last_name='Khatun'
        )
        self.donor = User.objects.create_user(
            username='jane_donor',
            email='jane@example.com',
            password='testpass123',
            role='donor',
            first_name='Jane',
            last_name='Smith'
        )
        self.second_donor = User.objects.create_user(
            username='omar_donor',
            email='omar@example.com',
            password='testpass123',
            role='donor'
        )

        self.borrower_token = Token.objects.create(user=self.borrower)
        self.donor_token = Token.objects.create(user=self.donor)
        self.second_donor_token = Token.objects.create(user=self.second_donor)

    def use(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def test_complete_lending_lifecycle(self):
        """Test the complete lending lifecycle"""

        print("Step 1: Borrower creates loan request")
        self.use(self.borrower_token)
        response = self.client.post('/api/loans/', {
            'amount': '8000.00',
            'term_months': 12,
            'purpose': 'Tailoring shop',
            'description': 'Two sewing machines and fabric stock'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        loan_id = response.data['id']
        self.assertEqual(response.data['status'], 'pending')
        print(f"✓ Loan created with ID: {loan_id}")

        print("\nStep 2: Donors browse open loans and bid")
        self.use(self.donor_token)
        response = self.client.get('/api/loans/')
        self.assertEqual([loan['id'] for loan in response.data], [loan_id])

        response = self.client.post('/api/offers/', {
            'loan_id': loan_id, 'amount': '5000.00', 'interest_rate': '10.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        first_offer_id = response.data['id']

        self.use(self.second_donor_token)
        response = self.client.post('/api/offers/', {
            'loan_id': loan_id, 'amount': '3000.00', 'interest_rate': '8.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        second_offer_id = response.data['id']
        print(f"✓ Offers {first_offer_id} and {second_offer_id} submitted")

        print("\nStep 3: Borrower compares offers")
        self.use(self.borrower_token)
        response = self.client.get('/api/offers/my-offers/', {'userId': self.borrower.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(all(offer['selectable'] for offer in response.data))
        # Lowest rate first
        self.assertEqual([offer['id'] for offer in response.data], [second_offer_id, first_offer_id])

        print("\nStep 4: Borrower accepts the first offer")
        response = self.client.post(f'/api/offers/{first_offer_id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')

        response = self.client.get(f'/api/loans/{loan_id}/')
        self.assertEqual(response.data['status'], 'approved')
        self.assertTrue(response.data['is_locked'])
        print("✓ Offer accepted, loan status: approved")

        print("\nStep 5: The sibling offer is locked")
        response = self.client.post(f'/api/offers/{second_offer_id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_code'], 'LOAN_LOCKED')

        response = self.client.get('/api/offers/my-offers/')
        by_id = {offer['id']: offer for offer in response.data}
        self.assertEqual(by_id[second_offer_id]['status'], 'pending')
        self.assertFalse(by_id[second_offer_id]['selectable'])
        print("✓ Second accept refused with LOAN_LOCKED")

        print("\nStep 6: No more bids on the approved loan")
        self.use(self.second_donor_token)
        response = self.client.post('/api/offers/', {
            'loan_id': loan_id, 'amount': '1000.00', 'interest_rate': '7.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        print("\nStep 7: The winning donor funds the loan")
        response = self.client.post(f'/api/loans/{loan_id}/fund/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.use(self.donor_token)
        response = self.client.post(f'/api/loans/{loan_id}/fund/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'funded')
        self.assertIsNotNone(response.data['repayment_due_date'])
        print("✓ Loan funded (simulated)")

        print("\nStep 8: Borrower marks the loan completed")
        self.use(self.borrower_token)
        response = self.client.patch(f'/api/loans/{loan_id}/', {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')

        self.assertEqual(LoanRequest.objects.get(id=loan_id).status, 'completed')
        self.assertEqual(Offer.objects.filter(loan_id=loan_id, status='accepted').count(), 1)
        print("\n🎉 COMPLETE LENDING LIFECYCLE TEST PASSED! 🎉")

    def test_cancelled_loan_scenario(self):
        """Cancelling a pending loan locks every offer it holds"""
        self.use(self.borrower_token)
        response = self.client.post('/api/loans/', {
            'amount': '1000.00', 'term_months': 6, 'purpose': 'Test loan'
        }, format='json')
        loan_id = response.data['id']

        self.use(self.donor_token)
        response = self.client.post('/api/offers/', {
            'loan_id': loan_id, 'amount': '1000.00', 'interest_rate': '9.00'
        }, format='json')
        offer_id = response.data['id']

        self.use(self.borrower_token)
        response = self.client.patch(f'/api/loans/{loan_id}/', {'status': 'cancelled'}, format='json')
        self.assertEqual(response.data['status'], 'cancelled')

        response = self.client.get(f'/api/offers/loan/{loan_id}/')
        self.assertFalse(response.data[0]['selectable'])
        self.assertTrue(response.data[0]['loan_locked'])

        response = self.client.post(f'/api/offers/{offer_id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        print("✓ Cancelled loan scenario handled correctly")


class ClientViewsLiveTest(LiveServerTestCase):
    """The client view models talking to a running server over HTTP."""

    def setUp(self):
        cache.clear()
        User.objects.create_user(username='borrower', email='b@example.com', password='testpass123', role='user')
        User.objects.create_user(username='donor', email='d@example.com', password='testpass123', role='donor')
        User.objects.create_user(username='donor2', email='d2@example.com', password='testpass123', role='donor')

    def client_for(self, username):
        api = LendingAPIClient(f'{self.live_server_url}/api')
        api.login(username, 'testpass123')
        self.addCleanup(api.close)
        return api

    def test_two_screens_race_for_one_loan(self):
        borrower = self.client_for('borrower')
        loan = borrower.create_loan(Decimal('8000.00'), 'Tailoring shop', 12)

        for username, amount, rate in [('donor', '5000', '10'), ('donor2', '3000', '8')]:
            bid = BidSubmissionView(self.client_for(username))
            bid.refresh()
            self.assertEqual([item['id'] for item in bid.open_loans], [loan['id']])
            bid.loan_id, bid.amount, bid.interest_rate = loan['id'], amount, rate
            self.assertIsNotNone(bid.submit())

        # Two stale screens of the same borrower both see every offer selectable
        first = ComparisonView(borrower, borrower.user_id)
        second = ComparisonView(borrower, borrower.user_id)
        first.refresh()
        second.refresh()
        offer_ids = [offer['id'] for offer in first.offers]
        self.assertTrue(all(second.can_select(offer_id) for offer_id in offer_ids))

        self.assertIsNotNone(first.accept(offer_ids[0]))
        self.assertIsNone(second.accept(offer_ids[1]))

        self.assertEqual(second.alert, {'kind': 'conflict', 'message': LOAN_LOCKED_MESSAGE})
        self.assertTrue(second.is_loan_locked(loan['id']))
        self.assertFalse(any(second.can_select(offer_id) for offer_id in offer_ids))

        status_view = StatusView(borrower, borrower.user_id)
        status_view.refresh()
        self.assertEqual(status_view.get_loan(loan['id'])['status'], 'approved')
        self.assertFalse(status_view.can_cancel(loan['id']))
        self.assertEqual(len(status_view.load_offers(loan['id'])), 2)
        self.assertTrue(status_view.is_loan_locked(loan['id']))
