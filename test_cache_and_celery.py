"""
Tests for the caching layer and the Celery wiring.

Usage:
    python manage.py test test_cache_and_celery
"""

from decimal import Decimal
from django.conf import settings
from django.core.cache import cache
from django.contrib.auth import get_user_model
from django.test import TestCase
from apps.common.cache_utils import LoanCache, FundraiserCache
from apps.loans.models import LoanRequest, Offer
from apps.loans.services import LoanService, OfferService
from apps.loans.tasks import loan_status_summary_report
from microlend.celery import app as celery_app

User = get_user_model()


class CacheTest(TestCase):
    def setUp(self):
        cache.clear()
        self.borrower = User.objects.create_user(
            username='test_cache_borrower', email='test_cache@example.com', password='testpass123', role='user'
        )
        self.donor = User.objects.create_user(
            username='test_cache_donor', email='donor@example.com', password='testpass123', role='donor'
        )

    def test_basic_get_set_and_invalidate(self):
        LoanCache.set_open_loans(['test_loan_1', 'test_loan_2'])
        self.assertEqual(LoanCache.get_open_loans(), ['test_loan_1', 'test_loan_2'])

        LoanCache.invalidate_open_loans()
        self.assertIsNone(LoanCache.get_open_loans())

    def test_loan_creation_invalidates(self):
        LoanCache.set_open_loans(['cached_loan_before'])
        LoanRequest.objects.create(
            requester=self.borrower, amount=Decimal('1000.00'), purpose='Inventory', term_months=6
        )
        self.assertIsNone(LoanCache.get_open_loans())

    def test_offer_creation_invalidates(self):
        loan = LoanRequest.objects.create(
            requester=self.borrower, amount=Decimal('1000.00'), purpose='Inventory', term_months=6
        )
        LoanCache.set_open_loans(['cached_loan_before'])
        Offer.objects.create(loan=loan, donor=self.donor, amount=Decimal('500.00'), interest_rate=Decimal('9.00'))
        self.assertIsNone(LoanCache.get_open_loans())

    def test_status_updates_invalidate(self):
        # Queryset updates skip signals, so the services invalidate themselves
        loan = LoanRequest.objects.create(
            requester=self.borrower, amount=Decimal('1000.00'), purpose='Inventory', term_months=6
        )
        offer = Offer.objects.create(
            loan=loan, donor=self.donor, amount=Decimal('500.00'), interest_rate=Decimal('9.00')
        )
        service = LoanService()
        self.assertEqual([item.id for item in service.get_open_loans()], [loan.id])

        OfferService().accept_offer(offer.id, self.borrower)
        self.assertIsNone(LoanCache.get_open_loans())
        self.assertEqual(service.get_open_loans(), [])

    def test_fundraiser_cache(self):
        FundraiserCache.set_fundraisers(['campaign'])
        self.assertEqual(FundraiserCache.get_fundraisers(), ['campaign'])
        FundraiserCache.invalidate_fundraisers()
        self.assertIsNone(FundraiserCache.get_fundraisers())


class CeleryTest(TestCase):
    def test_summary_task_is_registered_and_scheduled(self):
        self.assertIn('apps.loans.tasks.loan_status_summary_report', celery_app.tasks)
        scheduled = [entry['task'] for entry in settings.CELERY_BEAT_SCHEDULE.values()]
        self.assertIn('apps.loans.tasks.loan_status_summary_report', scheduled)

    def test_summary_task_runs_on_empty_database(self):
        report = loan_status_summary_report.apply().get()
        self.assertEqual(report['status'], 'completed')
        self.assertEqual(report['metrics']['total_loans'], 0)
        self.assertEqual(report['metrics']['loan_decision_rate'], 0)
