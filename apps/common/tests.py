from io import StringIO
from django.core.management import call_command
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from apps.common.exceptions import (
    ConflictError, LoanLockedError, LoanNotOpenError, NotFoundError, RolePermissionError,
    StateError, ValidationError, LendingPlatformError, error_from_response,
)
from apps.common.permissions import has_role, is_admin
from apps.loans.models import LoanRequest, Offer
from apps.crowdfunding.models import Fundraiser

User = get_user_model()


class ErrorFromResponseTest(SimpleTestCase):
    def test_kind_decides_the_class(self):
        error = error_from_response(409, {
            'success': False,
            'error_code': 'LOAN_NOT_OPEN',
            'kind': 'not_found',
            'message': 'This loan is not open for offers',
            'details': None,
        })
        self.assertIsInstance(error, NotFoundError)
        self.assertEqual(error.error_code, 'LOAN_NOT_OPEN')
        self.assertEqual(error.status_code, 409)

    def test_status_is_the_fallback(self):
        cases = [
            (400, ValidationError),
            (401, RolePermissionError),
            (403, RolePermissionError),
            (404, NotFoundError),
            (409, ConflictError),
            (422, StateError),
        ]
        for status_code, error_class in cases:
            with self.subTest(status_code=status_code):
                self.assertIsInstance(error_from_response(status_code, {'detail': 'x'}), error_class)

    def test_unknown_payload(self):
        error = error_from_response(500, 'Internal Server Error')
        self.assertIs(type(error), LendingPlatformError)
        self.assertEqual(error.message, LendingPlatformError.default_message)

    def test_exception_defaults(self):
        self.assertEqual(LoanLockedError().kind, 'conflict')
        self.assertEqual(LoanLockedError.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(LoanNotOpenError().kind, 'not_found')
        self.assertEqual(StateError.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(ValidationError('Bad amount').message, 'Bad amount')


class RoleHelpersTest(TestCase):
    def test_roles(self):
        admin = User.objects.create_user(username='admin', password='x', role='admin')
        donor = User.objects.create_user(username='donor', password='x', role='donor')

        self.assertTrue(is_admin(admin))
        self.assertFalse(is_admin(donor))
        self.assertTrue(has_role(donor, 'donor', 'admin'))
        self.assertFalse(has_role(donor, 'user'))


class SeedDataCommandTest(TestCase):
    def test_refuses_without_force_when_debug_is_off(self):
        out = StringIO()
        call_command('seed_data', stdout=out)
        self.assertIn('Cannot seed', out.getvalue())
        self.assertEqual(User.objects.count(), 0)

    def test_seeds_accounts_loan_and_fundraiser(self):
        call_command('seed_data', '--with-loan', '--with-fundraiser', '--force', stdout=StringIO())

        self.assertEqual(User.objects.get(username='admin').role, 'admin')
        self.assertEqual(User.objects.get(username='rahima_borrower').role, 'user')
        self.assertEqual(User.objects.filter(role='donor').count(), 2)

        loan = LoanRequest.objects.get()
        self.assertEqual(loan.status, 'pending')
        self.assertEqual(Offer.objects.filter(loan=loan, status='pending').count(), 2)
        self.assertEqual(Fundraiser.objects.count(), 1)

    def test_is_idempotent(self):
        for _ in range(2):
            call_command('seed_data', '--with-loan', '--force', stdout=StringIO())

        self.assertEqual(User.objects.count(), 4)
        self.assertEqual(LoanRequest.objects.count(), 1)
        self.assertEqual(Offer.objects.count(), 2)
