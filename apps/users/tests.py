from django.test import TestCase
from django.db.models import ProtectedError
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APITestCase
from rest_framework import status
from rest_framework.authtoken.models import Token
from apps.common.exceptions import ValidationError, InvalidVerificationStateError, RolePermissionError
from apps.loans.models import LoanRequest, Offer
from apps.loans.services import LoanService, OfferService
from .models import UserProfile, VerificationRequest
from .services import UserService, VerificationService, AdminService

User = get_user_model()


class UserModelTest(TestCase):
    def test_create_user(self):
        user = User.objects.create_user(
            username='testuser',
            email='test@example.com',
            password='testpass123'
        )
        self.assertEqual(user.username, 'testuser')
        self.assertEqual(user.role, 'user')
        self.assertEqual(user.verification_status, 'not_started')
        self.assertFalse(user.is_verified)
        self.assertTrue(user.check_password('testpass123'))

    def test_user_profile_creation(self):
        user = User.objects.create_user(
            username='testuser',
            email='test@example.com',
            password='testpass123',
            role='donor'
        )
        profile = UserProfile.objects.create(
            user=user,
            phone_number='+8801700000000',
            address='12 Lake Road, Dhaka'
        )
        self.assertEqual(profile.user, user)
        self.assertEqual(user.profile.phone_number, '+8801700000000')


class UserServiceTest(TestCase):
    def test_admin_role_cannot_self_register(self):
        with self.assertRaises(RolePermissionError):
            UserService().register_user({
                'username': 'sneaky', 'email': 'sneaky@example.com', 'password': 'testpass123', 'role': 'admin'
            })
        self.assertEqual(User.objects.count(), 0)

    def test_profile_update_keeps_role(self):
        user = User.objects.create_user(username='testuser', email='t@example.com', password='testpass123')
        updated = UserService().update_user_profile(
            user.id, {'first_name': 'Rahima', 'role': 'admin'}, {'address': 'Sylhet'}
        )
        self.assertEqual(updated.first_name, 'Rahima')
        self.assertEqual(updated.role, 'user')
        self.assertEqual(updated.profile.address, 'Sylhet')


class AdminServiceTest(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username='admin', password='testpass123', role='admin')
        self.borrower = User.objects.create_user(username='borrower', password='testpass123')
        self.donor = User.objects.create_user(username='donor', password='testpass123', role='donor')
        self.service = AdminService()

    def test_removing_donor_keeps_accepted_offer(self):
        loan = LoanService().create_loan(
            self.borrower, {'amount': '1000.00', 'term_months': 6, 'purpose': 'Sewing machine'}
        )
        offer = OfferService().submit_offer(loan.id, self.donor, '1000.00', '9.00')
        OfferService().accept_offer(offer.id, self.borrower)

        self.service.delete_user(self.donor.id, self.admin)

        loan.refresh_from_db()
        self.assertEqual(loan.status, 'approved')
        self.assertEqual(Offer.objects.filter(loan=loan, status='accepted').count(), 1)
        self.assertEqual(loan.accepted_offer.donor_id, self.donor.id)

        funded = LoanService().fund_loan(loan.id, self.admin)
        self.assertEqual(funded.status, 'funded')

    def test_removing_borrower_keeps_their_loans(self):
        LoanRequest.objects.create(requester=self.borrower, amount='500.00', purpose='Seeds', term_months=6)

        user = self.service.delete_user(self.borrower.id, self.admin)

        self.assertFalse(user.is_active)
        self.assertEqual(LoanRequest.objects.filter(requester=self.borrower).count(), 1)
        self.assertNotIn(self.borrower, list(self.service.list_users(self.admin)))

    def test_hard_delete_of_user_with_loans_is_refused(self):
        LoanRequest.objects.create(requester=self.borrower, amount='500.00', purpose='Seeds', term_months=6)
        with self.assertRaises(ProtectedError):
            self.borrower.delete()


class VerificationServiceTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='borrower', email='b@example.com', password='testpass123')
        self.admin = User.objects.create_user(
            username='admin', email='a@example.com', password='testpass123', role='admin'
        )
        self.service = VerificationService()

    def test_submit_moves_user_to_pending(self):
        verification = self.service.submit(self.user, '1990123456789', ['nid-front.jpg', 'nid-back.jpg'])
        self.user.refresh_from_db()
        self.assertEqual(self.user.verification_status, 'pending')
        self.assertEqual(verification.documents, ['nid-front.jpg', 'nid-back.jpg'])

    def test_nid_number_required(self):
        with self.assertRaises(ValidationError):
            self.service.submit(self.user, '   ', [])
        self.assertEqual(VerificationRequest.objects.count(), 0)

    def test_cannot_resubmit_while_pending(self):
        self.service.submit(self.user, '1990123456789', [])
        with self.assertRaises(InvalidVerificationStateError):
            self.service.submit(self.user, '1990123456789', [])

    def test_approve(self):
        verification = self.service.submit(self.user, '1990123456789', [])
        verification = self.service.approve(verification.id, self.admin)
        self.user.refresh_from_db()
        self.assertEqual(verification.status, 'verified')
        self.assertEqual(verification.reviewed_by, self.admin)
        self.assertTrue(self.user.is_verified)

        with self.assertRaises(InvalidVerificationStateError):
            self.service.reject(verification.id, self.admin, 'Blurry photo')

    def test_reject_needs_reason_and_allows_resubmission(self):
        verification = self.service.submit(self.user, '1990123456789', [])
        with self.assertRaises(ValidationError):
            self.service.reject(verification.id, self.admin, '')

        self.service.reject(verification.id, self.admin, 'Blurry photo')
        self.user.refresh_from_db()
        self.assertEqual(self.user.verification_status, 'rejected')

        self.service.submit(self.user, '1990123456789', ['clear-photo.jpg'])
        history = self.service.get_history(self.user.id, self.user)
        self.assertEqual(len(history), 2)
        self.assertEqual({item.status for item in history}, {'rejected', 'pending'})

    def test_request_more_info(self):
        verification = self.service.submit(self.user, '1990123456789', [])
        self.service.request_info(verification.id, self.admin, 'Add a utility bill')
        self.user.refresh_from_db()
        self.assertEqual(self.user.verification_status, 'additional_info')

    def test_only_admins_review(self):
        verification = self.service.submit(self.user, '1990123456789', [])
        with self.assertRaises(RolePermissionError):
            self.service.approve(verification.id, self.user)


class UserAPITest(APITestCase):
    def setUp(self):
        cache.clear()

    def authenticate(self, user):
        token, _ = Token.objects.get_or_create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def test_user_registration(self):
        data = {
            'username': 'newuser',
            'email': 'newuser@example.com',
            'password': 'newpass123',
            'role': 'donor',
            'first_name': 'John',
            'last_name': 'Doe',
            'profile': {
                'phone_number': '+1234567890',
                'address': '123 Main St'
            }
        }
        response = self.client.post('/api/users/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.count(), 1)
        user = User.objects.first()
        self.assertEqual(user.username, 'newuser')
        self.assertEqual(user.role, 'donor')
        self.assertEqual(user.profile.address, '123 Main St')
        self.assertNotIn('password', response.data)

    def test_registration_as_admin_is_refused(self):
        data = {'username': 'boss', 'email': 'boss@example.com', 'password': 'newpass123', 'role': 'admin'}
        response = self.client.post('/api/users/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['kind'], 'permission')
        self.assertEqual(User.objects.count(), 0)

    def test_user_login(self):
        User.objects.create_user(
            username='testuser',
            email='test@example.com',
            password='testpass123',
            role='donor'
        )
        response = self.client.post('/api/users/login/', {'username': 'testuser', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('token', response.data)
        self.assertEqual(response.data['user']['role'], 'donor')

    def test_login_with_wrong_password(self):
        User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        response = self.client.post('/api/users/login/', {'username': 'testuser', 'password': 'nope'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Invalid credentials')

    def test_user_profile_access(self):
        user = User.objects.create_user(
            username='testuser',
            email='test@example.com',
            password='testpass123'
        )
        self.authenticate(user)
        response = self.client.get('/api/users/profile/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'testuser')
        self.assertEqual(response.data['verification_status'], 'not_started')

    def test_update_profile(self):
        user = User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        self.authenticate(user)
        response = self.client.put('/api/users/profile/update/', {
            'last_name': 'Begum', 'profile': {'phone_number': '+8801811111111'}
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['last_name'], 'Begum')
        self.assertEqual(response.data['profile']['phone_number'], '+8801811111111')

    def test_verification_flow(self):
        user = User.objects.create_user(username='borrower', email='b@example.com', password='testpass123')
        admin = User.objects.create_user(username='admin', email='a@example.com', password='testpass123', role='admin')

        self.authenticate(user)
        response = self.client.post('/api/users/verification/', {
            'nid_number': '1990123456789', 'documents': ['nid-front.jpg']
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        request_id = response.data['id']

        response = self.client.get('/api/users/verification/status/')
        self.assertEqual(response.data['verification_status'], 'pending')
        self.assertEqual(response.data['latest_request']['id'], request_id)

        response = self.client.post(f'/api/users/admin/verifications/{request_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(admin)
        response = self.client.get('/api/users/admin/verifications/', {'status': 'pending'})
        self.assertEqual([item['id'] for item in response.data], [request_id])

        response = self.client.post(f'/api/users/admin/verifications/{request_id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/users/admin/verifications/{request_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'verified')

        response = self.client.post(f'/api/users/admin/verifications/{request_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

        response = self.client.post(f'/api/users/admin/verifications/{request_id}/escalate/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        user.refresh_from_db()
        self.assertEqual(user.verification_status, 'verified')


class AdminAPITest(APITestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='testpass123', role='admin'
        )
        self.borrower = User.objects.create_user(username='borrower', email='b@example.com', password='testpass123')
        self.donor = User.objects.create_user(
            username='donor', email='d@example.com', password='testpass123', role='donor'
        )
        token = Token.objects.create(user=self.admin)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def test_list_users(self):
        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 3)

        response = self.client.get('/api/users/', {'role': 'donor'})
        self.assertEqual([item['username'] for item in response.data], ['donor'])

    def test_non_admin_is_refused(self):
        token = Token.objects.create(user=self.donor)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')
        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['kind'], 'permission')

    def test_promote_user(self):
        response = self.client.post(f'/api/users/admin/{self.donor.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.donor.refresh_from_db()
        self.assertEqual(self.donor.role, 'admin')

    def test_delete_user(self):
        response = self.client.delete(f'/api/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        Token.objects.create(user=self.borrower)
        response = self.client.delete(f'/api/users/{self.borrower.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.borrower.refresh_from_db()
        self.assertFalse(self.borrower.is_active)
        self.assertFalse(Token.objects.filter(user=self.borrower).exists())

        response = self.client.get('/api/users/')
        self.assertNotIn(self.borrower.id, [item['id'] for item in response.data])

        response = self.client.delete(f'/api/users/{self.borrower.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_deactivated_user_cannot_log_in(self):
        self.client.delete(f'/api/users/{self.donor.id}/')
        self.client.credentials()
        response = self.client.post('/api/users/login/', {'username': 'donor', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_dashboard(self):
        LoanRequest.objects.create(requester=self.borrower, amount='500.00', purpose='Seeds', term_months=6)
        LoanRequest.objects.create(
            requester=self.borrower, amount='900.00', purpose='Goats', term_months=12, status='rejected'
        )
        VerificationRequest.objects.create(user=self.borrower, nid_number='1990123456789')

        response = self.client.get('/api/users/admin/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_users'], 3)
        self.assertEqual(response.data['total_loans'], 2)
        self.assertEqual(response.data['pending_loans'], 1)
        self.assertEqual(response.data['rejected_loans'], 1)
        self.assertEqual(response.data['approved_loans'], 0)
        self.assertEqual(response.data['total_fundraisers'], 0)
        self.assertEqual(response.data['pending_verifications'], 1)
