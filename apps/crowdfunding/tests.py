from decimal import Decimal
from django.core.cache import cache
from django.test import TestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase
from rest_framework import status
from rest_framework.authtoken.models import Token
from apps.common.exceptions import ValidationError, FundraiserNotFoundError
from .models import Fundraiser, Donation
from .services import FundraiserService

User = get_user_model()

CAMPAIGN = {
    'title': 'Surgery for Karim',
    'email': 'karim@example.com',
    'phone': '+8801711111111',
    'address': 'Mirpur 10, Dhaka',
    'currency': 'BDT',
    'payment_method': 'Bkash',
    'purpose': 'Medical',
    'donation_type': 'One Time',
    'message': 'Heart valve replacement',
    'terms_agreed': True,
}


class FundraiserServiceTest(TestCase):
    def setUp(self):
        cache.clear()
        self.owner = User.objects.create_user(username='owner', email='owner@example.com', password='testpass123')
        self.donor = User.objects.create_user(
            username='donor', email='donor@example.com', password='testpass123', role='donor'
        )
        self.service = FundraiserService()

    def test_create_requires_terms(self):
        with self.assertRaises(ValidationError):
            self.service.create_fundraiser(self.owner, dict(CAMPAIGN, terms_agreed=False))
        fundraiser = self.service.create_fundraiser(self.owner, dict(CAMPAIGN))
        self.assertEqual(fundraiser.amount_raised, Decimal('0.00'))

    def test_donations_accumulate(self):
        fundraiser = self.service.create_fundraiser(self.owner, dict(CAMPAIGN))
        self.service.donate(fundraiser.id, self.donor, Decimal('250.00'))
        result = self.service.donate(fundraiser.id, self.owner, '100.50')

        self.assertEqual(result['fundraiser'].amount_raised, Decimal('350.50'))
        self.assertEqual(Donation.objects.filter(fundraiser=fundraiser).count(), 2)

    def test_donation_must_be_positive(self):
        fundraiser = self.service.create_fundraiser(self.owner, dict(CAMPAIGN))
        for amount in (0, -10, 'lots'):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    self.service.donate(fundraiser.id, self.donor, amount)
        self.assertEqual(Donation.objects.count(), 0)

    def test_missing_campaign(self):
        with self.assertRaises(FundraiserNotFoundError):
            self.service.donate(9999, self.donor, 10)

    def test_list_reflects_new_campaigns(self):
        self.assertEqual(self.service.list_fundraisers(), [])
        self.service.create_fundraiser(self.owner, dict(CAMPAIGN))
        self.assertEqual(len(self.service.list_fundraisers()), 1)


class FundraiserAPITest(APITestCase):
    def setUp(self):
        cache.clear()
        self.owner = User.objects.create_user(username='owner', email='owner@example.com', password='testpass123')
        self.donor = User.objects.create_user(
            username='donor', email='donor@example.com', password='testpass123', role='donor'
        )
        self.owner_token = Token.objects.create(user=self.owner)
        self.donor_token = Token.objects.create(user=self.donor)

    def authenticate(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')

    def test_create_campaign(self):
        self.authenticate(self.owner_token)
        response = self.client.post('/api/fundraise/', CAMPAIGN, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['owner_id'], self.owner.id)
        self.assertEqual(response.data['amount_raised'], '0.00')

    def test_create_campaign_validation(self):
        self.authenticate(self.owner_token)
        response = self.client.post('/api/fundraise/', dict(CAMPAIGN, terms_agreed=False, currency='EUR'),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation')
        self.assertIn('terms_agreed', response.data['details'])
        self.assertIn('currency', response.data['details'])

    def test_anonymous_can_browse_but_not_create(self):
        Fundraiser.objects.create(owner=self.owner, **CAMPAIGN)
        response = self.client.get('/api/fundraise/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.post('/api/fundraise/', CAMPAIGN, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_filter_by_email(self):
        Fundraiser.objects.create(owner=self.owner, **CAMPAIGN)
        Fundraiser.objects.create(owner=self.owner, **dict(CAMPAIGN, email='other@example.com'))
        self.authenticate(self.owner_token)
        response = self.client.get('/api/fundraise/', {'email': 'karim@example.com'})
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['email'], 'karim@example.com')

    def test_contact_details_are_private(self):
        fundraiser = Fundraiser.objects.create(owner=self.owner, **CAMPAIGN)
        private_fields = {'email', 'phone', 'address'}

        response = self.client.get('/api/fundraise/')
        self.assertFalse(private_fields & set(response.data[0]))
        self.assertEqual(response.data[0]['title'], 'Surgery for Karim')

        response = self.client.get(f'/api/fundraise/{fundraiser.id}/')
        self.assertFalse(private_fields & set(response.data))

        self.authenticate(self.donor_token)
        response = self.client.get(f'/api/fundraise/{fundraiser.id}/')
        self.assertFalse(private_fields & set(response.data))

        self.authenticate(self.owner_token)
        response = self.client.get(f'/api/fundraise/{fundraiser.id}/')
        self.assertEqual(response.data['phone'], CAMPAIGN['phone'])
        self.assertEqual(response.data['address'], CAMPAIGN['address'])

        admin = User.objects.create_user(username='admin', password='testpass123', role='admin')
        self.authenticate(Token.objects.create(user=admin))
        response = self.client.get('/api/fundraise/')
        self.assertEqual(response.data[0]['email'], CAMPAIGN['email'])

    def test_donate(self):
        fundraiser = Fundraiser.objects.create(owner=self.owner, **CAMPAIGN)
        self.authenticate(self.donor_token)
        response = self.client.post(f'/api/fundraise/{fundraiser.id}/donate/', {'amount': '500.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['fundraiser']['amount_raised'], '500.00')
        self.assertNotIn('phone', response.data['fundraiser'])
        self.assertEqual(response.data['donation']['donor_id'], self.donor.id)

        response = self.client.get(f'/api/fundraise/{fundraiser.id}/donations/')
        self.assertEqual(len(response.data), 1)

    def test_donate_to_missing_campaign(self):
        self.authenticate(self.donor_token)
        response = self.client.post('/api/fundraise/9999/donate/', {'amount': '5.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error_code'], 'FUNDRAISER_NOT_FOUND')
