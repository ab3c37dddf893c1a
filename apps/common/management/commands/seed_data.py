import os
from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.db import transaction
from django.conf import settings
from decimal import Decimal
from apps.loans.models import LoanRequest, Offer
from apps.users.models import UserProfile
from apps.crowdfunding.models import Fundraiser

User = get_user_model()

PASSWORD = 'testpass123'


class Command(BaseCommand):
    help = 'Seed database with test data for the MicroLend marketplace'

    def add_arguments(self, parser):
        parser.add_argument(
            '--with-loan',
            action='store_true',
            help='Also create a sample loan request with two competing offers',
        )
        parser.add_argument(
            '--with-fundraiser',
            action='store_true',
            help='Also create a sample crowdfunding campaign',
        )
        parser.add_argument(
            '--environment',
            type=str,
            choices=['development', 'testing', 'staging'],
            default='development',
            help='Target environment for seeding (prevents accidental production seeding)',
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Force seeding even if not in development mode',
        )

    def handle(self, *args, **options):
        environment = os.environ.get('DJANGO_ENVIRONMENT', 'development')
        if environment == 'production' and not options['force']:
            self.stdout.write(
                self.style.ERROR('❌ Cannot seed production database without --force flag')
            )
            return

        if settings.DEBUG is False and not options['force']:
            self.stdout.write(
                self.style.ERROR('❌ Cannot seed when DEBUG=False without --force flag')
            )
            return

        self.stdout.write(self.style.SUCCESS('Starting database seeding...'))
        self.stdout.write(f'Environment: {environment}')
        self.stdout.write(f'Debug mode: {settings.DEBUG}')

        with transaction.atomic():
            self.create_admin()

            borrower = self.create_member(
                'rahima_borrower', 'user',
                email='rahima@example.com', first_name='Rahima', last_name='Khatun',
                phone_number='+8801711000001', address='Mirpur 10, Dhaka',
            )
            donors = [
                self.create_member(
                    'jane_donor', 'donor',
                    email='jane@example.com', first_name='Jane', last_name='Smith',
                    phone_number='+8801711000002', address='Gulshan 2, Dhaka',
                ),
                self.create_member(
                    'omar_donor', 'donor',
                    email='omar@example.com', first_name='Omar', last_name='Faruk',
                    phone_number='+8801711000003', address='Agrabad, Chattogram',
                ),
            ]

            loan = None
            if options['with_loan']:
                loan = self.create_sample_loan(borrower, donors)

            fundraiser = None
            if options['with_fundraiser']:
                fundraiser = self.create_sample_fundraiser(borrower)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))
        self.stdout.write(self.style.WARNING('\nTest Login Credentials:'))
        self.stdout.write('Admin - Username: admin, Password: admin123')
        self.stdout.write(f'Borrower - Username: rahima_borrower, Password: {PASSWORD}')
        self.stdout.write(f'Donor - Username: jane_donor, Password: {PASSWORD}')
        self.stdout.write(f'Donor - Username: omar_donor, Password: {PASSWORD}')

        if loan:
            self.stdout.write(self.style.WARNING(f'\nSample loan created with ID: {loan.id}'))
        if fundraiser:
            self.stdout.write(self.style.WARNING(f'Sample fundraiser created with ID: {fundraiser.id}'))

    def create_admin(self):
        """Create the platform admin; role admin is never reachable through registration"""
        admin, created = User.objects.get_or_create(
            username='admin',
            defaults={
                'email': 'admin@example.com',
                'first_name': 'Admin',
                'last_name': 'User',
                'role': 'admin',
                'verification_status': 'verified',
                'is_staff': True,
                'is_superuser': True,
                'is_active': True
            }
        )

        if created:
            admin.set_password('admin123')
            admin.save()
            self.stdout.write(f'✓ Created admin: {admin.username} ({admin.email})')
        elif admin.role != 'admin' or not admin.is_superuser:
            admin.role = 'admin'
            admin.is_superuser = True
            admin.is_staff = True
            admin.save()
            self.stdout.write(f'✓ Updated admin permissions: {admin.username}')
        else:
            self.stdout.write(f'✓ Admin already exists: {admin.username}')

        return admin

    def create_member(self, username, role, email, first_name, last_name, phone_number, address):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={
                'email': email,
                'first_name': first_name,
                'last_name': last_name,
                'role': role,
            }
        )

        if created:
            user.set_password(PASSWORD)
            user.save()
            self.stdout.write(f'✓ Created {role}: {user.username} ({user.email})')
        else:
            self.stdout.write(f'✓ {role.capitalize()} already exists: {user.username}')

        _, profile_created = UserProfile.objects.get_or_create(
            user=user,
            defaults={'phone_number': phone_number, 'address': address}
        )
        if profile_created:
            self.stdout.write(f'  → Created profile with phone: {phone_number}')

        return user

    def create_sample_loan(self, borrower, donors):
        """Create a pending loan request with one offer per donor"""
        loan, created = LoanRequest.objects.get_or_create(
            requester=borrower,
            amount=Decimal('8000.00'),
            defaults={
                'term_months': 12,
                'purpose': 'Tailoring shop',
                'description': 'Two sewing machines and fabric stock',
            }
        )

        if not created:
            self.stdout.write(f'✓ Sample loan already exists: ID {loan.id}')
            return loan

        self.stdout.write('✓ Created sample loan request:')
        self.stdout.write(f'  → Loan ID: {loan.id}')
        self.stdout.write(f'  → Amount: {loan.amount}')
        self.stdout.write(f'  → Term: {loan.term_months} months')
        self.stdout.write(f'  → Status: {loan.status}')

        for donor, amount, rate in zip(donors, ('5000.00', '3000.00'), ('10.00', '8.50')):
            offer = Offer.objects.create(
                loan=loan, donor=donor, amount=Decimal(amount), interest_rate=Decimal(rate)
            )
            self.stdout.write(f'  → Offer {offer.id} from {donor.username}: {offer.amount} at {offer.interest_rate}%')

        return loan

    def create_sample_fundraiser(self, owner):
        fundraiser, created = Fundraiser.objects.get_or_create(
            owner=owner,
            title='Surgery for Karim',
            defaults={
                'email': owner.email,
                'phone': '+8801711000001',
                'address': 'Mirpur 10, Dhaka',
                'currency': 'BDT',
                'payment_method': 'Bkash',
                'purpose': 'Medical',
                'donation_type': 'One Time',
                'message': 'Heart valve replacement',
                'terms_agreed': True,
            }
        )

        if created:
            self.stdout.write(f'✓ Created fundraiser: {fundraiser.title} (ID {fundraiser.id})')
        else:
            self.stdout.write(f'✓ Fundraiser already exists: ID {fundraiser.id}')

        return fundraiser
