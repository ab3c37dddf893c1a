from django.db import models
from django.db.models import Q
from django.conf import settings
from decimal import Decimal
from dateutil.relativedelta import relativedelta

from . import lifecycle


class LoanRequest(models.Model):
    STATUS_CHOICES = [
        (lifecycle.LOAN_PENDING, 'Pending'),
        (lifecycle.LOAN_APPROVED, 'Approved'),
        (lifecycle.LOAN_FUNDED, 'Funded'),
        (lifecycle.LOAN_COMPLETED, 'Completed'),
        (lifecycle.LOAN_REJECTED, 'Rejected'),
        (lifecycle.LOAN_CANCELLED, 'Cancelled'),
    ]

    requester = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='loan_requests')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    purpose = models.CharField(max_length=100)
    term_months = models.PositiveSmallIntegerField()
    description = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=lifecycle.LOAN_PENDING)
    funded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    requested_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-requested_at']

    def __str__(self):
        return f"Loan #{self.id} - {self.amount} for {self.requester.username} ({self.status})"

    @property
    def is_open(self):
        return self.status == lifecycle.LOAN_PENDING

    @property
    def is_locked(self):
        return lifecycle.is_loan_locked(self.id, self.offers.all(), loan_status=self.status)

    @property
    def accepted_offer(self):
        return self.offers.filter(status=lifecycle.OFFER_ACCEPTED).select_related('donor').first()

    @property
    def repayment_due_date(self):
        """Date the full term ends, counted from funding."""
        if not self.funded_at:
            return None
        return self.funded_at.date() + relativedelta(months=self.term_months)


class Offer(models.Model):
    STATUS_CHOICES = [
        (lifecycle.OFFER_PENDING, 'Pending'),
        (lifecycle.OFFER_ACCEPTED, 'Accepted'),
        (lifecycle.OFFER_REJECTED, 'Rejected'),
    ]

    loan = models.ForeignKey(LoanRequest, on_delete=models.CASCADE, related_name='offers')
    donor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='offers')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2)
    message = models.TextField(blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=lifecycle.OFFER_PENDING)
    accepted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['interest_rate', 'created_at']  # Lowest rates first
        constraints = [
            # Backstop for the accept race: the database refuses a second winner
            models.UniqueConstraint(
                fields=['loan'],
                condition=Q(status='accepted'),
                name='unique_accepted_offer_per_loan',
            ),
        ]

    def __str__(self):
        return f"Offer by {self.donor.username} - {self.amount} at {self.interest_rate}% for Loan #{self.loan_id}"

    @property
    def loan_status(self):
        return self.loan.status

    @property
    def monthly_payment(self):
        term_months = self.loan.term_months
        if term_months == 0:
            return Decimal('0.00')

        monthly_rate = self.interest_rate / Decimal('100') / Decimal('12')
        if monthly_rate == 0:
            return (self.amount / term_months).quantize(Decimal('0.01'))

        payment = (self.amount * monthly_rate * (1 + monthly_rate) ** term_months) / \
                  ((1 + monthly_rate) ** term_months - 1)
        return payment.quantize(Decimal('0.01'))

    @property
    def total_repayment(self):
        return self.monthly_payment * self.loan.term_months
