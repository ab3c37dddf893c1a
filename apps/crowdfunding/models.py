from django.db import models
from django.conf import settings
from decimal import Decimal


class Fundraiser(models.Model):
    CURRENCY_CHOICES = [
        ('BDT', 'BDT'),
        ('USD', 'USD'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('Bkash', 'Bkash'),
        ('Bank', 'Bank'),
        ('Card', 'Card'),
    ]

    PURPOSE_CHOICES = [
        ('Medical', 'Medical'),
        ('Education', 'Education'),
        ('Others', 'Others'),
    ]

    DONATION_TYPE_CHOICES = [
        ('One Time', 'One Time'),
        ('Monthly', 'Monthly'),
    ]

    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='fundraisers')
    title = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=20)
    address = models.TextField()
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES)
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES)
    purpose = models.CharField(max_length=20, choices=PURPOSE_CHOICES)
    donation_type = models.CharField(max_length=10, choices=DONATION_TYPE_CHOICES)
    message = models.TextField(blank=True, default='')
    terms_agreed = models.BooleanField(default=False)
    amount_raised = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.amount_raised} {self.currency} raised)"


class Donation(models.Model):
    fundraiser = models.ForeignKey(Fundraiser, on_delete=models.CASCADE, related_name='donations')
    donor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='donations'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Donation of {self.amount} to {self.fundraiser.title}"
