from django.contrib.auth.models import AbstractUser
from django.conf import settings
from django.db import models


class User(AbstractUser):
    ROLE_USER = 'user'
    ROLE_DONOR = 'donor'
    ROLE_ADMIN = 'admin'

    ROLE_CHOICES = [
        (ROLE_USER, 'Borrower'),
        (ROLE_DONOR, 'Donor'),
        (ROLE_ADMIN, 'Admin'),
    ]

    VERIFICATION_NOT_STARTED = 'not_started'
    VERIFICATION_PENDING = 'pending'
    VERIFICATION_VERIFIED = 'verified'
    VERIFICATION_REJECTED = 'rejected'
    VERIFICATION_ADDITIONAL_INFO = 'additional_info'

    VERIFICATION_CHOICES = [
        (VERIFICATION_NOT_STARTED, 'Not Started'),
        (VERIFICATION_PENDING, 'Under Review'),
        (VERIFICATION_VERIFIED, 'Verified'),
        (VERIFICATION_REJECTED, 'Rejected'),
        (VERIFICATION_ADDITIONAL_INFO, 'More Info Needed'),
    ]

    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_USER)
    verification_status = models.CharField(
        max_length=20, choices=VERIFICATION_CHOICES, default=VERIFICATION_NOT_STARTED
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.username} ({self.role})"

    @property
    def is_verified(self):
        return self.role == self.ROLE_ADMIN or self.verification_status == self.VERIFICATION_VERIFIED


class UserProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    date_of_birth = models.DateField(blank=True, null=True)
    address = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Profile of {self.user.username}"


class VerificationRequest(models.Model):
    """One identity-verification submission; a user's history is all of them."""

    STATUS_CHOICES = [
        (User.VERIFICATION_PENDING, 'Under Review'),
        (User.VERIFICATION_VERIFIED, 'Verified'),
        (User.VERIFICATION_REJECTED, 'Rejected'),
        (User.VERIFICATION_ADDITIONAL_INFO, 'More Info Needed'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='verification_requests')
    nid_number = models.CharField(max_length=32)
    documents = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=User.VERIFICATION_PENDING)
    rejection_reason = models.TextField(blank=True, default='')
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='reviewed_verifications'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Verification #{self.id} for {self.user.username} ({self.status})"
