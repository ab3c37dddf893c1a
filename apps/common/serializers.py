"""
Common serializers for API responses and error handling
"""
from rest_framework import serializers


class ErrorResponseSerializer(serializers.Serializer):
    """Standard error envelope produced by the exception handler"""
    success = serializers.BooleanField(default=False)
    error_code = serializers.CharField(help_text="Machine readable error code")
    kind = serializers.ChoiceField(
        choices=['validation', 'not_found', 'conflict', 'state', 'permission', 'throttled'],
        help_text="Error category clients use to decide how to recover"
    )
    message = serializers.CharField(help_text="Error message describing what went wrong")
    details = serializers.JSONField(required=False, allow_null=True)


class ValidationErrorResponseSerializer(ErrorResponseSerializer):
    """Validation error envelope; ``details`` holds the field errors"""
    details = serializers.DictField(
        required=False,
        help_text="Field-specific validation errors",
        child=serializers.ListField(child=serializers.CharField())
    )


class SuccessMessageSerializer(serializers.Serializer):
    """Success message response serializer"""
    message = serializers.CharField(help_text="Success message")


class TokenResponseSerializer(serializers.Serializer):
    """Authentication token response serializer"""
    token = serializers.CharField(help_text="Authentication token")
    user = serializers.DictField(help_text="User information")


class DonationResponseSerializer(serializers.Serializer):
    """Simulated donation response serializer"""
    message = serializers.CharField(help_text="Success message")
    donation = serializers.DictField(help_text="Donation information")
    fundraiser = serializers.DictField(help_text="Updated campaign information")


class DashboardSerializer(serializers.Serializer):
    """Admin dashboard counters"""
    total_users = serializers.IntegerField()
    total_loans = serializers.IntegerField()
    total_offers = serializers.IntegerField()
    total_fundraisers = serializers.IntegerField()
    pending_loans = serializers.IntegerField()
    approved_loans = serializers.IntegerField()
    rejected_loans = serializers.IntegerField()
    pending_verifications = serializers.IntegerField()
