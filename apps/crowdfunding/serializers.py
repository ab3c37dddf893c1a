from rest_framework import serializers
from apps.common.permissions import is_admin
from .models import Fundraiser, Donation


class FundraiserSerializer(serializers.ModelSerializer):
    owner_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Fundraiser
        fields = [
            'id', 'owner_id', 'title', 'email', 'phone', 'address', 'currency',
            'payment_method', 'purpose', 'donation_type', 'message', 'terms_agreed',
            'amount_raised', 'created_at'
        ]
        read_only_fields = ['id', 'owner_id', 'amount_raised', 'created_at']

    def validate_terms_agreed(self, value):
        if not value:
            raise serializers.ValidationError("You must agree to the terms")
        return value


class PublicFundraiserSerializer(serializers.ModelSerializer):
    """Campaign as shown to everyone except its owner and admins; no contact details."""

    class Meta:
        model = Fundraiser
        fields = [
            'id', 'title', 'currency', 'payment_method', 'purpose', 'donation_type',
            'message', 'amount_raised', 'created_at'
        ]
        read_only_fields = fields


def serialize_fundraiser(fundraiser, user):
    """Full record for the owner or an admin, the public record for anyone else."""
    if is_admin(user) or (user is not None and user.is_authenticated and fundraiser.owner_id == user.id):
        return FundraiserSerializer(fundraiser).data
    return PublicFundraiserSerializer(fundraiser).data


class DonationSerializer(serializers.ModelSerializer):
    fundraiser_id = serializers.IntegerField(read_only=True)
    donor_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Donation
        fields = ['id', 'fundraiser_id', 'donor_id', 'amount', 'created_at']
        read_only_fields = fields


class DonateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Donation amount must be greater than 0")
        return value
