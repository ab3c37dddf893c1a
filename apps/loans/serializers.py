from django.conf import settings
from rest_framework import serializers
from drf_spectacular.utils import extend_schema_field
from drf_spectacular.openapi import OpenApiTypes
from .models import LoanRequest, Offer
from . import lifecycle


def _display_name(user):
    return user.get_full_name() or user.username


class OfferSerializer(serializers.ModelSerializer):
    """
    Offer as seen by the comparison screen.

    ``selectable`` and ``loan_locked`` are computed against the offers passed
    in the serializer context (``offers``), or the loan's own offers.
    """
    loan_id = serializers.IntegerField(read_only=True)
    loan_status = serializers.CharField(source='loan.status', read_only=True)
    loan_amount = serializers.DecimalField(source='loan.amount', max_digits=12, decimal_places=2, read_only=True)
    purpose = serializers.CharField(source='loan.purpose', read_only=True)
    term_months = serializers.IntegerField(source='loan.term_months', read_only=True)
    borrower_id = serializers.IntegerField(source='loan.requester_id', read_only=True)
    donor_id = serializers.IntegerField(read_only=True)
    donor_name = serializers.SerializerMethodField()
    donor_email = serializers.EmailField(source='donor.email', read_only=True)
    monthly_payment = serializers.SerializerMethodField()
    total_repayment = serializers.SerializerMethodField()
    loan_locked = serializers.SerializerMethodField()
    selectable = serializers.SerializerMethodField()

    class Meta:
        model = Offer
        fields = [
            'id', 'loan_id', 'loan_status', 'loan_amount', 'purpose', 'term_months',
            'borrower_id', 'donor_id', 'donor_name', 'donor_email', 'amount',
            'interest_rate', 'message', 'status', 'monthly_payment', 'total_repayment',
            'loan_locked', 'selectable', 'created_at', 'accepted_at'
        ]
        read_only_fields = fields

    def _snapshot(self, obj):
        offers = self.context.get('offers')
        if offers is None:
            offers = obj.loan.offers.all()
        return offers

    @extend_schema_field(OpenApiTypes.STR)
    def get_donor_name(self, obj):
        return _display_name(obj.donor)

    @extend_schema_field(OpenApiTypes.DECIMAL)
    def get_monthly_payment(self, obj):
        return str(obj.monthly_payment)

    @extend_schema_field(OpenApiTypes.DECIMAL)
    def get_total_repayment(self, obj):
        return str(obj.total_repayment)

    @extend_schema_field(OpenApiTypes.BOOL)
    def get_loan_locked(self, obj):
        return lifecycle.is_loan_locked(obj.loan_id, self._snapshot(obj), loan_status=obj.loan.status)

    @extend_schema_field(OpenApiTypes.BOOL)
    def get_selectable(self, obj):
        return lifecycle.can_select(obj, self._snapshot(obj), loan_status=obj.loan.status)


class LoanSerializer(serializers.ModelSerializer):
    requester_id = serializers.IntegerField(read_only=True)
    requester_name = serializers.SerializerMethodField()
    requester_email = serializers.EmailField(source='requester.email', read_only=True)
    is_locked = serializers.SerializerMethodField()
    repayment_due_date = serializers.DateField(read_only=True)

    class Meta:
        model = LoanRequest
        fields = [
            'id', 'requester_id', 'requester_name', 'requester_email', 'amount',
            'purpose', 'term_months', 'description', 'status', 'is_locked',
            'funded_at', 'completed_at', 'repayment_due_date', 'requested_at', 'updated_at'
        ]
        read_only_fields = fields

    @extend_schema_field(OpenApiTypes.STR)
    def get_requester_name(self, obj):
        return _display_name(obj.requester)

    @extend_schema_field(OpenApiTypes.BOOL)
    def get_is_locked(self, obj):
        return obj.is_locked


class LoanWithOffersSerializer(LoanSerializer):
    offers = serializers.SerializerMethodField()

    class Meta(LoanSerializer.Meta):
        fields = LoanSerializer.Meta.fields + ['offers']
        read_only_fields = fields

    @extend_schema_field(OfferSerializer(many=True))
    def get_offers(self, obj):
        offers = list(obj.offers.all())
        return OfferSerializer(offers, many=True, context={'offers': offers}).data


class CreateLoanSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    purpose = serializers.CharField(max_length=100)
    term_months = serializers.IntegerField()
    description = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Loan amount must be greater than 0")
        return value

    def validate_term_months(self, value):
        if not 1 <= value <= settings.LOAN_MAX_TERM_MONTHS:
            raise serializers.ValidationError(
                f"Term must be between 1 and {settings.LOAN_MAX_TERM_MONTHS} months"
            )
        return value

    def validate_purpose(self, value):
        if len(value.strip()) < 3:
            raise serializers.ValidationError("Please add a few more details")
        return value.strip()


class UpdateLoanStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        lifecycle.LOAN_CANCELLED, lifecycle.LOAN_COMPLETED,
        lifecycle.LOAN_REJECTED, lifecycle.LOAN_FUNDED,
    ])


class CreateOfferSerializer(serializers.Serializer):
    loan_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    interest_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    message = serializers.CharField(required=False, allow_blank=True, default='')
