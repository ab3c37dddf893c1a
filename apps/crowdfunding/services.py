from typing import Optional, Dict, Any, List
from decimal import Decimal, InvalidOperation
import logging
from django.db import transaction
from django.contrib.auth import get_user_model
from .repositories import FundraiserRepository, DonationRepository
from .models import Fundraiser, Donation
from apps.common.cache_utils import FundraiserCache
from apps.common.exception_handler import log_financial_operation
from apps.common.exceptions import ValidationError, FundraiserNotFoundError

User = get_user_model()
logger = logging.getLogger('apps.crowdfunding')


class FundraiserService:
    def __init__(self):
        self.fundraiser_repo = FundraiserRepository()
        self.donation_repo = DonationRepository()

    def create_fundraiser(self, owner: User, data: Dict[str, Any]) -> Fundraiser:
        if not data.get('terms_agreed'):
            raise ValidationError("You must agree to the terms",
                                  details={'terms_agreed': ["You must agree to the terms"]})

        fundraiser = self.fundraiser_repo.create_fundraiser(owner=owner, **data)
        logger.info(
            f"Fundraiser {fundraiser.id} created by user {owner.id}",
            extra={'fundraiser_id': fundraiser.id, 'user_id': owner.id, 'purpose': fundraiser.purpose}
        )
        FundraiserCache.invalidate_fundraisers()
        return fundraiser

    def list_fundraisers(self, email: Optional[str] = None) -> List[Fundraiser]:
        if email:
            return self.fundraiser_repo.get_fundraisers(email)

        cached = FundraiserCache.get_fundraisers()
        if cached is not None:
            logger.debug("Retrieved fundraisers from cache")
            return cached

        fundraisers = self.fundraiser_repo.get_fundraisers()
        FundraiserCache.set_fundraisers(fundraisers)
        return fundraisers

    def get_fundraiser(self, fundraiser_id: int) -> Fundraiser:
        fundraiser = self.fundraiser_repo.get_fundraiser_by_id(fundraiser_id)
        if not fundraiser:
            raise FundraiserNotFoundError()
        return fundraiser

    def donate(self, fundraiser_id: int, donor: User, amount) -> Dict[str, Any]:
        """
        Record a simulated donation.

        No money moves: the donation row is stored, the campaign total is
        raised and the operation is written to the financial log.
        """
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Donation amount must be a number", details={'amount': ["Must be a number"]})
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Donation amount must be greater than 0",
                                  details={'amount': ["Must be greater than 0"]})

        with transaction.atomic():
            fundraiser = self.get_fundraiser(fundraiser_id)
            donation = self.donation_repo.create_donation(fundraiser, donor, amount)
            self.fundraiser_repo.add_to_raised(fundraiser.id, amount)

        log_financial_operation(
            operation_type='DONATION',
            user_id=donor.id,
            amount=amount,
            reference_id=f'fundraiser_{fundraiser.id}',
            details={'donation_id': donation.id, 'currency': fundraiser.currency, 'simulated': True}
        )
        FundraiserCache.invalidate_fundraisers()

        return {
            'donation': donation,
            'fundraiser': self.get_fundraiser(fundraiser.id),
        }

    def get_donations(self, fundraiser_id: int) -> List[Donation]:
        return list(self.get_fundraiser(fundraiser_id).donations.select_related('donor'))
