from typing import Optional, List
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.db.models import F
from .models import Fundraiser, Donation

User = get_user_model()


class FundraiserRepository:
    @staticmethod
    def create_fundraiser(owner: User, **kwargs) -> Fundraiser:
        return Fundraiser.objects.create(owner=owner, **kwargs)

    @staticmethod
    def get_fundraiser_by_id(fundraiser_id: int) -> Optional[Fundraiser]:
        try:
            return Fundraiser.objects.select_related('owner').get(id=fundraiser_id)
        except Fundraiser.DoesNotExist:
            return None

    @staticmethod
    def get_fundraisers(email: Optional[str] = None) -> List[Fundraiser]:
        fundraisers = Fundraiser.objects.select_related('owner').order_by('-created_at')
        if email:
            fundraisers = fundraisers.filter(email__iexact=email)
        return list(fundraisers)

    @staticmethod
    def add_to_raised(fundraiser_id: int, amount: Decimal) -> None:
        # F() keeps concurrent donations from overwriting each other
        Fundraiser.objects.filter(id=fundraiser_id).update(amount_raised=F('amount_raised') + amount)


class DonationRepository:
    @staticmethod
    def create_donation(fundraiser: Fundraiser, donor: Optional[User], amount: Decimal) -> Donation:
        return Donation.objects.create(fundraiser=fundraiser, donor=donor, amount=amount)
