"""
Django signals for cache invalidation on loan and offer writes.

Status transitions go through queryset ``update()`` calls which don't emit
signals; the services invalidate explicitly for those.
"""

import logging
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from .models import LoanRequest, Offer
from apps.common.cache_utils import LoanCache

logger = logging.getLogger('apps.loans')


@receiver(post_save, sender=LoanRequest)
def invalidate_loan_cache_on_save(sender, instance, created, **kwargs):
    """
    Keep the open loan listing current when a loan is created or edited.
    """
    LoanCache.invalidate_open_loans()

    action = "created" if created else "updated"
    logger.debug(f"Loan {instance.id} {action} - invalidated open loans cache (status: {instance.status})")


@receiver(post_delete, sender=LoanRequest)
def invalidate_loan_cache_on_delete(sender, instance, **kwargs):
    LoanCache.invalidate_open_loans()
    logger.debug(f"Loan {instance.id} deleted - invalidated open loans cache")


@receiver(post_save, sender=Offer)
def invalidate_loan_cache_on_offer_change(sender, instance, created, **kwargs):
    """
    Open loans are listed with their lock state, which depends on offers.
    """
    LoanCache.invalidate_open_loans()

    action = "created" if created else "updated"
    logger.debug(f"Offer {instance.id} {action} for loan {instance.loan_id}")
