"""
Celery tasks for loan reporting.
"""

import logging
from typing import Dict, Any
from celery import shared_task
from django.db.models import Count
from django.utils import timezone
from .models import LoanRequest, Offer
from . import lifecycle

logger = logging.getLogger('apps.loans')


@shared_task(bind=True)
def loan_status_summary_report(self) -> Dict[str, Any]:
    """
    Daily task to summarise loan and offer statuses.

    Also flags any loan holding more than one accepted offer, which the
    database constraint should make impossible.
    """
    task_id = self.request.id
    logger.info(f"Starting loan status summary report task {task_id}")

    loan_counts = {loan_status: 0 for loan_status in lifecycle.LOAN_STATUSES}
    for row in LoanRequest.objects.order_by().values('status').annotate(total=Count('id')):
        loan_counts[row['status']] = row['total']

    offer_counts = {offer_status: 0 for offer_status in lifecycle.OFFER_STATUSES}
    for row in Offer.objects.order_by().values('status').annotate(total=Count('id')):
        offer_counts[row['status']] = row['total']

    double_accepted = list(
        Offer.objects.filter(status=lifecycle.OFFER_ACCEPTED).order_by()
        .values('loan_id').annotate(total=Count('id')).filter(total__gt=1)
        .values_list('loan_id', flat=True)
    )
    if double_accepted:
        logger.error(f"Loans with more than one accepted offer: {double_accepted}")

    total_loans = sum(loan_counts.values())
    total_offers = sum(offer_counts.values())
    undecided = loan_counts[lifecycle.LOAN_PENDING]
    acceptance_rate = ((total_loans - undecided) / total_loans * 100) if total_loans > 0 else 0
    completion_rate = (loan_counts[lifecycle.LOAN_COMPLETED] / total_loans * 100) if total_loans > 0 else 0

    report = {
        'task_id': task_id,
        'status': 'completed',
        'timestamp': timezone.now().isoformat(),
        'loan_status_counts': loan_counts,
        'offer_status_counts': offer_counts,
        'loans_with_multiple_accepted_offers': double_accepted,
        'metrics': {
            'total_loans': total_loans,
            'total_offers': total_offers,
            'loan_decision_rate': round(acceptance_rate, 2),
            'loan_completion_rate': round(completion_rate, 2),
        }
    }

    logger.info(f"Loan status summary report completed: {report['metrics']}")
    return report
