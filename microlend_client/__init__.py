"""
Python client for the MicroLend marketplace API and the view models the
borrower and donor screens are built on.
"""

from .api import LendingAPIClient
from .views import BidSubmissionView, ComparisonView, StatusView, HistoryView

__all__ = ['LendingAPIClient', 'BidSubmissionView', 'ComparisonView', 'StatusView', 'HistoryView']
