"""
Custom throttling classes for the MicroLend marketplace.
"""

from rest_framework.permissions import SAFE_METHODS
from rest_framework.throttling import UserRateThrottle


class FinancialOperationsThrottle(UserRateThrottle):
    """
    Throttle for money-adjacent operations like funding loans and donating.
    """
    scope = 'financial_operations'


class AuthOperationsThrottle(UserRateThrottle):
    """
    Throttle for authentication operations like login, register.
    """
    scope = 'auth_operations'


class WriteOperationsThrottle(UserRateThrottle):
    """
    Counts only writes; listing and reading on the same endpoint stay free.
    """

    def allow_request(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return super().allow_request(request, view)


class LoanCreationThrottle(WriteOperationsThrottle):
    """
    Throttle for loan request creation.
    """
    scope = 'loan_creation'


class OfferThrottle(WriteOperationsThrottle):
    """
    Throttle for offer submission and acceptance.
    """
    scope = 'offer_operations'
