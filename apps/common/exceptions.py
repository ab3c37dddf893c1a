"""
Domain-specific exceptions for the MicroLend marketplace.

Every error carries a ``kind`` that clients use to decide how to recover:
``validation``, ``not_found``, ``conflict``, ``state``, ``permission`` or
``transport``.
"""

from rest_framework import status


class LendingPlatformError(Exception):
    """Base exception for all marketplace errors."""
    default_message = "An error occurred in the lending platform"
    error_code = "PLATFORM_ERROR"
    kind = "unknown"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=None, error_code=None, details=None):
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(LendingPlatformError):
    """Raised for malformed or out-of-range input."""
    default_message = "The submitted data is invalid"
    error_code = "VALIDATION_ERROR"
    kind = "validation"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(LendingPlatformError):
    """Raised when a referenced record no longer exists."""
    default_message = "The requested record was not found"
    error_code = "NOT_FOUND"
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class LoanNotFoundError(NotFoundError):
    default_message = "The requested loan was not found"
    error_code = "LOAN_NOT_FOUND"


class LoanNotOpenError(NotFoundError):
    """Raised when an offer targets a loan that is no longer pending."""
    default_message = "This loan is not open for offers"
    error_code = "LOAN_NOT_OPEN"
    status_code = status.HTTP_409_CONFLICT


class OfferNotFoundError(NotFoundError):
    default_message = "The requested offer was not found"
    error_code = "OFFER_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    default_message = "User not found"
    error_code = "USER_NOT_FOUND"


class FundraiserNotFoundError(NotFoundError):
    default_message = "The requested fundraiser was not found"
    error_code = "FUNDRAISER_NOT_FOUND"


class VerificationRequestNotFoundError(NotFoundError):
    default_message = "The requested verification request was not found"
    error_code = "VERIFICATION_REQUEST_NOT_FOUND"


class ConflictError(LendingPlatformError):
    """Raised when another actor changed the record first."""
    default_message = "This record was changed by another request"
    error_code = "CONFLICT"
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class LoanLockedError(ConflictError):
    """Raised when a loan already has an accepted offer or left pending."""
    default_message = "This loan already has an accepted offer"
    error_code = "LOAN_LOCKED"


class StateError(LendingPlatformError):
    """Raised for an illegal status transition."""
    default_message = "Cannot perform this operation in the current state"
    error_code = "INVALID_STATE"
    kind = "state"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class OfferStateError(StateError):
    default_message = "This offer has already been resolved"
    error_code = "INVALID_OFFER_STATE"


class InvalidLoanStateError(StateError):
    default_message = "Cannot perform this operation on the loan in its current state"
    error_code = "INVALID_LOAN_STATE"


class InvalidVerificationStateError(StateError):
    default_message = "Cannot perform this operation on the verification in its current state"
    error_code = "INVALID_VERIFICATION_STATE"


class RolePermissionError(LendingPlatformError):
    """Raised when user's role doesn't allow the operation."""
    default_message = "Your role does not allow this operation"
    error_code = "ROLE_PERMISSION_ERROR"
    kind = "permission"
    status_code = status.HTTP_403_FORBIDDEN


class UnauthorizedLoanAccessError(RolePermissionError):
    """Raised when user tries to act on a loan they don't own."""
    default_message = "You are not authorized to access this loan"
    error_code = "UNAUTHORIZED_LOAN_ACCESS"


class TransportError(LendingPlatformError):
    """Raised by the API client when the server could not be reached."""
    default_message = "Could not reach the lending service"
    error_code = "TRANSPORT_ERROR"
    kind = "transport"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


ERRORS_BY_KIND = {
    'validation': ValidationError,
    'not_found': NotFoundError,
    'conflict': ConflictError,
    'state': StateError,
    'permission': RolePermissionError,
    'transport': TransportError,
}

ERRORS_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ValidationError,
    status.HTTP_401_UNAUTHORIZED: RolePermissionError,
    status.HTTP_403_FORBIDDEN: RolePermissionError,
    status.HTTP_404_NOT_FOUND: NotFoundError,
    status.HTTP_409_CONFLICT: ConflictError,
    status.HTTP_422_UNPROCESSABLE_ENTITY: StateError,
}


def error_from_response(status_code, payload):
    """
    Rebuild a platform exception from an error envelope returned by the API.

    ``kind`` decides the class; the HTTP status is only a fallback for
    responses that did not come through the platform's exception handler.
    """
    payload = payload if isinstance(payload, dict) else {}
    error_class = ERRORS_BY_KIND.get(payload.get('kind')) or ERRORS_BY_STATUS.get(status_code, LendingPlatformError)
    message = payload.get('message') or payload.get('error') or payload.get('detail')
    error = error_class(message, error_code=payload.get('error_code'), details=payload.get('details'))
    error.status_code = status_code
    return error
