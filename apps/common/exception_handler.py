"""
Custom exception handler for DRF that provides structured error responses.
"""

from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import exceptions, status
import logging

from .exceptions import LendingPlatformError

logger = logging.getLogger('apps.common')


def _error_envelope(error_code, kind, message, details=None):
    return {
        'success': False,
        'error_code': error_code,
        'kind': kind,
        'message': message,
        'details': details,
    }


def custom_exception_handler(exc, context):
    """
    Custom exception handler that returns structured JSON responses.
    """
    request = context.get('request')

    # Our own errors are plain exceptions, DRF's default handler ignores them
    if isinstance(exc, LendingPlatformError):
        user = getattr(request, 'user', None)
        logger.warning(
            f"LendingPlatformError: {exc.error_code}",
            extra={
                'error_code': exc.error_code,
                'kind': exc.kind,
                'error_message': str(exc.message),
                'user_id': getattr(user, 'id', None),
                'path': request.path if request else None,
                'method': request.method if request else None,
            }
        )
        return Response(
            _error_envelope(exc.error_code, exc.kind, str(exc.message), exc.details),
            status=exc.status_code,
        )

    # Call REST framework's default exception handler for everything else
    response = exception_handler(exc, context)
    if response is None:
        return None

    error_message = None
    error_code = "VALIDATION_ERROR"
    kind = "validation"

    if isinstance(exc, exceptions.NotFound) or response.status_code == status.HTTP_404_NOT_FOUND:
        error_code, kind = "NOT_FOUND", "not_found"
    elif isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed, exceptions.PermissionDenied)):
        error_code, kind = "PERMISSION_DENIED", "permission"
    elif isinstance(exc, exceptions.Throttled):
        error_code, kind = "THROTTLED", "throttled"

    if isinstance(response.data, dict):
        if 'detail' in response.data:
            error_message = response.data['detail']
        elif 'non_field_errors' in response.data:
            error_message = response.data['non_field_errors'][0] if response.data['non_field_errors'] else "Validation error"
        else:
            # Field validation errors
            error_message = "Validation failed"

    response.data = _error_envelope(
        error_code, kind, str(error_message or "An error occurred"), response.data
    )
    return response


def log_financial_operation(operation_type, user_id, amount, reference_id=None, details=None):
    """
    Helper function to log financial operations with structured data.
    """
    financial_logger = logging.getLogger('apps.financial')

    log_data = {
        'operation_type': operation_type,
        'user_id': user_id,
        'amount': float(amount) if amount else None,
        'reference_id': reference_id,
        'details': details or {}
    }

    financial_logger.info(
        f"Financial operation: {operation_type}",
        extra=log_data
    )
