"""
DRF exception handler that wraps every error in the response envelope.
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .responses import error_body, error_code_for_status

logger = logging.getLogger(__name__)


def _first_message(detail):
    """Pick a human readable message out of a DRF error structure."""
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else 'Validation failed'
    if isinstance(detail, dict):
        if 'detail' in detail:
            return _first_message(detail['detail'])
        for field, value in detail.items():
            message = _first_message(value)
            if field == 'non_field_errors':
                return message
            return f'{field}: {message}'
        return 'Validation failed'
    return str(detail)


def envelope_exception_handler(exc, context):
    """
    Convert exceptions raised inside API views to the error envelope.

    Django ValidationError is mapped to 400 so model-level rules surface as
    validation errors. Anything DRF does not handle is logged and returned as
    a generic 500.
    """
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, 'error_dict') else exc.messages
        exc = exceptions.ValidationError(detail)

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.error(
            f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            exc_info=True
        )
        return Response(
            error_body('An unexpected error occurred.', 'INTERNAL_ERROR'),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        response.data = error_body(
            _first_message(exc.detail),
            'VALIDATION_ERROR',
            details=response.data,
        )
        return response

    if isinstance(exc, (Http404, exceptions.NotFound)):
        message = 'Not found.'
    elif isinstance(exc, DjangoPermissionDenied):
        message = 'You do not have permission to perform this action.'
    else:
        message = _first_message(getattr(exc, 'detail', response.data))

    # DRF answers 403 for unauthenticated JWT requests without a header
    status_code = response.status_code
    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        status_code = status.HTTP_401_UNAUTHORIZED
        response.status_code = status_code

    response.data = error_body(message, error_code_for_status(status_code))
    return response
