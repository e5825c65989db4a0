"""
Response envelope helpers.

Success: {"success": true, "data": ..., "pagination": {...}}
Failure: {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""

from rest_framework import status
from rest_framework.response import Response


ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: 'VALIDATION_ERROR',
    status.HTTP_401_UNAUTHORIZED: 'UNAUTHORIZED',
    status.HTTP_403_FORBIDDEN: 'FORBIDDEN',
    status.HTTP_404_NOT_FOUND: 'NOT_FOUND',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'METHOD_NOT_ALLOWED',
    status.HTTP_409_CONFLICT: 'CONFLICT',
    status.HTTP_429_TOO_MANY_REQUESTS: 'RATE_LIMIT_EXCEEDED',
    status.HTTP_500_INTERNAL_SERVER_ERROR: 'INTERNAL_ERROR',
    status.HTTP_502_BAD_GATEWAY: 'PAYMENT_GATEWAY_ERROR',
    status.HTTP_503_SERVICE_UNAVAILABLE: 'SERVICE_UNAVAILABLE',
}


def error_code_for_status(status_code):
    if status_code in ERROR_CODES:
        return ERROR_CODES[status_code]
    return 'INTERNAL_ERROR' if status_code >= 500 else 'VALIDATION_ERROR'


def error_body(message, code, details=None):
    error = {'code': code, 'message': str(message)}
    if details is not None:
        error['details'] = details
    return {'success': False, 'error': error}


def success_response(data=None, status_code=status.HTTP_200_OK, pagination=None, headers=None):
    body = {'success': True, 'data': data}
    if pagination is not None:
        body['pagination'] = pagination
    return Response(body, status=status_code, headers=headers)


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST, code=None, details=None):
    return Response(
        error_body(message, code or error_code_for_status(status_code), details),
        status=status_code,
    )


def validation_error_response(message='Validation failed', details=None):
    return error_response(message, status.HTTP_400_BAD_REQUEST, details=details)


def unauthorized_response(message='Authentication credentials were not provided.'):
    return error_response(message, status.HTTP_401_UNAUTHORIZED)


def forbidden_response(message='You do not have permission to perform this action.'):
    return error_response(message, status.HTTP_403_FORBIDDEN)


def not_found_response(message='Not found.'):
    return error_response(message, status.HTTP_404_NOT_FOUND)


def conflict_response(message, details=None):
    return error_response(message, status.HTTP_409_CONFLICT, details=details)
