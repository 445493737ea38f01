"""
Error envelope and domain exceptions.

Every error leaves the API as ``{"success": false, "message", "code"}``;
validation failures also carry ``errors`` keyed by field.
"""
import logging

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ClinicContextMissing(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Clinic context is required. Please select a clinic.'
    default_code = 'CLINIC_CONTEXT_MISSING'


class InvalidClinicId(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid clinic ID format.'
    default_code = 'INVALID_CLINIC_ID'


class ClinicNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Clinic not found or inactive.'
    default_code = 'CLINIC_NOT_FOUND'


class ClinicAccessDenied(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have access to this clinic.'
    default_code = 'CLINIC_ACCESS_DENIED'


class ClinicContextRequired(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Clinic context required.'
    default_code = 'CLINIC_CONTEXT_REQUIRED'


class InsufficientPermissions(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Insufficient permissions for this clinic.'
    default_code = 'INSUFFICIENT_PERMISSIONS'


class InsufficientRole(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Insufficient role for this action.'
    default_code = 'INSUFFICIENT_ROLE'


class AdminAccessRequired(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Admin access required for this clinic.'
    default_code = 'ADMIN_ACCESS_REQUIRED'


class InvalidTransition(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid status transition.'
    default_code = 'INVALID_TRANSITION'


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists.'
    default_code = 'CONFLICT'


class AINotConfigured(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'AI service is not configured.'
    default_code = 'AI_NOT_CONFIGURED'


class AITimeout(APIException):
    status_code = status.HTTP_408_REQUEST_TIMEOUT
    default_detail = 'AI analysis timed out. Please try again with a smaller file.'
    default_code = 'AI_TIMEOUT'


class AIEmptyResult(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = 'AI service returned an empty response.'
    default_code = 'AI_EMPTY_RESULT'


class AIUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'AI service is temporarily unavailable.'
    default_code = 'AI_UNAVAILABLE'


_STATUS_CODES = {
    400: 'BAD_REQUEST',
    401: 'AUTH_REQUIRED',
    403: 'PERMISSION_DENIED',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    409: 'CONFLICT',
    429: 'THROTTLED',
}


def _error_code(exc, status_code: int) -> str:
    if isinstance(exc, NotAuthenticated):
        return 'AUTH_REQUIRED'
    if isinstance(exc, APIException):
        code = getattr(exc.detail, 'code', None) or exc.default_code
        return str(code).upper()
    if isinstance(exc, Http404):
        return 'NOT_FOUND'
    return _STATUS_CODES.get(status_code, 'API_ERROR')


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('Unhandled error in %s', type(view).__name__ if view else 'view')
        return Response(
            {'success': False, 'message': 'Internal server error', 'code': 'server_error'},
            status=500,
        )

    if isinstance(exc, ValidationError):
        errors = resp.data if isinstance(resp.data, dict) else {'non_field_errors': resp.data}
        body = {'success': False, 'message': 'Validation failed', 'code': 'VALIDATION_ERROR', 'errors': errors}
    else:
        detail = resp.data.get('detail', resp.data) if isinstance(resp.data, dict) else resp.data
        body = {'success': False, 'message': str(detail), 'code': _error_code(exc, resp.status_code)}
    resp.data = body
    return resp
