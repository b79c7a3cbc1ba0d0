"""
Domain errors and the project-wide DRF exception handler.

Every error leaves the API as ``{"message": "..."}`` so clients only ever
read one field. Serializer validation errors also keep their field map under
``errors``.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, AuthenticationFailed, NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class EmailAlreadyExists(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Email already exists'
    default_code = 'conflict'


class InvalidCredentials(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid email or password'
    default_code = 'invalid_credentials'


class Unauthorized(AuthenticationFailed):
    default_detail = 'Invalid token'
    default_code = 'unauthorized'


class Forbidden(PermissionDenied):
    default_detail = 'Admins only'
    default_code = 'forbidden'


class SweetNotFound(NotFound):
    default_detail = 'Sweet not found'
    default_code = 'not_found'


class InsufficientStock(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Insufficient stock'
    default_code = 'insufficient_stock'


class InvalidQuantity(ValidationError):
    default_detail = 'Invalid quantity'
    default_code = 'invalid_quantity'


def first_error_message(detail):
    """Dig the first human-readable message out of a nested error structure"""
    if isinstance(detail, dict):
        for key, value in detail.items():
            message = first_error_message(value)
            if key in ('non_field_errors', 'detail'):
                return message
            return f"{key}: {message}"
        return 'Invalid request'
    if isinstance(detail, (list, tuple)):
        return first_error_message(detail[0]) if detail else 'Invalid request'
    return str(detail)


def api_exception_handler(exc, context):
    """Render every API error as a JSON body with a ``message`` key"""
    # rest_framework.views loads the authentication classes, which import this module
    from rest_framework.views import exception_handler

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}")
        return Response({'message': 'Server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    data = response.data
    if isinstance(data, dict) and set(data) == {'detail'}:
        response.data = {'message': str(data['detail'])}
    elif isinstance(exc, ValidationError) and isinstance(data, (list, tuple)):
        response.data = {'message': first_error_message(data)}
    else:
        response.data = {'message': first_error_message(data), 'errors': data}

    if response.status_code >= 500:
        logger.error(f"API error {response.status_code}: {response.data['message']}")
    return response
