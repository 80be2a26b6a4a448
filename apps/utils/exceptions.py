import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Stock not available').

    Subclasses pin the HTTP status and the machine-readable error code that
    the API envelope exposes to clients.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"
    default_message = "Request could not be processed."

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details
        super().__init__(self.message)


class ValidationError(BusinessLogicException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "validation_error"
    default_message = "Invalid input."


class Unauthorized(BusinessLogicException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "unauthorized"
    default_message = "Authentication credentials were not provided or are invalid."


class Forbidden(BusinessLogicException):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "forbidden"
    default_message = "You do not have permission to perform this action."


class NotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_message = "Resource not found."


class InsufficientStock(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "insufficient_stock"
    default_message = "Not enough stock to fulfil the request."


class InvalidTransition(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_transition"
    default_message = "Illegal status change."


class GenerationExhausted(BusinessLogicException):
    """Identifier minting gave up after its retry budget. Safe to retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "generation_exhausted"
    default_message = "Could not allocate an order number. Please retry."
    retry_after = 1


class InternalError(BusinessLogicException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "internal_error"
    default_message = "Internal Server Error"


# DRF exception class -> envelope code
_DRF_CODES = (
    (drf_exceptions.ValidationError, "validation_error"),
    (drf_exceptions.ParseError, "validation_error"),
    (drf_exceptions.NotAuthenticated, "unauthorized"),
    (drf_exceptions.AuthenticationFailed, "unauthorized"),
    (drf_exceptions.PermissionDenied, "forbidden"),
    (drf_exceptions.NotFound, "not_found"),
    (drf_exceptions.MethodNotAllowed, "method_not_allowed"),
    (drf_exceptions.Throttled, "throttled"),
)


def error_body(code, message, details=None):
    body = {"error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details
    return body


def _drf_message(exc):
    detail = getattr(exc, "detail", None)
    if isinstance(exc, drf_exceptions.ValidationError):
        return "Request validation failed.", detail
    if isinstance(detail, dict) and "detail" in detail:
        return str(detail["detail"]), None
    if detail is not None:
        return str(detail), None
    return str(exc), None


def custom_exception_handler(exc, context):
    # Deferred: rest_framework.views resolves DEFAULT_PERMISSION_CLASSES at import,
    # and those import this module.
    from rest_framework.views import exception_handler

    # Handle custom BusinessLogicException first
    if isinstance(exc, BusinessLogicException):
        if exc.status_code >= 500:
            logger.error("Service failure: %s", exc.message, exc_info=True)
        response = Response(
            error_body(exc.code, exc.message, exc.details),
            status=exc.status_code,
        )
        if isinstance(exc, GenerationExhausted):
            response["Retry-After"] = str(exc.retry_after)
        return response

    # Call REST framework's default exception handler (handles Http404 / PermissionDenied too)
    response = exception_handler(exc, context)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        view = context.get("view")
        logger.error(
            "Unhandled Exception in %s: %s",
            view.__class__.__name__ if view else "unknown view",
            exc,
            exc_info=True,
        )
        return Response(
            error_body(InternalError.default_code, InternalError.default_message),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = drf_exceptions.PermissionDenied()

    code = "error"
    for exc_class, mapped in _DRF_CODES:
        if isinstance(exc, exc_class):
            code = mapped
            break

    message, details = _drf_message(exc)
    response.data = error_body(code, message, details)
    return response
