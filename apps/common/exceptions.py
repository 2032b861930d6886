from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler


class ConflictError(APIException):
    """A change was blocked by rows that still depend on the target."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The record is still referenced by other records."
    default_code = "conflict"


class InvalidTransitionError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The requested status change is not allowed."
    default_code = "invalid_state"


class CapacityExceededError(APIException):
    """Not enough stock left in a lot or seed batch to cover the request."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Not enough stock available."
    default_code = "capacity_exceeded"


def api_exception_handler(exc, context):
    if isinstance(exc, DjangoValidationError):
        exc = DRFValidationError(detail=exc.message_dict if hasattr(exc, "error_dict") else {"detail": exc.messages})
    elif isinstance(exc, Http404):
        exc = NotFound()

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    if isinstance(detail, list):
        detail = " ".join(str(item) for item in detail)

    response.data = {
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
