from django.db import InterfaceError, OperationalError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler


class InvalidQuery(ValidationError):
    default_detail = "Invalid query parameters."
    default_code = "invalid_query"


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The record conflicts with an existing record."
    default_code = "conflict"


class StoreUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The record store is unavailable, retry later."
    default_code = "store_unavailable"


def api_exception_handler(exc, context):
    if isinstance(exc, (OperationalError, InterfaceError)):
        exc = StoreUnavailable()

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    response.data = {
        "success": False,
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
