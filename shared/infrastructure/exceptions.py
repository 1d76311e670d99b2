"""Project-wide DRF exception handling.

Every error response leaves the API in one envelope::

    {"error": {"status": 400, "code": "invalid", "message": "...", "details": {...}}}

``details`` keeps DRF's original payload (field errors etc.) so clients
can still highlight individual fields.
"""

from __future__ import annotations

import structlog
from rest_framework import status  # type: ignore
from rest_framework.exceptions import APIException  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

logger = structlog.get_logger(__name__)


class ConflictError(APIException):
    """The request is valid but clashes with the current resource state."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "conflict"


class PaymentProviderError(APIException):
    """The payment provider rejected or could not process a call."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "The payment provider is unavailable. Try again later."
    default_code = "payment_provider_error"


def _first_message(data) -> str:
    if isinstance(data, dict):
        if "detail" in data:
            return str(data["detail"])
        for key, value in data.items():
            message = _first_message(value)
            if message:
                return message if key == "non_field_errors" else f"{key}: {message}"
        return ""
    if isinstance(data, (list, tuple)):
        return _first_message(data[0]) if data else ""
    return str(data)


def _error_code(exc, response) -> str:
    codes = exc.get_codes() if isinstance(exc, APIException) else None
    if isinstance(codes, str):
        return codes
    if isinstance(codes, dict) and "detail" in codes and isinstance(codes["detail"], str):
        return codes["detail"]
    if response.status_code == status.HTTP_400_BAD_REQUEST:
        return "invalid"
    return "error"


def dokkerr_exception_handler(exc, context):
    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.error(
            "api.unhandled_exception",
            view=view.__class__.__name__ if view else None,
            error=str(exc),
            exc_info=exc,
        )
        return Response(
            {
                "error": {
                    "status": status.HTTP_500_INTERNAL_SERVER_ERROR,
                    "code": "server_error",
                    "message": "Internal server error.",
                    "details": {},
                }
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    details = response.data
    response.data = {
        "error": {
            "status": response.status_code,
            "code": _error_code(exc, response),
            "message": _first_message(details),
            "details": details,
        }
    }
    return response
