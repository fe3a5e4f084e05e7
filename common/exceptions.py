from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, Throttled, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."
GENERIC_VALIDATION_MESSAGE = "Validation failed."


def build_error_envelope(*, code: str, message: str, errors: Any, status_code: int) -> dict[str, Any]:
    """Failure body shared by every endpoint.

    ``error`` and ``message`` carry the same human-readable text; ``errors``
    holds field errors or structured details such as the available quantity.
    """
    return {
        "success": False,
        "error": message,
        "code": code,
        "message": message,
        "errors": errors,
        "status": status_code,
    }


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled API exception in %s", view.__class__.__name__ if view else "unknown")
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return Response(
            build_error_envelope(
                code="internal_server_error",
                message=GENERIC_SERVER_ERROR_MESSAGE,
                errors=None,
                status_code=status_code,
            ),
            status=status_code,
        )

    response.data = build_error_envelope(
        code=error_code(exc),
        message=error_message(exc, response.data),
        errors=error_details(exc, response.data),
        status_code=response.status_code,
    )
    return response


def error_code(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, DjangoPermissionDenied):
        return "permission_denied"
    if isinstance(exc, APIException):
        return str(exc.default_code)
    return "internal_server_error"


def error_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return _first_error_message(data) or GENERIC_VALIDATION_MESSAGE
    if isinstance(exc, Throttled):
        return "Request was throttled."

    detail = data.get("detail") if isinstance(data, Mapping) else data
    if isinstance(detail, str) and detail:
        return detail
    return str(getattr(exc, "detail", "") or GENERIC_SERVER_ERROR_MESSAGE)


def error_details(exc: Exception, data: Any) -> Any:
    # Domain errors attach structured details (available, expected/current quantity, status).
    details = getattr(exc, "details", None)
    if details:
        return details
    if isinstance(data, Mapping):
        return None if set(data) == {"detail"} else data
    if isinstance(data, Sequence) and not isinstance(data, str):
        return data
    return None


def _first_error_message(data: Any, field: str | None = None) -> str | None:
    if isinstance(data, Mapping):
        for key, value in data.items():
            label = field if key in ("detail", "non_field_errors") else str(key)
            message = _first_error_message(value, label)
            if message:
                return message
        return None

    if isinstance(data, Sequence) and not isinstance(data, str):
        for item in data:
            message = _first_error_message(item, field)
            if message:
                return message
        return None

    if data in (None, ""):
        return None
    return f"{field}: {data}" if field else str(data)
