# clinic_core/common/api/exceptions.py
"""
Single error shape for every API failure:

    {"error": {"code": ..., "message": ..., "details": ..., "request_id": ...}}
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from django.core.exceptions import ObjectDoesNotExist
from django.db import DatabaseError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from clinic_core.common.exceptions import StorageError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

_CODES: tuple[tuple[type, str], ...] = (
    (drf_exceptions.ValidationError, "validation_error"),
    (drf_exceptions.NotAuthenticated, "not_authenticated"),
    (drf_exceptions.AuthenticationFailed, "not_authenticated"),
    (drf_exceptions.PermissionDenied, "permission_denied"),
    (drf_exceptions.NotFound, "not_found"),
    (Http404, "not_found"),
)


def request_id_for(request) -> str:
    if request is None:
        return uuid.uuid4().hex
    rid = getattr(request, "request_id", None)
    if not rid:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.request_id = rid
    return rid


def error_body(*, request, code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": request_id_for(request),
        }
    }


def _code_for(exc: Exception) -> str:
    for exc_type, code in _CODES:
        if isinstance(exc, exc_type):
            return code
    if isinstance(exc, drf_exceptions.APIException):
        return exc.default_code or "api_error"
    return "error"


def _split(data: Any) -> tuple[str, Any]:
    # a bare {"detail": ...} becomes the message; anything else is field details
    if isinstance(data, dict) and "detail" in data:
        rest = {k: v for k, v in data.items() if k != "detail"}
        return str(data["detail"]), rest or None
    return "Request failed.", data


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")

    if isinstance(exc, ObjectDoesNotExist):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, DatabaseError):
        logger.error("database error: %s", exc)
        exc = StorageError()

    response = drf_exception_handler(exc, context)
    if response is None:
        logger.exception("unhandled API error", exc_info=exc)
        return Response(
            error_body(request=request, code="server_error", message="Unexpected server error."),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    message, details = _split(response.data)
    if response.status_code >= 500:
        logger.warning("API %s: %s", response.status_code, message)

    return Response(
        error_body(request=request, code=_code_for(exc), message=message, details=details),
        status=response.status_code,
        headers=response.headers,
    )
