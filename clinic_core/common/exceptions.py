# clinic_core/common/exceptions.py
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException


class ClinicError(APIException):
    """
    Base for domain errors raised by services.
    Subclassing APIException lets the global handler render them in the error envelope.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed."
    default_code = "clinic_error"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)


class AuthorizationDenied(ClinicError):
    """Missing capability or unmet precondition (e.g. unpaid bill). Nothing was changed."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not authorized to perform this action."
    default_code = "authorization_denied"


class InvalidTransition(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Illegal visit stage transition."
    default_code = "invalid_transition"


class StaleVersion(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Record was modified by someone else. Reload and retry."
    default_code = "stale_version"


class StorageError(ClinicError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Could not save changes. Please retry."
    default_code = "storage_error"
