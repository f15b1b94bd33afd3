# clinic_core/common/scope.py
"""
Request scope: the tenant and facility every clinic query is filtered on.

Both ids travel as headers (`X-Tenant-Id`, `X-Facility-Id`). Who may act in
which tenant is decided upstream by the identity layer; here they are only
parsed and pinned onto the request.
"""
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from rest_framework.exceptions import ValidationError

TENANT_HEADER = "X-Tenant-Id"
FACILITY_HEADER = "X-Facility-Id"

MISSING_SCOPE_MSG = f"Missing scope headers. Provide {TENANT_HEADER} and {FACILITY_HEADER}."
INVALID_SCOPE_MSG = f"Invalid scope headers. {TENANT_HEADER} and {FACILITY_HEADER} must be UUIDs."


@dataclass(frozen=True)
class Scope:
    tenant_id: UUID
    facility_id: UUID


def _header(request, name: str) -> str | None:
    value = request.headers.get(name)
    if value:
        return value.strip()
    return request.META.get("HTTP_" + name.upper().replace("-", "_")) or None


def require_scope(request) -> Scope:
    """
    Parse the scope headers once per request; later calls reuse `request.clinic_scope`.
    Raises ValidationError (400) when a header is absent or not a UUID.
    """
    cached = getattr(request, "clinic_scope", None)
    if isinstance(cached, Scope):
        return cached

    tenant_raw = _header(request, TENANT_HEADER)
    facility_raw = _header(request, FACILITY_HEADER)
    if not tenant_raw or not facility_raw:
        raise ValidationError(MISSING_SCOPE_MSG)

    try:
        scope = Scope(tenant_id=UUID(tenant_raw), facility_id=UUID(facility_raw))
    except ValueError:
        raise ValidationError(INVALID_SCOPE_MSG)

    request.clinic_scope = scope
    return scope
