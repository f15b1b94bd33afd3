# clinic_core/common/openapi.py
from __future__ import annotations

from drf_spectacular.openapi import AutoSchema
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter

SCOPE_PARAMETERS = (
    OpenApiParameter("X-Tenant-Id", OpenApiTypes.UUID, OpenApiParameter.HEADER, required=True),
    OpenApiParameter("X-Facility-Id", OpenApiTypes.UUID, OpenApiParameter.HEADER, required=True),
)

IDEMPOTENCY_PARAMETER = OpenApiParameter(
    "Idempotency-Key",
    OpenApiTypes.STR,
    OpenApiParameter.HEADER,
    required=False,
    description="Repeat the key to replay the first response instead of paying or dispensing twice.",
)

# ViewSet actions that honour Idempotency-Key
IDEMPOTENT_ACTIONS = {"payment", "dispense"}


class ClinicAutoSchema(AutoSchema):
    """
    Documents the scope headers on every clinic_core endpoint, plus
    Idempotency-Key where replay is supported.
    """

    def get_override_parameters(self):
        params = list(super().get_override_parameters())
        if not type(self.view).__module__.startswith("clinic_core."):
            return params

        params.extend(SCOPE_PARAMETERS)
        if getattr(self.view, "action", None) in IDEMPOTENT_ACTIONS:
            params.append(IDEMPOTENCY_PARAMETER)
        return params
