# clinic_core/common/api/filters.py
from __future__ import annotations

from rest_framework.exceptions import ValidationError


def apply_filters(filterset_class, request, queryset):
    """
    Run a django-filter FilterSet against query params; malformed params are a 400.
    """
    filterset = filterset_class(request.query_params, queryset=queryset, request=request)
    if not filterset.is_valid():
        raise ValidationError(filterset.errors)
    return filterset.qs
