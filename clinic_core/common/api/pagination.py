# clinic_core/common/api/pagination.py
from __future__ import annotations

from django.conf import settings
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class ClinicPagination(PageNumberPagination):
    """
    `?page=` / `?page_size=`; the default size comes from CLINIC_PAGE_SIZE.
    """
    page_size_query_param = "page_size"
    max_page_size = 200

    def get_page_size(self, request):
        self.page_size = getattr(settings, "CLINIC_PAGE_SIZE", 20)
        return super().get_page_size(request)


def paginate(request, queryset, serializer_class) -> Response:
    """
    List endpoints answer {count, next, previous, results}.
    """
    paginator = ClinicPagination()
    page = paginator.paginate_queryset(queryset, request)
    return paginator.get_paginated_response(serializer_class(page, many=True).data)
