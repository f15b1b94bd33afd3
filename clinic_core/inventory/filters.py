# clinic_core/inventory/filters.py
from __future__ import annotations

import django_filters
from django.db.models import Q

from clinic_core.inventory.models import InventoryAction, InventoryItem, InventoryLog, ItemCategory


class InventoryItemFilter(django_filters.FilterSet):
    q = django_filters.CharFilter(method="filter_q")
    category = django_filters.ChoiceFilter(choices=ItemCategory.choices)
    supplier = django_filters.UUIDFilter(field_name="supplier_id")
    expires_before = django_filters.DateFilter(field_name="expiry_date", lookup_expr="lte")

    class Meta:
        model = InventoryItem
        fields = ["category", "supplier"]

    def filter_q(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(batch_number__icontains=value))


class InventoryLogFilter(django_filters.FilterSet):
    item = django_filters.UUIDFilter(field_name="item_id")
    action = django_filters.ChoiceFilter(choices=InventoryAction.choices)
    since = django_filters.IsoDateTimeFilter(field_name="timestamp", lookup_expr="gte")
    until = django_filters.IsoDateTimeFilter(field_name="timestamp", lookup_expr="lte")

    class Meta:
        model = InventoryLog
        fields = ["item", "action"]
