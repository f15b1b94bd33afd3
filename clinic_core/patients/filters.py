# clinic_core/patients/filters.py
import django_filters
from django.db.models import Q

from clinic_core.patients.models import Gender, Patient


class PatientFilter(django_filters.FilterSet):
    q = django_filters.CharFilter(method="filter_q")
    gender = django_filters.ChoiceFilter(choices=Gender.choices)
    visited_since = django_filters.IsoDateTimeFilter(field_name="last_visit", lookup_expr="gte")

    class Meta:
        model = Patient
        fields = ["gender"]

    def filter_q(self, queryset, name, value):
        term = value.strip()
        if not term:
            return queryset
        return queryset.filter(
            Q(full_name__icontains=term) | Q(mrn__iexact=term) | Q(phone__contains=term)
        )
