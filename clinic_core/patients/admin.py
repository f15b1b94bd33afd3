# clinic_core/patients/admin.py
from django.contrib import admin

from clinic_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("mrn", "full_name", "gender", "phone", "last_visit")
    list_filter = ("gender",)
    search_fields = ("mrn", "full_name", "phone")
    # written by visit completion only
    readonly_fields = ("history", "last_visit")
