# clinic_core/visits/admin.py
from django.contrib import admin

from clinic_core.visits.models import LabOrder, PrescriptionLine, Visit


class LabOrderInline(admin.TabularInline):
    model = LabOrder
    extra = 0
    fields = ("test_name", "price", "status", "result", "flag")


class PrescriptionLineInline(admin.TabularInline):
    model = PrescriptionLine
    extra = 0
    fields = ("name", "dosage", "quantity", "price")


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = (
        "queue_number",
        "patient_name",
        "stage",
        "priority",
        "payment_status",
        "total_bill",
        "start_time",
    )
    list_filter = ("tenant_id", "facility_id", "stage", "priority", "payment_status")
    search_fields = ("patient_name", "patient__mrn")
    # workflow-owned fields
    readonly_fields = (
        "stage",
        "stage_start_time",
        "total_bill",
        "medications_dispensed",
        "version",
        "created_at",
        "updated_at",
    )
    inlines = [LabOrderInline, PrescriptionLineInline]
    ordering = ("-start_time",)
