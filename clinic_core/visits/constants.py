# clinic_core/visits/constants.py
from django.db import models


class VisitStage(models.TextChoices):
    CHECK_IN = "CHECK_IN", "Check-In"
    VITALS = "VITALS", "Vitals"
    CONSULTATION = "CONSULTATION", "Consultation"
    LAB = "LAB", "Lab"
    BILLING = "BILLING", "Billing"
    PHARMACY = "PHARMACY", "Pharmacy"
    CLEARANCE = "CLEARANCE", "Clearance"
    COMPLETED = "COMPLETED", "Completed"


# Clinical order; index = rank
STAGE_ORDER = (
    VisitStage.CHECK_IN,
    VisitStage.VITALS,
    VisitStage.CONSULTATION,
    VisitStage.LAB,
    VisitStage.BILLING,
    VisitStage.PHARMACY,
    VisitStage.CLEARANCE,
    VisitStage.COMPLETED,
)


class VisitPriority(models.TextChoices):
    NORMAL = "NORMAL", "Normal"
    URGENT = "URGENT", "Urgent"
    EMERGENCY = "EMERGENCY", "Emergency"


# Queue board: higher first
PRIORITY_RANK = {
    VisitPriority.EMERGENCY: 0,
    VisitPriority.URGENT: 1,
    VisitPriority.NORMAL: 2,
}


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"


class LabOrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    COMPLETED = "COMPLETED", "Completed"


class LabResultFlag(models.TextChoices):
    NORMAL = "NORMAL", "Normal"
    HIGH = "HIGH", "High"
    LOW = "LOW", "Low"
    CRITICAL = "CRITICAL", "Critical"
