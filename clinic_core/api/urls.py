# clinic_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from clinic_core.audit.api.views import AuditEventViewSet
from clinic_core.inventory.api.views import InventoryItemViewSet, InventoryLogViewSet, SupplierViewSet
from clinic_core.patients.api.views import PatientViewSet
from clinic_core.pharmacy.api.views import PharmacyViewSet
from clinic_core.visits.api.views import VisitViewSet

router = DefaultRouter()

router.register(r"patients", PatientViewSet, basename="patients")
router.register(r"visits", VisitViewSet, basename="visits")
router.register(r"inventory/items", InventoryItemViewSet, basename="inventory-items")
router.register(r"inventory/logs", InventoryLogViewSet, basename="inventory-logs")
router.register(r"inventory/suppliers", SupplierViewSet, basename="inventory-suppliers")
router.register(r"pharmacy", PharmacyViewSet, basename="pharmacy")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),

    *router.urls,
]
