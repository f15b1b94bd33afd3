# clinic_core/common/permissions.py

from __future__ import annotations

from typing import Dict, FrozenSet, Set

from rest_framework.permissions import BasePermission, SAFE_METHODS

from clinic_core.common.scope import require_scope

# Group/role names (Django auth Group names)
ROLE_ADMIN = "ADMIN"
ROLE_DOCTOR = "DOCTOR"
ROLE_NURSE = "NURSE"
ROLE_RECEPTION = "RECEPTION"
ROLE_LAB = "LAB"
ROLE_PHARMACIST = "PHARMACIST"
ROLE_ACCOUNTANT = "ACCOUNTANT"
ROLE_READONLY = "READONLY"

ALL_ROLES = (
    ROLE_ADMIN,
    ROLE_DOCTOR,
    ROLE_NURSE,
    ROLE_RECEPTION,
    ROLE_LAB,
    ROLE_PHARMACIST,
    ROLE_ACCOUNTANT,
    ROLE_READONLY,
)

# Capabilities
PATIENTS_VIEW = "patients.view"
PATIENTS_CREATE = "patients.create"
PATIENTS_EDIT = "patients.edit"
VISITS_VIEW = "visits.view"
VISITS_CREATE = "visits.create"
VISITS_EDIT = "visits.edit"
VISITS_COMPLETE = "visits.complete"
INVENTORY_VIEW = "inventory.view"
INVENTORY_CREATE = "inventory.create"
INVENTORY_EDIT = "inventory.edit"
INVENTORY_ADJUST = "inventory.adjust"
INVENTORY_DELETE = "inventory.delete"
PHARMACY_VIEW = "pharmacy.view"
PHARMACY_DISPENSE = "pharmacy.dispense"
BILLING_VIEW = "billing.view"
BILLING_MANAGE = "billing.manage"
AUDIT_VIEW = "audit.view"

CAPABILITY_MATRIX: Dict[str, FrozenSet[str]] = {
    ROLE_ADMIN: frozenset({
        "patients.*",
        "visits.*",
        "inventory.*",
        "pharmacy.*",
        "billing.*",
        "audit.*",
    }),
    ROLE_DOCTOR: frozenset({
        PATIENTS_VIEW, PATIENTS_CREATE, PATIENTS_EDIT,
        VISITS_VIEW, VISITS_CREATE, VISITS_EDIT, VISITS_COMPLETE,
        INVENTORY_VIEW,
        PHARMACY_VIEW, PHARMACY_DISPENSE,
    }),
    ROLE_NURSE: frozenset({
        PATIENTS_VIEW, PATIENTS_CREATE, PATIENTS_EDIT,
        VISITS_VIEW, VISITS_CREATE, VISITS_EDIT,
        INVENTORY_VIEW,
    }),
    ROLE_RECEPTION: frozenset({
        PATIENTS_VIEW, PATIENTS_CREATE, PATIENTS_EDIT,
        VISITS_VIEW, VISITS_CREATE,
        BILLING_VIEW,
    }),
    ROLE_LAB: frozenset({
        PATIENTS_VIEW,
        VISITS_VIEW, VISITS_EDIT,
        INVENTORY_VIEW,
    }),
    ROLE_PHARMACIST: frozenset({
        PATIENTS_VIEW,
        VISITS_VIEW,
        INVENTORY_VIEW, INVENTORY_CREATE, INVENTORY_EDIT, INVENTORY_ADJUST,
        PHARMACY_VIEW, PHARMACY_DISPENSE,
    }),
    ROLE_ACCOUNTANT: frozenset({
        PATIENTS_VIEW,
        VISITS_VIEW, VISITS_COMPLETE,
        INVENTORY_VIEW,
        BILLING_VIEW, BILLING_MANAGE,
    }),
    ROLE_READONLY: frozenset({
        PATIENTS_VIEW,
        VISITS_VIEW,
        INVENTORY_VIEW,
        PHARMACY_VIEW,
        BILLING_VIEW,
    }),
}


def _user_roles(user) -> Set[str]:
    """
    Resolve roles from:
    1) Django groups: user.groups
    2) Optional user.role attribute

    Authenticated users without roles are treated as READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(name.upper() for name in user.groups.values_list("name", flat=True))

    if getattr(user, "role", None):
        roles.add(str(user.role).upper())

    if not roles:
        roles.add(ROLE_READONLY)

    return roles


def _grants(granted: str, capability: str) -> bool:
    if granted == capability:
        return True
    if granted.endswith(".*"):
        return capability.startswith(granted[:-1])
    return False


def user_has_capability(user, capability: str) -> bool:
    """
    The single authorization predicate used by services and views.
    """
    for role in _user_roles(user):
        for granted in CAPABILITY_MATRIX.get(role, ()):
            if _grants(granted, capability):
                return True
    return False


class BaseCapabilityPermission(BasePermission):
    """
    Maps each ViewSet action to one capability.

    - Scope headers must be present and valid (400 envelope otherwise).
    - Unknown SAFE actions fall back to list/retrieve.
    - Unknown unsafe actions are denied.
    """
    message = "You do not have permission to perform this action."

    capability_per_action: Dict[str, str] = {}

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        require_scope(request)

        action = self._infer_action(request, view)
        capability = self.capability_per_action.get(action)

        if capability is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            read_action = "retrieve" if ("pk" in kwargs or "id" in kwargs) else "list"
            capability = self.capability_per_action.get(read_action)

        if capability is None:
            return False

        return user_has_capability(user, capability)

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


class PatientPermission(BaseCapabilityPermission):
    capability_per_action = {
        "list": PATIENTS_VIEW,
        "retrieve": PATIENTS_VIEW,
        "create": PATIENTS_CREATE,
        "partial_update": PATIENTS_EDIT,
    }


class VisitPermission(BaseCapabilityPermission):
    """
    `transition` only needs visits.view here; the view then checks the
    capability for the requested stage (billing.manage, visits.complete or
    visits.edit).
    """
    capability_per_action = {
        "list": VISITS_VIEW,
        "retrieve": VISITS_VIEW,
        "create": VISITS_CREATE,
        "queue": VISITS_VIEW,
        "timeline": VISITS_VIEW,
        "bill": VISITS_VIEW,
        "transition": VISITS_VIEW,
        "details": VISITS_EDIT,
        "vitals": VISITS_EDIT,
        "consultation": VISITS_EDIT,
        "lab_orders": VISITS_EDIT,
        "lab_order_result": VISITS_EDIT,
        "lab_order_remove": VISITS_EDIT,
        "prescription": VISITS_EDIT,
        "prescription_remove": VISITS_EDIT,
        "payment": BILLING_MANAGE,
        "complete": VISITS_COMPLETE,
    }


class InventoryPermission(BaseCapabilityPermission):
    capability_per_action = {
        "list": INVENTORY_VIEW,
        "retrieve": INVENTORY_VIEW,
        "low_stock": INVENTORY_VIEW,
        "create": INVENTORY_CREATE,
        "partial_update": INVENTORY_EDIT,
        "update": INVENTORY_EDIT,
        "destroy": INVENTORY_DELETE,
        "adjust": INVENTORY_ADJUST,
        "restock": INVENTORY_ADJUST,
    }


class PharmacyPermission(BaseCapabilityPermission):
    """
    `dispense` only needs pharmacy.view here: the dispensing service runs its own
    authorization gate so denials come back as a recoverable 403 envelope.
    """
    capability_per_action = {
        "list": PHARMACY_VIEW,
        "history": PHARMACY_VIEW,
        "dispense": VISITS_VIEW,
    }


class AuditPermission(BaseCapabilityPermission):
    capability_per_action = {
        "list": AUDIT_VIEW,
    }
