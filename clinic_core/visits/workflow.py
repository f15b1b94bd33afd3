# clinic_core/visits/workflow.py
"""
Visit stage machine.

    Check-In -> Vitals -> Consultation -> Lab -> Billing -> Pharmacy -> Clearance -> Completed

Rules:
- Vitals may only be skipped at creation (the visit starts at Consultation).
- After creation a visit moves one stage forward at a time. Two stages can be
  hopped over when they have nothing to do: Lab (no lab orders) and Pharmacy
  (empty prescription).
- Pharmacy is left only through dispensing (medications_dispensed set first).
- Completed is absorbing and requires a paid bill.

Everything here is pure; VisitService applies the result to the database.
"""
from __future__ import annotations

from django.utils import timezone

from clinic_core.common.exceptions import InvalidTransition
from clinic_core.common.permissions import BILLING_MANAGE, VISITS_COMPLETE, VISITS_EDIT
from clinic_core.visits.constants import PaymentStatus, STAGE_ORDER, VisitStage

# stage -> predicate(has_lab_orders, has_prescription) telling whether it can be hopped over
_BYPASSABLE = {
    VisitStage.LAB: lambda has_lab_orders, has_prescription: not has_lab_orders,
    VisitStage.PHARMACY: lambda has_lab_orders, has_prescription: not has_prescription,
}


def initial_stage(*, skip_vitals: bool = False) -> str:
    return VisitStage.CONSULTATION if skip_vitals else VisitStage.CHECK_IN


def stage_rank(stage: str) -> int:
    try:
        return STAGE_ORDER.index(stage)
    except ValueError:
        raise InvalidTransition(f"Unknown stage: {stage!r}.")


def successor(stage: str) -> str | None:
    rank = stage_rank(stage)
    if rank + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[rank + 1]


def allowed_targets(stage: str, *, has_lab_orders: bool, has_prescription: bool) -> tuple[str, ...]:
    """
    Stages reachable from `stage` in one transition.
    """
    targets: list[str] = []
    nxt = successor(stage)
    while nxt is not None:
        targets.append(nxt)
        can_skip = _BYPASSABLE.get(nxt)
        if can_skip is None or not can_skip(has_lab_orders, has_prescription):
            break
        nxt = successor(nxt)
    return tuple(targets)


def check_transition(
    *,
    stage: str,
    target: str,
    medications_dispensed: bool,
    payment_status: str,
    has_lab_orders: bool,
    has_prescription: bool,
) -> None:
    """
    Raise InvalidTransition unless `stage -> target` is legal.
    """
    if stage == VisitStage.COMPLETED:
        raise InvalidTransition("Visit is completed and read-only.")

    if stage_rank(target) <= stage_rank(stage):
        raise InvalidTransition(f"Cannot move a visit back from {stage} to {target}.")

    if target not in allowed_targets(stage, has_lab_orders=has_lab_orders, has_prescription=has_prescription):
        raise InvalidTransition(f"Cannot skip from {stage} to {target}.")

    if stage == VisitStage.PHARMACY and not medications_dispensed:
        raise InvalidTransition("Dispense the prescription before leaving Pharmacy.")

    if target == VisitStage.COMPLETED and payment_status != PaymentStatus.PAID:
        raise InvalidTransition("Visit cannot be completed until payment is recorded.")


def skips_pharmacy(stage: str, target: str) -> bool:
    return stage_rank(stage) < stage_rank(VisitStage.PHARMACY) < stage_rank(target)


def required_capability(target: str) -> str:
    """
    Capability a user needs to move a visit into `target`.
    """
    if target == VisitStage.BILLING:
        return BILLING_MANAGE
    if target == VisitStage.COMPLETED:
        return VISITS_COMPLETE
    return VISITS_EDIT


def history_summary(*, start_time, diagnosis: str, doctor_notes: str) -> str:
    """
    One line folded into Patient.history on completion, e.g.
    "[2024-03-01] Dx: Malaria. Notes: Review in 3 days".
    """
    day = timezone.localtime(start_time).date().isoformat()
    diagnosis_text = f"Dx: {diagnosis}" if diagnosis else "No Diagnosis"
    notes_text = f"Notes: {doctor_notes}" if doctor_notes else ""
    return f"[{day}] {diagnosis_text}. {notes_text}".strip()
