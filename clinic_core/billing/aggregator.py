# clinic_core/billing/aggregator.py
"""
Visit bill arithmetic.

The total is always recomputed from the visit's current lab orders and
prescription, never patched incrementally:

    total = consultation fee
          + sum(price of lab orders whose status is Completed)
          + sum(price * quantity of prescription lines)
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from clinic_core.visits.constants import LabOrderStatus

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BillBreakdown:
    consultation_fee: Decimal
    lab_total: Decimal
    pharmacy_total: Decimal

    @property
    def total(self) -> Decimal:
        return (self.consultation_fee + self.lab_total + self.pharmacy_total).quantize(CENT)


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def bill_breakdown(*, consultation_fee, lab_orders: Iterable, prescription: Iterable) -> BillBreakdown:
    lab_total = sum(
        (_money(o.price) for o in lab_orders if o.status == LabOrderStatus.COMPLETED),
        ZERO,
    )
    pharmacy_total = sum(
        (_money(line.price) * int(line.quantity) for line in prescription),
        ZERO,
    )
    return BillBreakdown(
        consultation_fee=_money(consultation_fee),
        lab_total=lab_total.quantize(CENT),
        pharmacy_total=pharmacy_total.quantize(CENT),
    )


def compute_total_bill(*, consultation_fee, lab_orders: Iterable, prescription: Iterable) -> Decimal:
    return bill_breakdown(
        consultation_fee=consultation_fee,
        lab_orders=lab_orders,
        prescription=prescription,
    ).total


def breakdown_for_visit(visit) -> BillBreakdown:
    return bill_breakdown(
        consultation_fee=visit.consultation_fee,
        lab_orders=visit.lab_orders.all(),
        prescription=visit.prescription_lines.all(),
    )
