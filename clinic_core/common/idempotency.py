# clinic_core/common/idempotency.py
"""
Replay protection for retried writes (payment, dispense).

A client repeating a POST with the same `Idempotency-Key` header gets the
first response body back instead of running the operation twice. Entries are
keyed by scope, user, method, path and key. With COMMON_IDEMPOTENCY_USE_DB the
IdempotencyRecord table holds them; otherwise a process-local dict does.
"""
from __future__ import annotations

import threading
from dataclasses import astuple, dataclass
from typing import Any, Callable
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction

from clinic_core.common.models import IdempotencyRecord
from clinic_core.common.scope import Scope

HEADER = "Idempotency-Key"

_memory: dict[tuple, Any] = {}
_memory_lock = threading.Lock()


@dataclass(frozen=True)
class ReplayKey:
    tenant_id: UUID
    facility_id: UUID
    user_id: int
    method: str
    path: str
    key: str

    @classmethod
    def from_request(cls, request, scope: Scope) -> ReplayKey | None:
        raw = request.headers.get(HEADER) or request.META.get("HTTP_IDEMPOTENCY_KEY")
        if not raw:
            return None
        return cls(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            user_id=int(request.user.id),
            method=request.method.upper(),
            path=request.path,
            key=str(raw),
        )


def _durable() -> bool:
    return bool(getattr(settings, "COMMON_IDEMPOTENCY_USE_DB", False))


def _record_filter(rk: ReplayKey) -> dict:
    return {
        "tenant_id": rk.tenant_id,
        "facility_id": rk.facility_id,
        "user_id": rk.user_id,
        "method": rk.method,
        "path": rk.path,
        "idempotency_key": rk.key,
    }


def lookup(rk: ReplayKey) -> Any | None:
    if not _durable():
        with _memory_lock:
            return _memory.get(astuple(rk))

    record = IdempotencyRecord.objects.filter(**_record_filter(rk)).only("response_data").first()
    return None if record is None else record.response_data


def remember(rk: ReplayKey, response_data: Any, status_code: int = 200) -> None:
    if not _durable():
        with _memory_lock:
            _memory[astuple(rk)] = response_data
        return

    try:
        with transaction.atomic():
            IdempotencyRecord.objects.create(
                **_record_filter(rk),
                status_code=status_code,
                response_data=response_data,
            )
    except IntegrityError:
        # a concurrent retry stored it first; its body is equivalent
        return


def run_once(request, scope: Scope, produce: Callable[[], Any]) -> Any:
    """
    Return the stored body for a replayed key, or call `produce()` and store
    its result. Requests without the header always run.
    """
    rk = ReplayKey.from_request(request, scope)
    if rk is None:
        return produce()

    stored = lookup(rk)
    if stored is not None:
        return stored

    data = produce()
    remember(rk, data)
    return data


def clear_memory_store() -> None:
    with _memory_lock:
        _memory.clear()
