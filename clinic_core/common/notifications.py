# clinic_core/common/notifications.py
from __future__ import annotations

import contextlib
import contextvars
import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterator

from clinic_core.common.events import publish

logger = logging.getLogger(__name__)

TOAST_EVENT = "notification.toast"

SEVERITY_SUCCESS = "success"
SEVERITY_ERROR = "error"
SEVERITY_INFO = "info"

_collector: contextvars.ContextVar[list | None] = contextvars.ContextVar("toast_collector", default=None)


@dataclass(frozen=True)
class Toast:
    message: str
    severity: str = SEVERITY_SUCCESS

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


def show_toast(message: str, severity: str = SEVERITY_SUCCESS, **context: Any) -> Toast:
    """
    User-facing notification. Delivery belongs to whoever subscribes to
    TOAST_EVENT; API views also echo the toasts raised while serving a request.
    """
    toast = Toast(message=message, severity=severity)
    logger.debug("toast[%s]: %s", severity, message)

    collected = _collector.get()
    if collected is not None:
        collected.append(toast)

    publish(TOAST_EVENT, {**context, **toast.as_dict()})
    return toast


@contextlib.contextmanager
def collect_toasts() -> Iterator[list[Toast]]:
    """
    Gather toasts raised in the current context:

        with collect_toasts() as toasts:
            VisitService.complete(...)
        payload["messages"] = [t.as_dict() for t in toasts]
    """
    toasts: list[Toast] = []
    token = _collector.set(toasts)
    try:
        yield toasts
    finally:
        _collector.reset(token)
