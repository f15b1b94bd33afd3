# clinic_core/common/events.py
"""
In-process event bus.

Services publish small, id-based payloads; other apps subscribe without
importing the publisher. Handlers run synchronously, in registration order,
inside the publisher's transaction.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
Handler = Callable[[Payload], None]

VISIT_COMPLETED = "visit.completed"
VISIT_DISPENSED = "visit.dispensed"

_handlers: defaultdict[str, list[Handler]] = defaultdict(list)


def subscribe(event_name: str, handler: Handler | None = None):
    """
    Register `handler` for `event_name`, either directly or as a decorator:

        @subscribe(VISIT_COMPLETED)
        def notify_front_desk(payload): ...
    """
    def _register(fn: Handler) -> Handler:
        if fn not in _handlers[event_name]:
            _handlers[event_name].append(fn)
        return fn

    if handler is not None:
        return _register(handler)
    return _register


def unsubscribe(event_name: str, handler: Handler) -> None:
    registered = _handlers.get(event_name)
    if registered and handler in registered:
        registered.remove(handler)


def publish(event_name: str, payload: Payload) -> int:
    """
    Deliver `payload` to every subscriber of `event_name`; returns how many ran.
    """
    handlers = list(_handlers.get(event_name, ()))
    logger.debug("event %s -> %d handler(s)", event_name, len(handlers))
    for handler in handlers:
        handler(payload)
    return len(handlers)
