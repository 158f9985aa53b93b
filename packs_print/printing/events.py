"""
Event names and a small thread-safe publish/subscribe channel.

Queue and device components publish lifecycle notifications here; observers
(executor, LEDs, telemetry, tests) register handlers. Handlers run
synchronously on the publishing thread. A failing handler is logged and its
exception returned to the publisher; it never reaches other handlers.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

# Job lifecycle
JOB_QUEUED = "job-queued"              # (job)
JOB_STARTED = "job-started"            # (job)
PRINT_REQUEST = "print-request"        # (job)
JOB_COMPLETED = "job-completed"        # (job)
JOB_FAILED = "job-failed"              # (job, error)

# Queue state
QUEUE_EMPTY = "queue-empty"            # ()
QUEUE_CLEARED = "queue-cleared"        # (count)
QUEUE_PAUSED = "queue-paused"          # ()
QUEUE_RESUMED = "queue-resumed"        # ()

# Device
STATUS_CHANGED = "status-changed"      # (DeviceState)

Handler = Callable[..., Any]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, event: str, handler: Handler) -> Handler:
        with self._lock:
            self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        with self._lock:
            try:
                self._handlers[event].remove(handler)
            except ValueError:
                pass

    def has_handlers(self, event: str) -> bool:
        with self._lock:
            return bool(self._handlers.get(event))

    def emit(self, event: str, *args: Any) -> List[BaseException]:
        """
        Call every handler registered for ``event`` in subscription order.
        Returns the exceptions raised by handlers (empty on success).
        """
        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        errors: List[BaseException] = []
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.exception("Handler %r for %s failed: %s", handler, event, e)
                errors.append(e)
        return errors


__all__ = [
    "EventBus",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JOB_QUEUED",
    "JOB_STARTED",
    "PRINT_REQUEST",
    "QUEUE_CLEARED",
    "QUEUE_EMPTY",
    "QUEUE_PAUSED",
    "QUEUE_RESUMED",
    "STATUS_CHANGED",
]
