"""
Device state tracking for the label printer.

The tracker keeps the last observed hardware status byte, classifies it, and
reports transitions. Only an observation whose classification differs from
the previous one counts as a change, so repeated ready polls stay quiet.

Writes come from the status poll loop (and the startup check); readers get an
immutable DeviceState snapshot.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from .events import STATUS_CHANGED, EventBus

logger = logging.getLogger(__name__)

# Raw LPGETSTATUS bytes reported by the printer
STATUS_READY = 0x18
STATUS_PAPER_OUT = 0x30
STATUS_CALIBRATING = 0x50
STATUS_LOADING = 0xB0
STATUS_ERROR = 0x08


class DeviceStatus(str, Enum):
    READY = "ready"
    PAPER_OUT = "paperOut"
    CALIBRATING = "calibrating"
    LOADING = "loading"
    ERROR = "error"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


_CODE_MAP = {
    STATUS_READY: DeviceStatus.READY,
    STATUS_PAPER_OUT: DeviceStatus.PAPER_OUT,
    STATUS_CALIBRATING: DeviceStatus.CALIBRATING,
    STATUS_LOADING: DeviceStatus.LOADING,
    STATUS_ERROR: DeviceStatus.ERROR,
}

_LABELS = {
    DeviceStatus.READY: "ready",
    DeviceStatus.PAPER_OUT: "paper out",
    DeviceStatus.CALIBRATING: "calibrating",
    DeviceStatus.LOADING: "loading",
    DeviceStatus.ERROR: "error",
    DeviceStatus.UNAVAILABLE: "device not available",
}


def classify(raw_code: Optional[int], available: bool) -> DeviceStatus:
    """
    Map a raw status byte to a classified status. Unreachable devices are
    always UNAVAILABLE; unrecognized bytes degrade to UNKNOWN.
    """
    if not available:
        return DeviceStatus.UNAVAILABLE
    if raw_code is None:
        return DeviceStatus.UNKNOWN
    return _CODE_MAP.get(raw_code, DeviceStatus.UNKNOWN)


def status_label(classified: DeviceStatus, raw_code: Optional[int] = None) -> str:
    if classified is DeviceStatus.UNKNOWN:
        return f"unknown (0x{raw_code:x})" if raw_code is not None else "unknown"
    return _LABELS[classified]


@dataclass(frozen=True)
class DeviceState:
    raw_code: Optional[int]
    classified: DeviceStatus
    available: bool
    updated_at: datetime

    @property
    def ready(self) -> bool:
        return self.available and self.classified is DeviceStatus.READY

    @property
    def label(self) -> str:
        return status_label(self.classified, self.raw_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.classified.value,
            "label": self.label,
            "available": self.available,
            "raw_code": self.raw_code,
            "raw_hex": f"0x{self.raw_code:02x}" if self.raw_code is not None else None,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Observation:
    changed: bool
    classified: DeviceStatus


class StatusSource(Protocol):
    """Out-of-band access to the device used for (re)connection checks."""

    def is_accessible(self) -> bool: ...

    def read_status(self) -> Optional[int]: ...


class DeviceTracker:
    def __init__(self, source: Optional[StatusSource] = None, events: Optional[EventBus] = None) -> None:
        self.source = source
        self.events = events or EventBus()
        self._lock = threading.Lock()
        self._state = DeviceState(
            raw_code=None,
            classified=DeviceStatus.UNAVAILABLE,
            available=False,
            updated_at=datetime.now(timezone.utc),
        )
        # None until the first observation so the initial reading always counts.
        self._last_classified: Optional[DeviceStatus] = None

    @staticmethod
    def classify(raw_code: Optional[int], available: bool) -> DeviceStatus:
        return classify(raw_code, available)

    @property
    def state(self) -> DeviceState:
        with self._lock:
            return self._state

    @property
    def classified(self) -> DeviceStatus:
        return self.state.classified

    @property
    def available(self) -> bool:
        return self.state.available

    def is_ready(self) -> bool:
        return self.state.ready

    def _record(self, raw_code: Optional[int], available: bool, force_change: bool = False) -> Observation:
        classified = classify(raw_code, available)
        with self._lock:
            previous = self._last_classified
            changed = force_change or previous is not classified
            self._state = DeviceState(
                raw_code=raw_code if available else None,
                classified=classified,
                available=available,
                updated_at=datetime.now(timezone.utc),
            )
            self._last_classified = classified
            state = self._state

        if changed:
            if classified is DeviceStatus.UNKNOWN:
                logger.warning("Unrecognized printer status byte: %s", state.label)
            logger.info(
                "Printer status: %s -> %s",
                previous.value if previous else "none",
                state.label,
            )
            self.events.emit(STATUS_CHANGED, state)
        return Observation(changed=changed, classified=classified)

    def observe(self, raw_code: Optional[int], available: bool) -> Observation:
        """
        Record a status reading. ``changed`` is True only when the classified
        status differs from the previously recorded one.
        """
        return self._record(raw_code, available)

    def mark_unavailable(self) -> Observation:
        return self._record(None, False)

    def retry_connection(self) -> Observation:
        """
        Re-check the device. When an unavailable device comes back, the fresh
        reading is reported as a change even if it matches the status cached
        before the outage. Returns changed=False when nothing recovered.
        """
        if self.source is None:
            raise RuntimeError("DeviceTracker has no status source to retry the connection with")

        logger.info("Attempting to reconnect to printer")
        try:
            accessible = self.source.is_accessible()
        except Exception as e:
            logger.debug("Reconnection check failed: %s", e)
            accessible = False

        was_available = self.available
        if not accessible:
            if was_available:
                return self.mark_unavailable()
            logger.debug("Reconnection failed: device still not accessible")
            return Observation(changed=False, classified=DeviceStatus.UNAVAILABLE)

        try:
            raw_code = self.source.read_status()
        except Exception as e:
            logger.debug("Status read after reconnect failed: %s", e)
            return self._record(None, False) if was_available else Observation(False, DeviceStatus.UNAVAILABLE)

        if was_available:
            return self.observe(raw_code, True)
        observation = self._record(raw_code, True, force_change=True)
        logger.info("Reconnected: %s", self.state.label)
        return observation


__all__ = [
    "StatusSource",
    "DeviceState",
    "DeviceStatus",
    "DeviceTracker",
    "Observation",
    "STATUS_CALIBRATING",
    "STATUS_ERROR",
    "STATUS_LOADING",
    "STATUS_PAPER_OUT",
    "STATUS_READY",
    "classify",
    "status_label",
]
