"""
Outward status record combining device state and queue snapshot.

report_status() only shapes the payload; deciding when and whether to publish
it belongs to the caller (monitor publishers, /healthz).
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel

from .device import DeviceState


class StatusRecord(BaseModel):
    status: str
    label: str
    available: bool
    raw_code: Optional[int] = None
    queue_length: int = 0
    processing: bool = False
    paused: bool = False
    current_job_id: Optional[str] = None
    media: Optional[str] = None
    timestamp: str


def report_status(
    device_state: DeviceState,
    queue_snapshot: Mapping[str, Any],
    media: Optional[str] = None,
) -> StatusRecord:
    current = queue_snapshot.get("current_job") or {}
    return StatusRecord(
        status=device_state.classified.value,
        label=device_state.label,
        available=device_state.available,
        raw_code=device_state.raw_code,
        queue_length=int(queue_snapshot.get("length", 0)),
        processing=bool(queue_snapshot.get("processing", False)),
        paused=bool(queue_snapshot.get("paused", False)),
        current_job_id=current.get("id"),
        media=media,
        timestamp=device_state.updated_at.isoformat(),
    )


__all__ = ["StatusRecord", "report_status"]
