"""
Error types for the printing subsystem.

All errors inherit from PrintError so callers can catch the whole family.
Each carries a short machine-readable ``code`` used in job records and
API responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PrintError(Exception):
    """Base exception for all print pipeline failures."""

    code = "print_error"


class InvalidJobError(PrintError):
    """Raised when enqueue input is malformed. The job never enters the backlog."""

    code = "invalid_job"


class BusyError(PrintError):
    """Raised when an operation is refused because a job is in flight."""

    code = "busy"


class JobStateError(PrintError):
    """Raised when attempting an illegal job state transition."""

    code = "invalid_transition"

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Invalid job state transition for {job_id}: {current} -> {target}")


class RenderError(PrintError):
    """Template lookup or rendering failed. The device is never touched."""

    code = "render_error"

    def __init__(self, template: str, reason: str):
        self.template = template
        self.reason = reason
        super().__init__(f"Failed to render template {template}: {reason}")


class DeviceError(PrintError):
    """Base class for failures attributed to the output device."""

    code = "device_error"


class DeviceUnavailableError(DeviceError):
    """The device file/handle is not accessible."""

    code = "device_unavailable"

    def __init__(self, message: str = "Printer device not available"):
        super().__init__(message)


class DeviceNotReadyError(DeviceError):
    """The device is reachable but reports a state other than ready."""

    code = "device_not_ready"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Printer not ready: {status}")


class DeviceWriteError(DeviceError):
    """Writing the payload to the device failed, partially or totally."""

    code = "device_write_error"

    def __init__(self, message: str, bytes_written: int = 0):
        self.bytes_written = bytes_written
        super().__init__(message)


class ExecutorTimeoutError(DeviceWriteError):
    """The device did not finish a job within the configured timeout."""

    code = "executor_timeout"

    def __init__(self, job_id: str, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Job {job_id} did not finish within {timeout:g}s")


def error_to_dict(error: Optional[BaseException]) -> Optional[Dict[str, Any]]:
    """
    Serialize a job failure cause for JSON payloads.
    Non-PrintError exceptions are reported with code ``internal_error``.
    """
    if error is None:
        return None
    return {
        "type": type(error).__name__,
        "code": error.code if isinstance(error, PrintError) else "internal_error",
        "message": str(error),
    }


__all__ = [
    "BusyError",
    "DeviceError",
    "DeviceNotReadyError",
    "DeviceUnavailableError",
    "DeviceWriteError",
    "ExecutorTimeoutError",
    "InvalidJobError",
    "JobStateError",
    "PrintError",
    "RenderError",
    "error_to_dict",
]
