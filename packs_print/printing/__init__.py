"""
Printing subsystem for Packs Print.

This package groups the job lifecycle engine and its collaborators:

- job / queue: job records and the single-in-flight FIFO queue
- events: lifecycle event names and the publish/subscribe channel
- device / monitor: device status classification, tracking and polling
- executor / backends / render: the device side of the execution handshake
- status: outward status record
- service: wiring and lifecycle

For convenience, common names are re-exported for easy import.
"""

from .device import DeviceState, DeviceStatus, DeviceTracker, classify
from .errors import *
from .events import EventBus
from .job import JobInput, JobRecord, JobStatus
from .queue import PrintQueue
from .service import PrintService, ensure_service, get_service
from .status import StatusRecord, report_status
