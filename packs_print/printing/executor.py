"""
Device executor: the other half of the execution handshake.

The executor subscribes to ``print-request``. For each job it checks the
device, renders the template, writes the payload once per copy, and reports
exactly one outcome back through complete_current()/fail_current().

Device work runs on a dedicated thread so a hung write can be abandoned after
``job_timeout_seconds``. The job is then failed with ExecutorTimeoutError and
none of its remaining copies are sent. Until the abandoned device call
returns, later jobs fail fast with DeviceUnavailableError instead of queuing
behind it.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Callable, Dict, Optional

from packs_print.core.logging import job_context

from .backends import DeviceBackend
from .device import DeviceStatus, DeviceTracker, classify, status_label
from .errors import DeviceNotReadyError, DeviceUnavailableError, DeviceWriteError, ExecutorTimeoutError
from .events import PRINT_REQUEST
from .job import JobRecord
from .queue import PrintQueue
from .render import TemplateRenderer

logger = logging.getLogger(__name__)


class PrintExecutor:
    def __init__(
        self,
        queue: PrintQueue,
        tracker: DeviceTracker,
        renderer: TemplateRenderer,
        device: DeviceBackend,
        print_delay_ms: int = 2000,
        job_timeout_seconds: float = 60.0,
        on_device_fault: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.queue = queue
        self.tracker = tracker
        self.renderer = renderer
        self.device = device
        self.print_delay = max(0, int(print_delay_ms)) / 1000.0
        self.job_timeout = float(job_timeout_seconds or 0)
        # Asks the status poll loop to re-read the device out of cycle.
        self.on_device_fault = on_device_fault
        self._busy = threading.Event()
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="packs-print-device")
        self._abandoned: Optional[Future] = None
        self._attached = False

    @property
    def busy(self) -> bool:
        """True while a payload is being written; status reads are skipped then."""
        return self._busy.is_set()

    @property
    def hung(self) -> bool:
        """True while a timed-out device call still occupies the device thread."""
        abandoned = self._abandoned
        return abandoned is not None and not abandoned.done()

    def attach(self) -> None:
        if not self._attached:
            self.queue.events.on(PRINT_REQUEST, self.handle_print_request)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self.queue.events.off(PRINT_REQUEST, self.handle_print_request)
            self._attached = False

    def shutdown(self) -> None:
        self.detach()
        self._pool.shutdown(wait=False)

    def handle_print_request(self, job: JobRecord) -> None:
        """Run the job and report the outcome for exactly this job id."""
        try:
            if self.job_timeout > 0:
                result = self._run_with_timeout(job)
            else:
                result = self.print_job(job)
        except ExecutorTimeoutError as e:
            logger.error("Job %s timed out after %.1fs", job.id, self.job_timeout)
            self.queue.fail_current(e, job_id=job.id)
            self._device_fault()
            return
        except Exception as e:
            logger.error("Print failed: %s", e)
            self.queue.fail_current(e, job_id=job.id)
            return
        self.queue.complete_current(result, job_id=job.id)

    def _run_with_timeout(self, job: JobRecord) -> Dict[str, Any]:
        if self.hung:
            raise DeviceUnavailableError("Printer device not available: previous write has not returned")
        cancel = threading.Event()
        future = self._pool.submit(self.print_job, job, cancel)
        try:
            return future.result(timeout=self.job_timeout)
        except FuturesTimeout:
            cancel.set()
            self._abandoned = future
            # The stuck call no longer counts as a write in progress; let the monitor poll.
            self._busy.clear()
            raise ExecutorTimeoutError(job.id, self.job_timeout) from None

    def print_job(self, job: JobRecord, cancel: Optional[threading.Event] = None) -> Dict[str, Any]:
        with job_context(job.id):
            return self._print(job, cancel)

    def _check_cancelled(self, job: JobRecord, cancel: Optional[threading.Event], sent: int = 0) -> None:
        if cancel is not None and cancel.is_set():
            logger.warning("Job %s was abandoned; skipping remaining copies (%d/%d sent)", job.id, sent, job.copies)
            raise ExecutorTimeoutError(job.id, self.job_timeout)

    def _print(self, job: JobRecord, cancel: Optional[threading.Event] = None) -> Dict[str, Any]:
        self._check_cancelled(job, cancel)
        if not self.tracker.available:
            raise DeviceUnavailableError()

        try:
            raw_code = self.device.read_status()
        except Exception as e:
            # Backends raise OSError or library errors (python-escpos) when the device is gone.
            self._device_fault()
            raise DeviceUnavailableError(f"Printer device not available: {e}") from e
        classified = classify(raw_code, True)
        if classified is not DeviceStatus.READY:
            self._device_fault()
            raise DeviceNotReadyError(status_label(classified, raw_code))

        payload = self.renderer.render(job.template, job.data)
        logger.info("Printing %s x%d", job.template, job.copies)
        logger.debug("Payload length: %d bytes", len(payload))

        try:
            self._busy.set()
            try:
                written = self._write_copies(job, payload, cancel)
            finally:
                self._busy.clear()
        except ExecutorTimeoutError:
            raise
        except DeviceWriteError:
            self._device_fault()
            raise

        logger.info("Print completed: %s x%d", job.template, job.copies)
        return {
            "template": job.template,
            "copies": job.copies,
            "data_length": len(payload),
            "bytes_written": written,
        }

    def _write_copies(self, job: JobRecord, payload: bytes, cancel: Optional[threading.Event]) -> int:
        written = 0
        for copy in range(1, job.copies + 1):
            self._check_cancelled(job, cancel, copy - 1)
            logger.debug("Sending copy %d/%d", copy, job.copies)
            try:
                written += self.device.write(payload)
            except DeviceWriteError as e:
                raise DeviceWriteError(str(e), bytes_written=written + e.bytes_written) from e
            except Exception as e:
                raise DeviceWriteError(f"Failed to send to printer: {e}", bytes_written=written) from e
            if self.print_delay and copy < job.copies:
                logger.debug("Copy %d/%d sent, waiting %.0fms", copy, job.copies, self.print_delay * 1000)
                time.sleep(self.print_delay)
        return written

    def _device_fault(self) -> None:
        if self.on_device_fault is None:
            return
        try:
            self.on_device_fault()
        except Exception as e:
            logger.warning("Device fault callback failed: %s", e)


__all__ = ["PrintExecutor"]
