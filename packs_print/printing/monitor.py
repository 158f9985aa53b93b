"""
Device status poll loop.

DeviceMonitor polls the backend on its own thread and is the tracker's only
writer while it runs. Operator reconnect requests are handed to that thread
through request_reconnect(). While the device is unavailable the monitor
schedules DeviceTracker.retry_connection() with exponential backoff. Changed
observations are shaped by report_status() and handed to publishers.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, List, Optional

from .backends import DeviceBackend
from .device import DeviceTracker, Observation
from .queue import PrintQueue
from .status import StatusRecord, report_status

logger = logging.getLogger(__name__)

Publisher = Callable[[StatusRecord], Any]


class DeviceMonitor:
    def __init__(
        self,
        tracker: DeviceTracker,
        device: DeviceBackend,
        queue: Optional[PrintQueue] = None,
        interval_ms: int = 10000,
        reconnect_delay_ms: int = 5000,
        reconnect_max_delay_ms: int = 60000,
        busy: Optional[Callable[[], bool]] = None,
        media: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tracker = tracker
        self.device = device
        self.queue = queue
        self.interval = max(0.05, interval_ms / 1000.0)
        self.reconnect_delay = max(0.0, reconnect_delay_ms / 1000.0)
        self.reconnect_max_delay = max(self.reconnect_delay, reconnect_max_delay_ms / 1000.0)
        self.busy = busy or (lambda: False)
        self.media = media
        self.clock = clock

        self._publishers: List[Publisher] = []
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._retry_delay = self.reconnect_delay
        self._next_retry_at: Optional[float] = None
        self._requests_lock = threading.Lock()
        self._reconnect_requests: "List[Future[Observation]]" = []

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def add_publisher(self, publisher: Publisher) -> Publisher:
        self._publishers.append(publisher)
        return publisher

    def snapshot(self) -> StatusRecord:
        queue_status = self.queue.get_queue_status() if self.queue else {}
        return report_status(self.tracker.state, queue_status, media=self.media)

    def publish(self) -> StatusRecord:
        record = self.snapshot()
        for publisher in list(self._publishers):
            try:
                publisher(record)
            except Exception as e:
                logger.exception("Status publisher %r failed: %s", publisher, e)
        return record

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    def _schedule_retry(self, now: float) -> None:
        self._next_retry_at = now + self._retry_delay
        logger.debug("Next reconnect attempt in %.1fs", self._retry_delay)

    def _reconnect(self, now: float) -> Observation:
        if self._next_retry_at is None:
            self._schedule_retry(now)
        if now < self._next_retry_at:
            return Observation(changed=False, classified=self.tracker.classified)

        observation = self.tracker.retry_connection()
        if self.tracker.available:
            self._retry_delay = self.reconnect_delay
            self._next_retry_at = None
        else:
            self._retry_delay = min(self._retry_delay * 2, self.reconnect_max_delay)
            self._schedule_retry(now)
        return observation

    def poll_once(self) -> Observation:
        """Take one reading (or reconnect attempt) and publish if it changed."""
        now = self.clock()
        if not self.tracker.available:
            observation = self._reconnect(now)
        elif self.busy():
            logger.debug("Printer busy; skipping hardware status read")
            return Observation(changed=False, classified=self.tracker.classified)
        else:
            try:
                if self.device.is_accessible():
                    observation = self.tracker.observe(self.device.read_status(), True)
                else:
                    observation = self.tracker.mark_unavailable()
            except Exception as e:
                logger.debug("Status check failed: %s", e)
                observation = self.tracker.mark_unavailable()
            if not self.tracker.available:
                self._retry_delay = self.reconnect_delay
                self._schedule_retry(now)

        if observation.changed:
            self.publish()
        return observation

    def request_poll(self) -> None:
        """Wake the poll loop for an immediate out-of-cycle reading."""
        self._wake.set()

    def reconnect_now(self) -> Observation:
        """
        Retry the connection immediately, bypassing the backoff schedule.
        Must run on the tracker's writer: the poll thread, or the caller
        when the monitor is not running.
        """
        observation = self.tracker.retry_connection()
        if self.tracker.available:
            self._retry_delay = self.reconnect_delay
            self._next_retry_at = None
        else:
            self._schedule_retry(self.clock())
        if observation.changed:
            self.publish()
        return observation

    def request_reconnect(self, timeout: Optional[float] = None) -> Observation:
        """
        Ask the poll thread to retry the connection and wait for the result.

        Raises:
            concurrent.futures.TimeoutError: no result within ``timeout``
            RuntimeError: the monitor stopped before serving the request
        """
        if not self.running:
            return self.reconnect_now()
        future: "Future[Observation]" = Future()
        with self._requests_lock:
            self._reconnect_requests.append(future)
        self._wake.set()
        return future.result(timeout)

    def _serve_reconnects(self) -> None:
        with self._requests_lock:
            pending, self._reconnect_requests = self._reconnect_requests, []
        pending = [f for f in pending if f.set_running_or_notify_cancel()]
        if not pending:
            return
        try:
            observation = self.reconnect_now()
        except Exception as e:
            for future in pending:
                future.set_exception(e)
            return
        for future in pending:
            future.set_result(observation)

    def _fail_pending_reconnects(self) -> None:
        with self._requests_lock:
            pending, self._reconnect_requests = self._reconnect_requests, []
        for future in pending:
            if future.set_running_or_notify_cancel():
                future.set_exception(RuntimeError("Device monitor stopped"))

    def _wait_time(self) -> float:
        if self._next_retry_at is None:
            return self.interval
        return max(0.0, min(self.interval, self._next_retry_at - self.clock()))

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wake.clear()
            try:
                self._serve_reconnects()
                self.poll_once()
            except Exception as e:
                logger.exception("Device poll failed: %s", e)
            self._wake.wait(timeout=self._wait_time())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return bool(self._thread) and self._thread.is_alive()  # type: ignore[union-attr]

    def start(self) -> None:
        if self.running:
            logger.warning("Device monitor already running")
            return
        logger.info("Starting device monitor (interval: %dms)", int(self.interval * 1000))
        self._stop.clear()
        t = threading.Thread(target=self._run, daemon=True, name="packs-print-monitor")
        t.start()
        self._thread = t

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        if not self.running:
            return
        logger.info("Stopping device monitor")
        self._stop.set()
        self._wake.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)  # type: ignore[union-attr]
        self._fail_pending_reconnects()


__all__ = ["DeviceMonitor", "Publisher"]
