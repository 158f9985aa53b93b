"""
Service wiring for Packs Print.

PrintService assembles the queue, device tracker, renderer, backend, executor
and status monitor from settings, and owns their start/shutdown order. A
process-wide instance is available through ensure_service()/get_service(),
kept Flask-agnostic so it can be used from web routes and the entry script.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional

from packs_print.core.config import load_settings

from .backends import DeviceBackend, connect_device
from .device import DeviceTracker
from .events import EventBus
from .executor import PrintExecutor
from .monitor import DeviceMonitor
from .queue import PrintQueue
from .render import TemplateRenderer

logger = logging.getLogger(__name__)

_SERVICE: Optional["PrintService"] = None
_SERVICE_LOCK = threading.Lock()


class PrintService:
    def __init__(
        self,
        settings: Optional[Mapping[str, Any]] = None,
        device: Optional[DeviceBackend] = None,
        renderer: Optional[TemplateRenderer] = None,
    ) -> None:
        self.settings: Dict[str, Any] = dict(settings if settings is not None else load_settings())
        s = self.settings

        self.events = EventBus()
        self.device = device or connect_device(s)
        self.renderer = renderer or TemplateRenderer(
            s["templates_dir"], media=s["media"], encoding=s.get("template_encoding", "latin-1")
        )
        self.queue = PrintQueue(self.events, jobs_max=int(s.get("jobs_max", 200)))
        self.tracker = DeviceTracker(self.device, self.events)
        self.executor = PrintExecutor(
            self.queue,
            self.tracker,
            self.renderer,
            self.device,
            print_delay_ms=int(s.get("print_delay_ms", 2000)),
            job_timeout_seconds=float(s.get("job_timeout_seconds", 60) or 0),
        )
        self.monitor = DeviceMonitor(
            self.tracker,
            self.device,
            queue=self.queue,
            interval_ms=int(s.get("status_interval_ms", 10000)),
            reconnect_delay_ms=int(s.get("reconnect_delay_ms", 5000)),
            reconnect_max_delay_ms=int(s.get("reconnect_max_delay_ms", 60000)),
            busy=lambda: self.executor.busy,
            media=s.get("media"),
        )
        self.executor.on_device_fault = self.monitor.request_poll
        self.started = False
        self.shutting_down = False

    def start(self, monitor: bool = True) -> bool:
        """
        Check the device once, attach the executor and start polling.
        An unreachable printer is not fatal. Returns True when the device was
        reachable at startup.
        """
        if self.started:
            return self.tracker.available
        logger.info("Initializing printer on %r", self.device)
        self.tracker.retry_connection()
        if self.tracker.available:
            logger.info("Printer initialized: %s", self.tracker.state.label)
        else:
            logger.warning("Printer offline; continuing without printer device")
        self.executor.attach()
        if monitor:
            self.monitor.start()
        self.started = True
        return self.tracker.available

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop polling, refuse new jobs and wait for accepted jobs to finish.
        Returns False if the drain timed out.
        """
        if self.shutting_down:
            return self.queue.drain(timeout)
        self.shutting_down = True
        logger.info("Shutting down gracefully")
        self.monitor.stop()
        self.queue.close()
        drained = self.queue.drain(timeout)
        if not drained:
            logger.warning("Shutdown timed out with jobs still pending")
        self.executor.shutdown()
        self.device.close()
        logger.info("Shutdown completed")
        return drained

    def status(self) -> Dict[str, Any]:
        return self.monitor.snapshot().model_dump()


def get_service() -> Optional[PrintService]:
    return _SERVICE


def ensure_service(settings: Optional[Mapping[str, Any]] = None, monitor: bool = True) -> PrintService:
    """
    Create and start the process-wide service if needed (idempotent).
    """
    global _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            _SERVICE = PrintService(settings)
            _SERVICE.start(monitor=monitor)
            logger.info("Print service started")
        return _SERVICE


def set_service(service: Optional[PrintService]) -> None:
    """Install (or remove) the process-wide service, e.g. a test double."""
    global _SERVICE
    with _SERVICE_LOCK:
        _SERVICE = service


__all__ = ["PrintService", "ensure_service", "get_service", "set_service"]
