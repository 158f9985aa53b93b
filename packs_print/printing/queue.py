"""
FIFO print queue with strict single-in-flight execution.

This module owns:
- The ordered backlog of queued jobs and the single in-flight slot
- A worker thread started on demand that dequeues one job at a time
- The execution handshake: each dequeued job gets its own Future, fulfilled
  exactly once through complete_current()/fail_current()
- A bounded in-memory registry of recent jobs and lifetime counters

Device I/O never happens here. The queue publishes ``print-request`` and waits
for an executor to report the outcome; a job failure never stops the loop.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple, Union

from packs_print.core.logging import job_context

from .errors import BusyError, PrintError
from .events import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_QUEUED,
    JOB_STARTED,
    PRINT_REQUEST,
    QUEUE_CLEARED,
    QUEUE_EMPTY,
    QUEUE_PAUSED,
    QUEUE_RESUMED,
    EventBus,
)
from .job import JobInput, JobRecord, JobStatus, parse_job_input

logger = logging.getLogger(__name__)

JOBS_MAX = 200

_COMPLETED = "completed"
_FAILED = "failed"

Outcome = Tuple[str, Any]


class _InFlight:
    """The job currently processing and its one-shot result channel."""

    __slots__ = ("job", "outcome")

    def __init__(self, job: JobRecord) -> None:
        self.job = job
        self.outcome: "Future[Outcome]" = Future()


class PrintQueue:
    def __init__(self, events: Optional[EventBus] = None, jobs_max: int = JOBS_MAX) -> None:
        self.events = events or EventBus()
        self.jobs_max = max(1, int(jobs_max))

        # RLock so event handlers running on the worker thread may call back in.
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)

        self._backlog: Deque[JobRecord] = deque()
        self._current: Optional[_InFlight] = None
        self._jobs: "OrderedDict[str, JobRecord]" = OrderedDict()

        self._loop_active = False
        self._paused = False
        self._accepting = True
        self._worker: Optional[threading.Thread] = None

        self._total_jobs = 0
        self._completed_jobs = 0
        self._failed_jobs = 0
        self._start_time = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    def enqueue(self, job_input: Union[JobInput, Mapping[str, Any], None]) -> str:
        """
        Validate and append a job to the backlog. Returns the job id without
        waiting for execution.

        Raises:
            InvalidJobError: malformed input (never enters the backlog or stats)
            BusyError: the queue has been closed for shutdown
        """
        validated = parse_job_input(job_input)
        with self._lock:
            if not self._accepting:
                raise BusyError("Queue is shutting down; not accepting new jobs")
            job = JobRecord.from_input(validated)
            self._backlog.append(job)
            self._register(job)
            self._total_jobs += 1
            length = len(self._backlog)

        logger.info("Job queued: %s (ID: %s) queue_length=%d", job.template, job.id, length)
        self.events.emit(JOB_QUEUED, job)
        self._ensure_loop()
        return job.id

    def _register(self, job: JobRecord) -> None:
        self._jobs[job.id] = job
        if len(self._jobs) <= self.jobs_max:
            return
        # Drop the oldest finished records; live jobs are never pruned.
        for job_id in [j.id for j in self._jobs.values() if j.finished]:
            if len(self._jobs) <= self.jobs_max:
                break
            self._jobs.pop(job_id, None)

    # ------------------------------------------------------------------
    # Processing loop
    # ------------------------------------------------------------------
    def _ensure_loop(self) -> bool:
        """Start the worker if it is not running. No-op while a loop is active."""
        with self._lock:
            if self._loop_active or self._paused or not self._backlog:
                return False
            self._loop_active = True
            worker = threading.Thread(target=self._process_loop, daemon=True, name="packs-print-queue")
            self._worker = worker
        worker.start()
        return True

    def _next_job(self) -> Optional[_InFlight]:
        with self._lock:
            if self._paused or not self._backlog:
                return None
            job = self._backlog.popleft()
            job.start()
            self._current = _InFlight(job)
            return self._current

    def _process_loop(self) -> None:
        logger.debug("Starting queue processing")
        try:
            while True:
                inflight = self._next_job()
                if inflight is not None:
                    with job_context(inflight.job.id):
                        self._run_job(inflight)
                    continue

                with self._lock:
                    emptied = not self._backlog
                if emptied:
                    logger.info("Queue processing completed")
                    self.events.emit(QUEUE_EMPTY)

                # Handlers above may have enqueued or resumed; re-check before exiting.
                with self._lock:
                    if self._backlog and not self._paused:
                        continue
                    self._loop_active = False
                    self._idle.notify_all()
                    return
        except Exception as e:
            logger.exception("Queue loop crashed: %s", e)
            with self._lock:
                self._loop_active = False
                self._idle.notify_all()

    def _run_job(self, inflight: _InFlight) -> None:
        job = inflight.job
        logger.info("Processing job: %s (ID: %s) copies=%d", job.template, job.id, job.copies)
        self.events.emit(JOB_STARTED, job)

        if not self.events.has_handlers(PRINT_REQUEST):
            logger.warning("No executor subscribed to %s; job %s waits for an external report", PRINT_REQUEST, job.id)
        errors = self.events.emit(PRINT_REQUEST, job)
        if errors:
            self._report((_FAILED, errors[0]), job.id)

        # No internal timeout: the executor owns hang protection.
        kind, payload = inflight.outcome.result()
        self._finalize(inflight, kind, payload)

    def _finalize(self, inflight: _InFlight, kind: str, payload: Any) -> None:
        job = inflight.job
        with self._lock:
            if kind == _COMPLETED:
                job.complete(payload)
                self._completed_jobs += 1
            else:
                job.fail(payload)
                self._failed_jobs += 1
            self._current = None
            self._idle.notify_all()

        if kind == _COMPLETED:
            logger.info("Job completed: %s (ID: %s)", job.template, job.id)
            self.events.emit(JOB_COMPLETED, job)
        else:
            logger.error("Job failed: %s (ID: %s) - %s", job.template, job.id, payload)
            self.events.emit(JOB_FAILED, job, payload)

    # ------------------------------------------------------------------
    # Execution handshake
    # ------------------------------------------------------------------
    def _report(self, outcome: Outcome, job_id: Optional[str]) -> bool:
        with self._lock:
            inflight = self._current
            if inflight is None:
                logger.debug("No job processing; ignoring %s report", outcome[0])
                return False
            if job_id is not None and job_id != inflight.job.id:
                logger.warning(
                    "Ignoring %s report for %s; current job is %s", outcome[0], job_id, inflight.job.id
                )
                return False
            if inflight.outcome.done():
                logger.debug("Job %s already reported; ignoring %s", inflight.job.id, outcome[0])
                return False
            inflight.outcome.set_result(outcome)
            return True

    def complete_current(self, result: Any = None, job_id: Optional[str] = None) -> bool:
        """
        Report success for the processing job. Returns False (no-op) when no
        job is processing, the job was already reported, or job_id does not
        match the current job.
        """
        return self._report((_COMPLETED, result), job_id)

    def fail_current(self, error: Union[BaseException, str], job_id: Optional[str] = None) -> bool:
        """
        Report failure for the processing job. The error is retained verbatim
        on the record; plain strings are wrapped in PrintError.
        """
        if not isinstance(error, BaseException):
            error = PrintError(str(error))
        return self._report((_FAILED, error), job_id)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def _is_idle(self) -> bool:
        return not self._backlog and self._current is None and not self._loop_active

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the backlog is empty and no job is processing. Never
        cancels the in-flight job. Returns False if ``timeout`` elapsed first.
        """
        with self._idle:
            if self._is_idle():
                return True
            logger.info("Draining queue (%d queued)...", len(self._backlog))
            return self._idle.wait_for(self._is_idle, timeout)

    def clear(self) -> int:
        """
        Remove every queued job. Returns the number removed.

        Raises:
            BusyError: a job is processing (an in-flight print is never abandoned)
        """
        with self._lock:
            if self._current is not None:
                raise BusyError("Cannot clear queue while a job is processing")
            removed = list(self._backlog)
            self._backlog.clear()
            for job in removed:
                self._jobs.pop(job.id, None)
            self._idle.notify_all()

        logger.info("Queue cleared: %d jobs removed", len(removed))
        self.events.emit(QUEUE_CLEARED, len(removed))
        return len(removed)

    def pause(self) -> bool:
        """Stop dequeuing after the current job. Returns False if already paused."""
        with self._lock:
            if self._paused:
                return False
            self._paused = True
        logger.info("Queue processing paused")
        self.events.emit(QUEUE_PAUSED)
        return True

    def resume(self) -> bool:
        """Restart dequeuing. Returns False if the queue was not paused."""
        with self._lock:
            if not self._paused:
                return False
            self._paused = False
        logger.info("Queue processing resumed")
        self.events.emit(QUEUE_RESUMED)
        self._ensure_loop()
        return True

    def close(self) -> None:
        """Refuse further enqueues; jobs already accepted still run."""
        with self._lock:
            self._accepting = False
        logger.info("Queue closed to new jobs")

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def paused(self) -> bool:
        return self._paused

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def current_job(self) -> Optional[JobRecord]:
        with self._lock:
            return self._current.job if self._current else None

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.to_dict() if job else None

    def list_jobs(self) -> List[Dict[str, Any]]:
        """Known jobs, newest first."""
        with self._lock:
            items = [j.to_dict() for j in self._jobs.values()]
        items.reverse()
        return items

    def get_queued_jobs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [j.summary() for j in self._backlog]

    def get_queue_status(self) -> Dict[str, Any]:
        with self._lock:
            current = self._current.job if self._current else None
            return {
                "length": len(self._backlog),
                "processing": current is not None,
                "paused": self._paused,
                "current_job": {
                    "id": current.id,
                    "template": current.template,
                    "status": current.status.value,
                    "started_at": current.started_at.isoformat() if current.started_at else None,
                }
                if current
                else None,
            }

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            finalized = self._completed_jobs + self._failed_jobs
            rate = round(self._completed_jobs / finalized * 100, 1) if finalized else 0.0
            runtime = datetime.now(timezone.utc) - self._start_time
            return {
                "total_jobs": self._total_jobs,
                "completed_jobs": self._completed_jobs,
                "failed_jobs": self._failed_jobs,
                "start_time": self._start_time.isoformat(),
                "runtime": int(runtime.total_seconds()),
                "queue_length": len(self._backlog),
                "processing": self._current is not None,
                "paused": self._paused,
                "success_rate": rate,
            }


__all__ = ["JOBS_MAX", "JobStatus", "PrintQueue"]
