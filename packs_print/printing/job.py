"""
Job records for the print queue.

A job is one request to produce N copies of a rendered template. Identity
(id, template, data, copies) is fixed at enqueue time; lifecycle fields are
mutated only through start/complete/fail, which enforce the single legal path
queued -> processing -> completed | failed.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field, StrictInt, ValidationError, field_validator

from .errors import InvalidJobError, JobStateError, error_to_dict

_ID_ALPHABET = string.ascii_lowercase + string.digits


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobInput(BaseModel):
    """Validated enqueue payload: template name, field data, copy count."""

    template: str = Field(description="Name of the label template to render", min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict, description="Template fields, in order")
    copies: StrictInt = Field(default=1, ge=1, description="Number of physical copies")

    @field_validator("template", mode="before")
    @classmethod
    def _strip_template(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("copies", mode="before")
    @classmethod
    def _copies_int(cls, v: Any) -> Any:
        if v is None:
            return 1
        if isinstance(v, bool):
            raise ValueError("copies must be a positive integer")
        return v


def parse_job_input(job_input: Union[JobInput, Mapping[str, Any], None]) -> JobInput:
    """
    Validate raw enqueue input. Raises InvalidJobError with the first
    validation message when the input is malformed.
    """
    if isinstance(job_input, JobInput):
        return job_input
    if not isinstance(job_input, Mapping):
        raise InvalidJobError("Invalid job: expected a mapping with a template")
    try:
        return JobInput.model_validate(dict(job_input))
    except ValidationError as e:
        try:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            msg = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
        except Exception:
            msg = str(e)
        raise InvalidJobError(f"Invalid job: {msg}") from e


def generate_job_id() -> str:
    """Time-based id with a random suffix, e.g. job_1700000000000_k3j9x0q1a."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"job_{int(time.time() * 1000)}_{suffix}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


@dataclass
class JobRecord:
    id: str
    template: str
    data: Dict[str, Any] = field(default_factory=dict)
    copies: int = 1
    status: JobStatus = JobStatus.QUEUED
    queued_at: datetime = field(default_factory=_utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    result: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def from_input(cls, job_input: JobInput, now: Optional[datetime] = None) -> "JobRecord":
        return cls(
            id=generate_job_id(),
            template=job_input.template,
            data=dict(job_input.data),
            copies=job_input.copies,
            queued_at=now or _utc_now(),
        )

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def _not_before(self, ts: Optional[datetime], floor: datetime) -> datetime:
        # Wall clocks can step backwards; keep per-job timestamps ordered.
        ts = ts or _utc_now()
        return ts if ts >= floor else floor

    def start(self, now: Optional[datetime] = None) -> None:
        if self.status is not JobStatus.QUEUED:
            raise JobStateError(self.id, self.status.value, JobStatus.PROCESSING.value)
        self.status = JobStatus.PROCESSING
        self.started_at = self._not_before(now, self.queued_at)

    def complete(self, result: Any = None, now: Optional[datetime] = None) -> None:
        if self.status is not JobStatus.PROCESSING:
            raise JobStateError(self.id, self.status.value, JobStatus.COMPLETED.value)
        self.status = JobStatus.COMPLETED
        self.completed_at = self._not_before(now, self.started_at or self.queued_at)
        self.result = {} if result is None else result

    def fail(self, error: BaseException, now: Optional[datetime] = None) -> None:
        if self.status is not JobStatus.PROCESSING:
            raise JobStateError(self.id, self.status.value, JobStatus.FAILED.value)
        self.status = JobStatus.FAILED
        self.failed_at = self._not_before(now, self.started_at or self.queued_at)
        self.error = error

    def summary(self) -> Dict[str, Any]:
        """Short form used in backlog listings."""
        return {
            "id": self.id,
            "template": self.template,
            "copies": self.copies,
            "queued_at": _iso(self.queued_at),
            "status": self.status.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "template": self.template,
            "data": dict(self.data),
            "copies": self.copies,
            "status": self.status.value,
            "queued_at": _iso(self.queued_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "failed_at": _iso(self.failed_at),
            "result": self.result,
            "error": error_to_dict(self.error),
        }


__all__ = [
    "JobInput",
    "JobRecord",
    "JobStatus",
    "generate_job_id",
    "parse_job_input",
]
