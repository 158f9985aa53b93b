import re
from datetime import datetime, timedelta, timezone

import pytest

from packs_print.printing.errors import DeviceUnavailableError, InvalidJobError, JobStateError
from packs_print.printing.job import JobInput, JobRecord, JobStatus, generate_job_id, parse_job_input


def test_generate_job_id_format_and_uniqueness():
    ids = {generate_job_id() for _ in range(200)}
    assert len(ids) == 200
    for job_id in ids:
        assert re.fullmatch(r"job_\d+_[a-z0-9]{9}", job_id)


def test_parse_job_input_defaults_and_strip():
    job_input_model = parse_job_input({"template": "  label  ", "data": None, "copies": None})
    assert job_input_model.template == "label"
    assert job_input_model.data == {}
    assert job_input_model.copies == 1


def test_parse_job_input_passes_models_through():
    job_input_model = JobInput(template="label", copies=3)
    assert parse_job_input(job_input_model) is job_input_model


def test_parse_job_input_message_names_field():
    with pytest.raises(InvalidJobError) as exc:
        parse_job_input({"template": "label", "copies": 0})
    assert str(exc.value).startswith("Invalid job: copies")
    assert exc.value.code == "invalid_job"


def test_lifecycle_happy_path():
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    job = JobRecord.from_input(JobInput(template="label", data={"name": "A"}), now=t0)
    assert job.status is JobStatus.QUEUED
    assert not job.finished

    job.start(now=t0 + timedelta(seconds=1))
    assert job.status is JobStatus.PROCESSING
    job.complete(None, now=t0 + timedelta(seconds=2))
    assert job.status is JobStatus.COMPLETED
    assert job.result == {}
    assert job.finished
    assert job.queued_at <= job.started_at <= job.completed_at
    assert job.failed_at is None


def test_timestamps_never_go_backwards():
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    job = JobRecord.from_input(JobInput(template="label"), now=t0)
    job.start(now=t0 - timedelta(seconds=5))
    assert job.started_at == t0
    job.fail(RuntimeError("x"), now=t0 - timedelta(seconds=10))
    assert job.failed_at == t0


@pytest.mark.parametrize("action", ["complete", "fail"])
def test_cannot_finish_queued_job(action):
    job = JobRecord.from_input(JobInput(template="label"))
    with pytest.raises(JobStateError):
        if action == "complete":
            job.complete({})
        else:
            job.fail(RuntimeError("x"))


def test_finished_job_is_terminal():
    job = JobRecord.from_input(JobInput(template="label"))
    job.start()
    job.fail(DeviceUnavailableError())
    with pytest.raises(JobStateError):
        job.complete({})
    with pytest.raises(JobStateError):
        job.start()
    assert job.status is JobStatus.FAILED


def test_to_dict_serializes_error_and_times():
    job = JobRecord.from_input(JobInput(template="label", data={"z": 1, "a": 2}, copies=2))
    job.start()
    job.fail(DeviceUnavailableError())
    out = job.to_dict()
    assert out["status"] == "failed"
    assert list(out["data"]) == ["z", "a"]
    assert out["copies"] == 2
    assert out["error"] == {
        "type": "DeviceUnavailableError",
        "code": "device_unavailable",
        "message": "Printer device not available",
    }
    assert datetime.fromisoformat(out["failed_at"]) >= datetime.fromisoformat(out["queued_at"])
    assert out["completed_at"] is None


@pytest.mark.parametrize("copies", ["2", 2.0, 1.5, True])
def test_copies_must_be_a_real_integer(copies):
    with pytest.raises(InvalidJobError):
        parse_job_input({"template": "label", "copies": copies})
