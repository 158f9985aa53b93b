import threading
import time

import pytest

from packs_print.printing import events as ev
from packs_print.printing.device import DeviceTracker
from packs_print.printing.errors import DeviceWriteError, ExecutorTimeoutError
from packs_print.printing.events import EventBus
from packs_print.printing.executor import PrintExecutor
from packs_print.printing.job import JobRecord, parse_job_input
from packs_print.printing.queue import PrintQueue
from packs_print.printing.render import TemplateRenderer


@pytest.fixture
def rig(fake_device, templates_dir):
    bus = EventBus()
    queue = PrintQueue(bus)
    tracker = DeviceTracker(fake_device, bus)
    tracker.retry_connection()
    faults = []
    executor = PrintExecutor(
        queue,
        tracker,
        TemplateRenderer(str(templates_dir)),
        fake_device,
        print_delay_ms=0,
        job_timeout_seconds=2,
        on_device_fault=lambda: faults.append(True),
    )
    executor.attach()
    yield queue, tracker, executor, faults
    fake_device.block = None
    executor.shutdown()


def _run(queue, job_input):
    job_id = queue.enqueue(job_input)
    assert queue.drain(timeout=5)
    return queue.get_job(job_id)


def test_prints_every_copy(rig, fake_device):
    queue, _, _, faults = rig
    job = _run(queue, {"template": "label", "data": {"name": "Widget"}, "copies": 3})
    assert job["status"] == "completed"
    payload = b'N\nA20,20,0,4,1,1,N,"Widget"\nP1\n'
    assert fake_device.writes == [payload] * 3
    assert job["result"] == {
        "template": "label",
        "copies": 3,
        "data_length": len(payload),
        "bytes_written": len(payload) * 3,
    }
    assert faults == []


def test_unavailable_device_fails_without_writing(rig, fake_device):
    queue, tracker, _, _ = rig
    tracker.mark_unavailable()
    job = _run(queue, {"template": "label", "data": {"name": "x"}})
    assert job["status"] == "failed"
    assert job["error"]["code"] == "device_unavailable"
    assert fake_device.writes == []


def test_status_read_error_reports_unavailable(rig, fake_device):
    queue, _, _, faults = rig
    fake_device.accessible = False
    job = _run(queue, {"template": "label", "data": {"name": "x"}})
    assert job["error"]["code"] == "device_unavailable"
    assert faults == [True]


def test_not_ready_device_fails(rig, fake_device):
    queue, _, _, faults = rig
    fake_device.status = 0x30
    job = _run(queue, {"template": "label", "data": {"name": "x"}})
    assert job["error"]["code"] == "device_not_ready"
    assert "paper out" in job["error"]["message"]
    assert fake_device.writes == []
    assert faults == [True]


def test_render_error_never_touches_device(rig, fake_device):
    queue, _, _, faults = rig
    job = _run(queue, {"template": "missing"})
    assert job["error"]["code"] == "render_error"
    assert fake_device.writes == []
    assert faults == []


def test_write_error_counts_partial_bytes(rig, fake_device):
    queue, _, executor, faults = rig
    original_write = fake_device.write
    calls = []

    def _flaky(payload):
        calls.append(payload)
        if len(calls) == 2:
            raise OSError(5, "I/O error")
        return original_write(payload)

    fake_device.write = _flaky
    job = _run(queue, {"template": "label", "data": {"name": "x"}, "copies": 3})
    assert job["status"] == "failed"
    assert job["error"]["code"] == "device_write_error"
    assert len(fake_device.writes) == 1
    assert faults == [True]
    assert executor.busy is False


def test_write_error_keeps_backend_byte_count(rig, fake_device):
    queue, _, _, _ = rig
    fake_device.write_error = DeviceWriteError("short write", bytes_written=4)
    failures = []
    queue.events.on(ev.JOB_FAILED, lambda job, error: failures.append(error))
    _run(queue, {"template": "label", "data": {"name": "x"}})
    assert failures[0].bytes_written == 4


def _build(fake_device, templates_dir, **kwargs):
    bus = EventBus()
    queue = PrintQueue(bus)
    tracker = DeviceTracker(fake_device, bus)
    tracker.retry_connection()
    kwargs.setdefault("print_delay_ms", 0)
    executor = PrintExecutor(queue, tracker, TemplateRenderer(str(templates_dir)), fake_device, **kwargs)
    executor.attach()
    return queue, tracker, executor


def _payload(name):
    return f'N\nA20,20,0,4,1,1,N,"{name}"\nP1\n'.encode("latin-1")


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_timed_out_job_and_jobs_behind_it_never_print(fake_device, templates_dir):
    faults = []
    queue, _, executor = _build(
        fake_device, templates_dir, job_timeout_seconds=0.2, on_device_fault=lambda: faults.append(True)
    )
    fake_device.block = threading.Event()
    try:
        queue.pause()
        first = queue.enqueue({"template": "label", "data": {"name": "A"}, "copies": 3})
        second = queue.enqueue({"template": "label", "data": {"name": "B"}})
        queue.resume()
        assert queue.drain(timeout=5)

        assert queue.get_job(first)["error"]["code"] == "executor_timeout"
        assert queue.get_job(second)["error"]["code"] == "device_unavailable"
        assert executor.hung
        # The monitor may poll while the abandoned write is stuck.
        assert executor.busy is False
        assert faults
    finally:
        fake_device.block.set()

    assert _wait_until(lambda: not executor.hung)
    # Only the copy already in flight at the timeout reached the device.
    assert fake_device.writes == [_payload("A")]

    third = _run(queue, {"template": "label", "data": {"name": "C"}})
    assert third["status"] == "completed"
    assert fake_device.writes == [_payload("A"), _payload("C")]
    executor.shutdown()


def test_abandoned_job_sends_nothing(fake_device, templates_dir):
    _, _, executor = _build(fake_device, templates_dir)
    job = JobRecord.from_input(parse_job_input({"template": "label", "data": {"name": "x"}}))
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ExecutorTimeoutError):
        executor.print_job(job, cancel)
    assert fake_device.writes == []
    executor.shutdown()


class _UsbGone(Exception):
    pass


def test_library_status_error_reports_unavailable(rig, fake_device):
    queue, _, _, faults = rig

    def _raise():
        raise _UsbGone("USB device not found")

    fake_device.read_status = _raise
    job = _run(queue, {"template": "label", "data": {"name": "x"}})
    assert job["status"] == "failed"
    assert job["error"]["code"] == "device_unavailable"
    assert "USB device not found" in job["error"]["message"]
    assert faults == [True]


def test_fault_callback_sees_write_finished(fake_device, templates_dir):
    seen = []
    executor = None

    def _on_fault():
        seen.append(executor.busy)

    queue, _, executor = _build(fake_device, templates_dir, job_timeout_seconds=2, on_device_fault=_on_fault)
    fake_device.write_error = OSError(5, "I/O error")
    job = _run(queue, {"template": "label", "data": {"name": "x"}})
    assert job["error"]["code"] == "device_write_error"
    assert seen == [False]
    executor.shutdown()


def test_busy_flag_set_while_writing(rig, fake_device):
    queue, _, executor, _ = rig
    seen = []
    original_write = fake_device.write

    def _observe(payload):
        seen.append(executor.busy)
        return original_write(payload)

    fake_device.write = _observe
    job = _run(queue, {"template": "label", "data": {"name": "x"}})
    assert job["status"] == "completed"
    assert seen == [True]
    assert executor.busy is False


def test_detach_stops_handling(rig):
    queue, _, executor, _ = rig
    executor.detach()
    assert not queue.events.has_handlers(ev.PRINT_REQUEST)
    executor.attach()
    executor.attach()
    _run(queue, {"template": "label", "data": {"name": "x"}})
    assert queue.get_stats()["completed_jobs"] == 1


def test_synchronous_mode_without_timeout(fake_device, templates_dir):
    bus = EventBus()
    queue = PrintQueue(bus)
    tracker = DeviceTracker(fake_device, bus)
    tracker.retry_connection()
    executor = PrintExecutor(
        queue, tracker, TemplateRenderer(str(templates_dir)), fake_device, print_delay_ms=0, job_timeout_seconds=0
    )
    executor.attach()
    job = _run(queue, {"template": "label", "data": {"name": "x"}, "copies": 2})
    assert job["result"]["bytes_written"] == 2 * len(fake_device.writes[0])
    executor.shutdown()
