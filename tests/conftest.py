# Ensure the repository root is on sys.path so `packs_print` can be imported in tests.

import sys
import threading
from pathlib import Path
from typing import List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    # We want to add <repo_root> to sys.path (if not already present).
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()


class FakeDevice:
    """In-memory device backend: scripted status byte, captured writes."""

    def __init__(self, status: Optional[int] = 0x18, accessible: bool = True):
        self.status = status
        self.accessible = accessible
        self.writes: List[bytes] = []
        self.write_error: Optional[Exception] = None
        self.block: Optional[threading.Event] = None
        self.status_reads = 0
        self.closed = False

    def is_accessible(self) -> bool:
        return self.accessible

    def read_status(self):
        self.status_reads += 1
        if not self.accessible:
            raise OSError(2, "No such device")
        return self.status

    def write(self, payload: bytes) -> int:
        if self.block is not None:
            self.block.wait(5)
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(payload)
        return len(payload)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def templates_dir(tmp_path):
    media = tmp_path / "templates" / "2x1"
    media.mkdir(parents=True)
    (media / "label.epl").write_text('N\nA20,20,0,4,1,1,N,"{{ name }}"\nP1\n', encoding="utf-8")
    (media / "blank.epl").write_text("{# nothing #}\n", encoding="utf-8")
    return tmp_path / "templates"


@pytest.fixture
def settings(templates_dir):
    return {
        "printer_type": "lp",
        "device": "/dev/null",
        "media": "2x1",
        "print_delay_ms": 0,
        "status_interval_ms": 50,
        "reconnect_delay_ms": 0,
        "reconnect_max_delay_ms": 0,
        "job_timeout_seconds": 5,
        "templates_dir": str(templates_dir),
        "template_encoding": "latin-1",
        "jobs_max": 200,
    }
