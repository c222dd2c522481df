"""Shared fixtures: recording sinks, job factories and throwaway filters."""

import os
import stat
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from ipptransform.job import Job, JobController
from ipptransform.sinks import BufferDocumentSink, EventLog


PROJECT_ROOT = Path(__file__).resolve().parent.parent

posix_only = pytest.mark.skipif(os.name == "nt", reason="needs POSIX shebang scripts")


class RecordingLogSink:
    def __init__(self):
        self._lock = threading.Lock()
        self.lines = []

    def write_line(self, severity, text):
        with self._lock:
            self.lines.append((severity, text))

    def texts(self, severity=None):
        with self._lock:
            return [t for s, t in self.lines if severity is None or s == severity]


class FakeHandle:
    def __init__(self, pid=4242, status=0, wait_error=None):
        self.pid = pid
        self.status = status
        self.wait_error = wait_error
        self.terminated = 0
        self.waited = 0

    def terminate(self):
        self.terminated += 1

    def wait(self):
        self.waited += 1
        if self.wait_error is not None:
            raise self.wait_error
        return self.status


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def controller(events):
    return JobController(events)


@pytest.fixture
def make_job():
    counter = iter(range(1, 10_000))

    def _make(**kwargs):
        kwargs.setdefault("document_sink", BufferDocumentSink())
        kwargs.setdefault("log_sink", RecordingLogSink())
        return Job(next(counter), **kwargs)

    return _make


@pytest.fixture
def processing_job(make_job, controller):
    job = make_job()
    assert controller.begin_processing(job)
    return job


@pytest.fixture
def make_filter(tmp_path):
    """Write an executable Python filter script into tmp_path/bin."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name, body):
        path = bin_dir / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


def python_argv(code):
    return [sys.executable, "-c", textwrap.dedent(code)]


def wait_for(predicate, timeout=10.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return False
