import datetime as _dt
import enum
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .sinks import LoggingNotifier, LogLevel


logger = logging.getLogger("ipp.transform")


class JobState(enum.IntEnum):
    # Values follow the IPP job-state enum.
    PENDING = 3
    PROCESSING = 5
    STOPPED = 6
    ABORTED = 8
    COMPLETED = 9

    @property
    def terminal(self) -> bool:
        return self in (JobState.STOPPED, JobState.ABORTED, JobState.COMPLETED)


class JobReason(enum.Flag):
    NONE = 0
    JOB_STOPPED = enum.auto()
    TRANSFORM_FAILED = enum.auto()
    COMMAND_NOT_FOUND = enum.auto()
    SPAWN_FAILED = enum.auto()
    IO_FAILURE = enum.auto()
    NONZERO_EXIT = enum.auto()
    JOB_COMPLETED_SUCCESSFULLY = enum.auto()


_REASON_KEYWORDS = {
    JobReason.JOB_STOPPED: "job-stopped",
    JobReason.TRANSFORM_FAILED: "job-transform-failed",
    JobReason.COMMAND_NOT_FOUND: "transform-command-not-found",
    JobReason.SPAWN_FAILED: "transform-spawn-failed",
    JobReason.IO_FAILURE: "transform-io-failure",
    JobReason.NONZERO_EXIT: "transform-exit-status",
    JobReason.JOB_COMPLETED_SUCCESSFULLY: "job-completed-successfully",
}


def reason_keywords(reasons: JobReason) -> List[str]:
    keywords = [kw for flag, kw in _REASON_KEYWORDS.items() if flag in reasons]
    return keywords or ["none"]


class JobEvent(enum.Enum):
    JOB_STATE_CHANGED = "job-state-changed"
    JOB_STOPPED = "job-stopped"
    JOB_COMPLETED = "job-completed"


class RWLock:
    """Many concurrent readers or a single writer.

    Waiting writers block new readers so a stream of readers cannot starve a
    state transition.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Job:
    def __init__(
        self,
        job_id: int,
        name: str = "",
        attributes: Sequence = (),
        document_path: Optional[Path] = None,
        document_format: str = "application/octet-stream",
        document_sink=None,
        log_sink=None,
    ) -> None:
        self.id = job_id
        self.name = name
        self.attributes = list(attributes)
        self.document_path = Path(document_path) if document_path is not None else None
        self.document_format = document_format
        self.document_sink = document_sink
        self.log_sink = log_sink

        self.lock = RWLock()
        self.state = JobState.PENDING
        self.state_reasons = JobReason.NONE
        self.transform_process = None

        self.created = _dt.datetime.utcnow()
        self.processing: Optional[_dt.datetime] = None
        self.completed: Optional[_dt.datetime] = None

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.state.name} {'|'.join(reason_keywords(self.state_reasons))}>"

    def log(self, level: LogLevel, fmt: str, *args) -> None:
        text = fmt % args if args else fmt
        if self.log_sink is not None:
            self.log_sink.write_line(level, text)
        else:
            logger.log(int(level), "[Job %d] %s", self.id, text)

    def snapshot(self):
        with self.lock.read():
            return self.state, self.state_reasons


def _terminate(job: Job, handle) -> None:
    try:
        handle.terminate()
    except Exception:
        # Signal delivery is best effort; a failure must not break the caller.
        logger.exception("Failed to terminate transform process for job %d", job.id)


class JobController:
    def __init__(self, notifier=None) -> None:
        self.notifier = notifier if notifier is not None else LoggingNotifier()

    def begin_processing(self, job: Job) -> bool:
        with job.lock.write():
            if job.state != JobState.PENDING:
                return False
            job.state = JobState.PROCESSING
            job.processing = _dt.datetime.utcnow()

        self.notifier.notify(job, JobEvent.JOB_STATE_CHANGED, "Job processing.")
        return True

    def stop(self, job: Job) -> bool:
        with job.lock.read():
            if job.state != JobState.PROCESSING:
                return False

        with job.lock.write():
            # Another thread may have stopped or completed the job meanwhile.
            if job.state != JobState.PROCESSING:
                return False
            job.state = JobState.STOPPED
            job.state_reasons |= JobReason.JOB_STOPPED
            job.completed = _dt.datetime.utcnow()
            handle = job.transform_process

        if handle is not None:
            logger.debug("Terminating transform process %s for job %d", handle.pid, job.id)
            _terminate(job, handle)

        job.log(LogLevel.INFO, "Job stopped.")
        self.notifier.notify(job, JobEvent.JOB_STOPPED, "Job stopped.")
        return True

    def attach_process(self, job: Job, handle) -> None:
        with job.lock.write():
            job.transform_process = handle
            still_processing = job.state == JobState.PROCESSING

        if not still_processing:
            logger.debug("Job %d left processing before spawn finished; terminating pid %s", job.id, handle.pid)
            _terminate(job, handle)

    def detach_process(self, job: Job) -> None:
        with job.lock.write():
            job.transform_process = None

    def complete(self, job: Job, outcome) -> JobState:
        with job.lock.write():
            previous = job.state
            if previous == JobState.PROCESSING:
                if outcome.ok:
                    job.state = JobState.COMPLETED
                    job.state_reasons |= JobReason.JOB_COMPLETED_SUCCESSFULLY
                else:
                    job.state = JobState.ABORTED
                    job.state_reasons |= JobReason.TRANSFORM_FAILED | outcome.reason
                job.completed = _dt.datetime.utcnow()
            elif previous == JobState.STOPPED:
                job.state_reasons |= outcome.reason
            final = job.state

        if not outcome.ok and previous in (JobState.PROCESSING, JobState.STOPPED):
            job.log(LogLevel.ERROR, "Transform failed: %s", outcome.describe())
        if previous == JobState.PROCESSING:
            message = "Job completed." if final == JobState.COMPLETED else "Job aborted."
            self.notifier.notify(job, JobEvent.JOB_COMPLETED, message)
        elif previous != JobState.STOPPED:
            logger.warning("Ignoring transform outcome %s for job %d in state %s", outcome.describe(), job.id, previous.name)
        return final
