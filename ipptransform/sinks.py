import enum
import logging
import threading
from pathlib import Path
from typing import List, Optional, Tuple


job_logger = logging.getLogger("ipp.job")
event_logger = logging.getLogger("ipp.event")


class LogLevel(enum.IntEnum):
    ERROR = logging.ERROR
    WARN = logging.WARNING
    INFO = logging.INFO
    DEBUG = logging.DEBUG


class FileDocumentSink:
    """Spool file for the document produced by a filter.

    The file is created on the first append so an aborted transform that
    wrote nothing leaves no empty file behind.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.bytes_written = 0
        self._fh = None
        self._finalized = False

    def append(self, data: bytes) -> None:
        if self._finalized:
            raise ValueError("Document sink already finalized")
        if self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("wb")
        self._fh.write(data)
        self.bytes_written += len(data)

    def finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True
        if self._fh is not None:
            self._fh.flush()
            self._fh.close()
            self._fh = None

    @property
    def exists(self) -> bool:
        return self.bytes_written > 0 and self.path.is_file()


class BufferDocumentSink:
    def __init__(self) -> None:
        self._buf = bytearray()
        self.finalized = False

    def append(self, data: bytes) -> None:
        if self.finalized:
            raise ValueError("Document sink already finalized")
        self._buf += data

    def finalize(self) -> None:
        self.finalized = True

    @property
    def bytes_written(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


class LoggerLogSink:
    def __init__(self, job_id: int, logger: Optional[logging.Logger] = None) -> None:
        self.job_id = job_id
        self._logger = logger or job_logger

    def write_line(self, severity: LogLevel, text: str) -> None:
        self._logger.log(int(severity), "[Job %d] %s", self.job_id, text)


class LoggingNotifier:
    def notify(self, job, event, message: str) -> None:
        event_logger.info("[Job %d] %s: %s", job.id, event.value, message)


class EventLog(LoggingNotifier):
    """Notifier that also keeps every event for observers that poll."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[Tuple[int, object, str]] = []

    def notify(self, job, event, message: str) -> None:
        super().notify(job, event, message)
        with self._lock:
            self._events.append((job.id, event, message))

    def events(self, job_id: Optional[int] = None) -> List[Tuple[int, object, str]]:
        with self._lock:
            if job_id is None:
                return list(self._events)
            return [e for e in self._events if e[0] == job_id]
