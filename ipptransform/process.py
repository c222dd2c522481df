import abc
import os
import queue
import selectors
import subprocess
import threading
from typing import List, Mapping, Optional, Sequence, Tuple

from .aggregator import Stream


DEFAULT_READ_SIZE = 32768


class ProcessHandle:
    """Opaque handle on a spawned filter process."""

    def __init__(self, popen: subprocess.Popen) -> None:
        self._popen = popen

    @property
    def pid(self) -> int:
        return self._popen.pid

    def terminate(self) -> None:
        # Popen.terminate is SIGTERM on POSIX and TerminateProcess on Windows.
        if self._popen.poll() is not None:
            return
        try:
            self._popen.terminate()
        except ProcessLookupError:
            pass
        except PermissionError:
            # Windows reports a process that exited meanwhile as access denied.
            if self._popen.poll() is None:
                raise

    def wait(self) -> int:
        return self._popen.wait()


class PipePoller(abc.ABC):
    @abc.abstractmethod
    def poll(self, timeout: float) -> List[Tuple[Stream, bytes]]:
        """Return data that is ready now; ``b""`` marks end of that stream."""

    @abc.abstractmethod
    def close(self) -> None:
        ...


class ProcessBackend(abc.ABC):
    def __init__(self, read_size: int = DEFAULT_READ_SIZE) -> None:
        self.read_size = read_size

    def _popen(self, argv: Sequence[str], env: Mapping[str, str], cwd: Optional[str]) -> subprocess.Popen:
        return subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=dict(env),
            cwd=cwd,
            close_fds=True,
        )

    @abc.abstractmethod
    def spawn(
        self, argv: Sequence[str], env: Mapping[str, str], cwd: Optional[str] = None
    ) -> Tuple[ProcessHandle, PipePoller]:
        ...


class SelectorPoller(PipePoller):
    def __init__(self, popen: subprocess.Popen, read_size: int) -> None:
        self._read_size = read_size
        self._files = [popen.stdout, popen.stderr]
        self._selector = selectors.DefaultSelector()
        for fileobj, stream in ((popen.stdout, Stream.STDOUT), (popen.stderr, Stream.STDERR)):
            os.set_blocking(fileobj.fileno(), False)
            self._selector.register(fileobj, selectors.EVENT_READ, stream)

    def poll(self, timeout: float) -> List[Tuple[Stream, bytes]]:
        ready = []
        for key, _ in self._selector.select(timeout):
            try:
                data = os.read(key.fd, self._read_size)
            except BlockingIOError:
                continue
            if not data:
                self._selector.unregister(key.fileobj)
            ready.append((key.data, data))
        return ready

    def close(self) -> None:
        self._selector.close()
        for fileobj in self._files:
            fileobj.close()


class PosixBackend(ProcessBackend):
    def spawn(self, argv, env, cwd=None):
        popen = self._popen(argv, env, cwd)
        return ProcessHandle(popen), SelectorPoller(popen, self.read_size)


class ThreadedPoller(PipePoller):
    """Pipe poller for platforms whose pipes cannot be passed to select()."""

    def __init__(self, popen: subprocess.Popen, read_size: int) -> None:
        self._read_size = read_size
        self._queue: "queue.Queue[Tuple[Stream, bytes, Optional[OSError]]]" = queue.Queue()
        self._files = [popen.stdout, popen.stderr]
        self._error: Optional[OSError] = None
        self._threads = []
        for fileobj, stream in ((popen.stdout, Stream.STDOUT), (popen.stderr, Stream.STDERR)):
            thread = threading.Thread(
                target=self._pump,
                args=(fileobj, stream),
                name=f"transform-{popen.pid}-{stream.value}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def _pump(self, fileobj, stream: Stream) -> None:
        try:
            while True:
                data = fileobj.read1(self._read_size)
                self._queue.put((stream, data, None))
                if not data:
                    return
        except OSError as e:
            self._queue.put((stream, b"", e))

    def poll(self, timeout: float) -> List[Tuple[Stream, bytes]]:
        if self._error is not None:
            raise self._error
        ready = []
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return ready
        while True:
            stream, data, error = item
            if error is not None:
                # Hand over what was read before the failure first.
                self._error = error
                if not ready:
                    raise error
                return ready
            ready.append((stream, data))
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return ready

    def close(self) -> None:
        for thread in self._threads:
            thread.join(timeout=1.0)
        for fileobj in self._files:
            fileobj.close()


class ThreadedBackend(ProcessBackend):
    def spawn(self, argv, env, cwd=None):
        popen = self._popen(argv, env, cwd)
        return ProcessHandle(popen), ThreadedPoller(popen, self.read_size)


def default_backend(read_size: int = DEFAULT_READ_SIZE) -> ProcessBackend:
    if os.name == "nt":
        return ThreadedBackend(read_size)
    return PosixBackend(read_size)
