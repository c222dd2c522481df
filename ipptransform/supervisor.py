import os
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from .aggregator import OutputAggregator, Stream
from .job import Job, JobController
from .outcome import Outcome
from .process import ProcessBackend, default_backend
from .sinks import LogLevel


DEFAULT_POLL_INTERVAL = 1.0


class CommandNotFoundError(FileNotFoundError):
    pass


def resolve_command(command: str, bin_dir: Union[str, Path]) -> str:
    """Return the absolute path of a filter command.

    Names that are not absolute are looked up in ``bin_dir``.
    """
    if not command:
        raise CommandNotFoundError("Empty transform command")
    path = Path(command)
    if not path.is_absolute():
        path = Path(bin_dir).resolve() / path
    if not path.is_file() or not os.access(path, os.X_OK):
        raise CommandNotFoundError(f"Transform command not found or not executable: {path}")
    return str(path)


class FilterSupervisor:
    def __init__(
        self,
        controller: JobController,
        bin_dir: Union[str, Path] = ".",
        backend: Optional[ProcessBackend] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_line: int = 2048,
        stderr_level: LogLevel = LogLevel.DEBUG,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.controller = controller
        self.bin_dir = Path(bin_dir)
        self.backend = backend or default_backend()
        self.poll_interval = poll_interval
        self.max_line = max_line
        self.stderr_level = stderr_level

    def run(self, command: str, argv: Sequence[str], env: Mapping[str, str], job: Job) -> Outcome:
        aggregator = OutputAggregator(job.document_sink, job.log_sink, self.stderr_level, self.max_line)
        try:
            return self._run(command, argv, env, job, aggregator)
        finally:
            aggregator.close()

    def _run(self, command, argv, env, job, aggregator: OutputAggregator) -> Outcome:
        try:
            command = resolve_command(command, self.bin_dir)
        except CommandNotFoundError as e:
            job.log(LogLevel.ERROR, "%s", e)
            return Outcome.command_not_found(command)

        argv = list(argv) or [command]
        job.log(LogLevel.DEBUG, "Running transform command %s %s", command, " ".join(argv[1:]))
        start = time.monotonic()

        try:
            handle, poller = self.backend.spawn([command] + argv[1:], env)
        except (OSError, ValueError) as e:
            job.log(LogLevel.ERROR, "Unable to start %s: %s", command, e)
            return Outcome.spawn_failed(str(e))

        self.controller.attach_process(job, handle)
        job.log(LogLevel.INFO, "Started %s (pid %d)", command, handle.pid)

        read_error: Optional[OSError] = None
        wait_error: Optional[OSError] = None
        open_streams = {Stream.STDOUT, Stream.STDERR}
        try:
            while open_streams:
                for stream, data in poller.poll(self.poll_interval):
                    if data:
                        aggregator.feed(stream, data)
                    elif stream in open_streams:
                        open_streams.discard(stream)
                        aggregator.end(stream)
        except OSError as e:
            read_error = e
            job.log(LogLevel.ERROR, "Unable to read from %s: %s", command, e)
        finally:
            if open_streams:
                # Nothing drains the pipes anymore; make sure the wait below returns.
                handle.terminate()
            poller.close()
            try:
                status = handle.wait()
            except OSError as e:
                wait_error = e
            finally:
                self.controller.detach_process(job)

        if wait_error is not None:
            job.log(LogLevel.ERROR, "Unable to wait for %s (pid %d): %s", command, handle.pid, wait_error)
            return Outcome.io_failure(str(wait_error))

        job.log(
            LogLevel.INFO,
            "%s (pid %d) exited with status %d after %.3f seconds, %d bytes of output",
            command,
            handle.pid,
            status,
            time.monotonic() - start,
            aggregator.document_bytes,
        )
        if read_error is not None:
            return Outcome.io_failure(str(read_error))
        if status != 0:
            return Outcome.nonzero_exit(status)
        return Outcome.success()
