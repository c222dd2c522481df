import datetime as _dt
import logging
import mimetypes
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .delivery import deliver
from .environment import JobAttribute, build_environment
from .job import Job, JobController, JobState
from .outcome import Outcome
from .process import default_backend
from .sinks import FileDocumentSink, LoggerLogSink, LogLevel
from .supervisor import FilterSupervisor


logger = logging.getLogger("ipp.transform")


@dataclass
class TransformRequest:
    command: str
    output_format: str = "image/png"
    printer_defaults: List[JobAttribute] = field(default_factory=list)
    deliver: bool = True


def output_extension(mime_type: str) -> str:
    return mimetypes.guess_extension(mime_type.split(";", 1)[0].strip()) or ".bin"


class TransformWorker:
    def __init__(
        self,
        config: Dict[str, Any],
        controller: Optional[JobController] = None,
        supervisor: Optional[FilterSupervisor] = None,
    ) -> None:
        self.config = config
        self.controller = controller or JobController()
        self.supervisor = supervisor or FilterSupervisor(
            self.controller,
            bin_dir=config["IPP_BIN_DIR"],
            backend=default_backend(config.get("TRANSFORM_READ_SIZE", 32768)),
            poll_interval=config.get("TRANSFORM_POLL_INTERVAL", 1.0),
            max_line=config.get("TRANSFORM_MAX_LINE", 2048),
        )

    def spool_dir_for(self, job: Job) -> Path:
        now = _dt.datetime.utcnow().strftime("%Y%m%dT%H%M%SZ")
        spool_dir = Path(self.config["IPP_SPOOL_DIR"]).resolve() / f"{now}_{job.id}"
        spool_dir.mkdir(parents=True, exist_ok=True)
        return spool_dir

    def process(self, job: Job, request: TransformRequest) -> Optional[Outcome]:
        if not self.controller.begin_processing(job):
            logger.warning("Job %d is %s, not pending; not transforming", job.id, job.state.name)
            return None

        try:
            outcome = self._transform(job, request)
        except Exception as e:
            # The job is processing now and must not be left there.
            logger.exception("Transform worker for job %d failed", job.id)
            outcome = Outcome.io_failure(str(e))
        final = self.controller.complete(job, outcome)

        sink = job.document_sink
        if request.deliver and final == JobState.COMPLETED and isinstance(sink, FileDocumentSink) and sink.exists:
            deliver(job, sink.path, request.output_format, self.config)
        return outcome

    def _transform(self, job: Job, request: TransformRequest) -> Outcome:
        if job.log_sink is None:
            job.log_sink = LoggerLogSink(job.id)
        if job.document_sink is None:
            spool_dir = self.spool_dir_for(job)
            job.document_sink = FileDocumentSink(spool_dir / ("output" + output_extension(request.output_format)))
            logger.info("Spooling job %d output to %s", job.id, job.document_sink.path)

        env = build_environment(
            job.attributes,
            content_type=job.document_format,
            output_type=request.output_format,
            device_uri=self.config.get("DEVICE_URI") or None,
            log_level=(self.config.get("LOG_LEVEL") or "").lower() or None,
            printer_defaults=request.printer_defaults,
            capacity=self.config.get("TRANSFORM_ENV_LIMIT", 400),
        )
        if env.truncated:
            job.log(LogLevel.WARN, "Dropped %d environment entries beyond the limit of %d", len(env.dropped), env.capacity)

        argv = [request.command]
        if job.document_path is not None:
            argv.append(str(job.document_path))

        return self.supervisor.run(request.command, argv, env.as_env(), job)

    def start(self, job: Job, request: TransformRequest) -> threading.Thread:
        thread = threading.Thread(
            target=self.process,
            args=(job, request),
            name=f"transform-job-{job.id}",
            daemon=True,
        )
        thread.start()
        return thread
