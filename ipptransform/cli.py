import argparse
import mimetypes
import sys
import threading
from pathlib import Path
from typing import List, Optional

from .config import configure_logging, load_config
from .environment import JobAttribute
from .job import Job, JobController, JobState, reason_keywords
from .sinks import EventLog, FileDocumentSink
from .worker import TransformRequest, TransformWorker


def parse_attribute(text: str) -> JobAttribute:
    """Parse ``name[:syntax]=value``; commas separate the values of a set."""
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    name, _, syntax = name.partition(":")
    syntax = syntax or "keyword"

    values: List = value.split(",") if "," in value else [value]
    if syntax in {"integer", "enum"}:
        try:
            values = [int(v) for v in values]
        except ValueError:
            raise argparse.ArgumentTypeError(f"{name} expects integer values, got {value!r}")
    elif syntax == "boolean":
        values = [v.strip().lower() in {"1", "true", "yes", "on"} for v in values]
    return JobAttribute(name.strip(), values if len(values) > 1 else values[0], syntax)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Transform a document with a filter command")
    parser.add_argument("document", type=Path)
    parser.add_argument("--env-file", default=None, help="Load settings from this .env file")
    parser.add_argument("--command", default=None, help="Filter command (default TRANSFORM_COMMAND)")
    parser.add_argument("--bin-dir", default=None, help="Directory for non-absolute commands (default IPP_BIN_DIR)")
    parser.add_argument("--format", dest="document_format", default=None, help="Document MIME type")
    parser.add_argument("--output-format", default=None, help="Output MIME type (default TRANSFORM_OUTPUT_FORMAT)")
    parser.add_argument("--attr", type=parse_attribute, action="append", default=[], metavar="NAME[:SYNTAX]=VALUE")
    parser.add_argument("--output", type=Path, default=None, help="Write output here instead of the spool directory")
    parser.add_argument("--job-id", type=int, default=1)
    parser.add_argument("--timeout", type=float, default=0, help="Stop the job after this many seconds")
    parser.add_argument("--print-local", action="store_true", help="Send the output to the local print spooler")
    parser.add_argument("--no-upload", action="store_true", help="Skip POST_ENDPOINT upload")
    args = parser.parse_args(argv)

    config = load_config(args.env_file)
    configure_logging(config["LOG_LEVEL"])

    if args.bin_dir:
        config["IPP_BIN_DIR"] = args.bin_dir
    if args.print_local:
        config["LOCAL_PRINT_ENABLED"] = True
    if args.no_upload:
        config["POST_ENDPOINT"] = ""

    if not args.document.is_file():
        parser.error(f"document not found: {args.document}")

    document_format = args.document_format or mimetypes.guess_type(str(args.document))[0] or "application/octet-stream"
    job = Job(
        args.job_id,
        name=args.document.name,
        attributes=args.attr,
        document_path=args.document.resolve(),
        document_format=document_format,
        document_sink=FileDocumentSink(args.output) if args.output else None,
    )
    request = TransformRequest(
        command=args.command or config["TRANSFORM_COMMAND"],
        output_format=args.output_format or config["TRANSFORM_OUTPUT_FORMAT"],
    )

    controller = JobController(EventLog())
    worker = TransformWorker(config, controller)
    timer = None
    if args.timeout > 0:
        timer = threading.Timer(args.timeout, controller.stop, args=(job,))
        timer.daemon = True
        timer.start()

    thread = worker.start(job, request)
    try:
        while thread.is_alive():
            thread.join(0.5)
    except KeyboardInterrupt:
        controller.stop(job)
        thread.join()
    finally:
        if timer is not None:
            timer.cancel()

    state, reasons = job.snapshot()
    print(f"job {job.id}: {state.name.lower()} ({', '.join(reason_keywords(reasons))})")
    if state == JobState.COMPLETED and isinstance(job.document_sink, FileDocumentSink):
        print(f"output: {job.document_sink.path}")
    return 0 if state == JobState.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
