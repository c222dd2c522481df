import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .job import Job
from .sinks import LogLevel


logger = logging.getLogger("ipp.delivery")


def resolve_endpoint(endpoint: str, job_id: int) -> str:
    if not endpoint:
        return endpoint
    return endpoint.replace("{job_id}", str(job_id)).replace("<jobId>", str(job_id))


def print_local(job: Job, path: Path, command: str = "lp", timeout_seconds: int = 60) -> bool:
    cmd = [command, str(path)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout_seconds)
    except (OSError, subprocess.TimeoutExpired) as e:
        job.log(LogLevel.ERROR, "Local print command %s failed: %s", command, e)
        return False

    job.log(LogLevel.DEBUG, "[Print To Local] %s, result = %d", " ".join(cmd), result.returncode)
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        job.log(LogLevel.ERROR, "Local print failed with status %d: %s", result.returncode, stderr[:2000])
        return False
    return True


def post_document(
    endpoint: str,
    auth_header: Optional[str],
    auth_value: Optional[str],
    timeout_seconds: int,
    file_field: str,
    include_meta_fields: bool,
    job: Job,
    path: Path,
    content_type: str,
) -> bool:
    logger.info("Upload enabled: POSTing job %d output to %s", job.id, endpoint)
    headers = {}
    if auth_header and auth_value:
        headers[auth_header] = auth_value

    data: Dict[str, Any] = {}
    if include_meta_fields:
        data = {
            "job_id": str(job.id),
            "job_name": job.name,
            "document_format": job.document_format,
            "output_format": content_type,
        }

    try:
        payload = path.read_bytes()
        logger.debug("POST payload: job_id=%s bytes=%d", job.id, len(payload))
        files = {(file_field or "file"): (path.name, payload, content_type)}
        resp = requests.post(endpoint, data=data, files=files, headers=headers, timeout=timeout_seconds)
        logger.info("POST response: status=%s", resp.status_code)
        if resp.status_code >= 400:
            try:
                body = resp.text
            except Exception:
                body = "<unreadable response body>"
            if body and len(body) > 2000:
                body = body[:2000] + "...<truncated>"
            if body:
                logger.warning("POST response body: %s", body)
        resp.raise_for_status()
    except (OSError, requests.RequestException) as e:
        # Upload problems are reported, never raised into the worker thread.
        logger.exception("Upload failed")
        job.log(LogLevel.ERROR, "Upload to %s failed: %s", endpoint, e)
        return False

    job.log(LogLevel.INFO, "Uploaded %s to %s", path.name, endpoint)
    return True


def deliver(job: Job, path: Path, content_type: str, config: Dict[str, Any]) -> bool:
    """Hand finished output to the configured collaborators; False if any failed."""
    delivered = True

    if config.get("LOCAL_PRINT_ENABLED"):
        delivered = print_local(job, path, config.get("LOCAL_PRINT_COMMAND") or "lp") and delivered

    endpoint = resolve_endpoint(config.get("POST_ENDPOINT") or "", job.id)
    if endpoint:
        delivered = (
            post_document(
                endpoint=endpoint,
                auth_header=config.get("POST_AUTH_HEADER"),
                auth_value=config.get("POST_AUTH_VALUE"),
                timeout_seconds=config.get("POST_TIMEOUT_SECONDS", 30),
                file_field=config.get("POST_FILE_FIELD", "file"),
                include_meta_fields=bool(config.get("POST_INCLUDE_META_FIELDS", True)),
                job=job,
                path=path,
                content_type=content_type,
            )
            and delivered
        )
    else:
        logger.info("Upload disabled (POST_ENDPOINT empty); skipping POST")

    return delivered
