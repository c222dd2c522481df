import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_config(dotenv_path: Optional[str] = None) -> Dict[str, Any]:
    load_dotenv(dotenv_path)

    config = {
        "IPP_BIN_DIR": _env_str("IPP_BIN_DIR", "./tools"),
        "IPP_SPOOL_DIR": _env_str("IPP_SPOOL_DIR", "./spool"),
        "DEVICE_URI": os.getenv("DEVICE_URI") or "",
        "TRANSFORM_COMMAND": _env_str("TRANSFORM_COMMAND", "pdftopng.py"),
        "TRANSFORM_OUTPUT_FORMAT": _env_str("TRANSFORM_OUTPUT_FORMAT", "image/png"),
        "TRANSFORM_POLL_INTERVAL": _env_float("TRANSFORM_POLL_INTERVAL", 1.0),
        "TRANSFORM_READ_SIZE": _env_int("TRANSFORM_READ_SIZE", 32768),
        "TRANSFORM_MAX_LINE": _env_int("TRANSFORM_MAX_LINE", 2048),
        "TRANSFORM_ENV_LIMIT": _env_int("TRANSFORM_ENV_LIMIT", 400),
        "LOCAL_PRINT_ENABLED": _env_bool("LOCAL_PRINT_ENABLED", False),
        "LOCAL_PRINT_COMMAND": _env_str("LOCAL_PRINT_COMMAND", "lp"),
        "POST_ENDPOINT": _env_str("POST_ENDPOINT", ""),
        "POST_AUTH_HEADER": os.getenv("POST_AUTH_HEADER") or "",
        "POST_AUTH_VALUE": os.getenv("POST_AUTH_VALUE") or "",
        "POST_TIMEOUT_SECONDS": _env_int("POST_TIMEOUT_SECONDS", 30),
        "POST_FILE_FIELD": _env_str("POST_FILE_FIELD", "file"),
        "POST_INCLUDE_META_FIELDS": _env_bool("POST_INCLUDE_META_FIELDS", True),
        "LOG_LEVEL": _env_str("LOG_LEVEL", "INFO").upper(),
    }

    if config["TRANSFORM_POLL_INTERVAL"] <= 0:
        raise ValueError("TRANSFORM_POLL_INTERVAL must be > 0")
    if config["TRANSFORM_ENV_LIMIT"] < 1:
        raise ValueError("TRANSFORM_ENV_LIMIT must be >= 1")

    # Uploading is optional; with POST_ENDPOINT empty the output only stays in the spool.
    return config


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
