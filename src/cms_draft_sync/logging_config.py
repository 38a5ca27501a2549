from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

from google.cloud import logging as cloud_logging

SERVICE_NAME = "cms-draft-sync"

# Per-request trace id, set by the HTTP middleware
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys() | {"message", "asctime"}
)

_NOISY_LOGGERS = ("google", "httpx", "httpcore", "urllib3")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, in the field layout Cloud Logging ingests."""

    def __init__(self, *, service: str = SERVICE_NAME, environment: str | None = None) -> None:
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "service": self.service,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.environment:
            payload["environment"] = self.environment

        trace_id = trace_id_var.get()
        if trace_id:
            payload["logging.googleapis.com/trace"] = trace_id

        # item keys, branches, shas and paths passed via ``extra=``
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(
    *,
    environment: str = "dev",
    project_id: str | None = None,
    use_cloud_logging: bool = True,
) -> None:
    """Configure logging for the sync service.

    Args:
        environment: Environment name (dev, staging, prod)
        project_id: GCP project ID for Cloud Logging
        use_cloud_logging: Send records through the Cloud Logging client outside dev
    """
    log_level = logging.DEBUG if environment == "dev" else logging.INFO

    if use_cloud_logging and project_id and environment != "dev":
        client = cloud_logging.Client(project=project_id)
        client.setup_logging(
            log_level=log_level,
            excluded_loggers=_NOISY_LOGGERS,
            labels={"service": SERVICE_NAME, "environment": environment},
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter(environment=environment))
        logging.basicConfig(level=log_level, handlers=[handler])

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def get_trace_id() -> str | None:
    return trace_id_var.get()


__all__ = ["setup_logging", "set_trace_id", "get_trace_id", "StructuredFormatter", "SERVICE_NAME"]
