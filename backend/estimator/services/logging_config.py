"""Structured logging setup for the estimator services."""
import logging
import json
import sys
from datetime import datetime, timezone

# Extras copied onto the JSON line when a log call supplies them
_CONTEXT_FIELDS = (
    "job_id",
    "page_id",
    "takeoff_id",
    "detection_id",
    "tier",
    "elevations",
    "superseded",
    "inserted",
    "version",
    "line_count",
    "reason",
    "request_id",
    "duration_ms",
    "http_method",
    "http_path",
    "http_status",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with known context extras lifted to top level."""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True):
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
        ))
    root.handlers = [handler]

    for name in ["uvicorn.access", "httpcore", "httpx", "celery.redirected"]:
        logging.getLogger(name).setLevel(logging.WARNING)
