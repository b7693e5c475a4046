import logging
import os
from pythonjsonlogger import jsonlogger

# Keys every record carries, with the value used when a call site omits them.
HTTP_FIELDS = {
    "request_id": "-",
    "method": "-",
    "path": "-",
    "status_code": 0,
    "duration_ms": 0,
    "client": "-",
}
SCORING_FIELDS = {
    "submission_id": None,
    "task_id": None,
    "user_id": None,
    "metric": None,
    "stage": None,
    "container_id": None,
    "reason": None,
}


class ContextDefaultsFilter(logging.Filter):
    """Fill in missing context keys so every JSON line has the same shape."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.defaults = {**HTTP_FIELDS, **SCORING_FIELDS, "service": service_name}

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for key, value in self.defaults.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _format_string() -> str:
    base = "%(asctime)s %(levelname)s %(name)s %(message)s"
    keys = list(HTTP_FIELDS) + ["service"] + list(SCORING_FIELDS)
    return base + " " + " ".join(f"{k}=%({k})s" for k in keys)


def setup_logging() -> None:
    """Send every log record to stdout as one JSON object.

    LOG_LEVEL sets the root level; SERVICE_NAME tells the API and worker apart.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    service_name = os.getenv("SERVICE_NAME", "arena-api")

    handler = logging.StreamHandler()
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            _format_string(),
            rename_fields={"levelname": "level", "asctime": "time"},
        )
    )
    handler.addFilter(ContextDefaultsFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)
    logging.captureWarnings(True)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "celery"):
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True
