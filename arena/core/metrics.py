import os
import time
import logging
from typing import Optional

from prometheus_client import Counter, Histogram, Gauge, start_http_server
from threading import Thread, Event
import redis as redis_lib


# ----------
# Submissions
# ----------

SUBMISSIONS_RECEIVED_TOTAL = Counter(
    "submissions_received_total",
    "Total CSV submissions accepted",
    labelnames=("mode",),  # sync | deferred
)

SUBMISSIONS_REJECTED_TOTAL = Counter(
    "submissions_rejected_total",
    "Submissions rejected by policy, parsing or scoring",
    labelnames=("reason",),
)

SUBMISSIONS_UPLOAD_BYTES_TOTAL = Counter(
    "submissions_upload_bytes_total",
    "Total bytes uploaded for submissions",
)


# ----------
# Scoring
# ----------

SCORING_DURATION_SECONDS = Histogram(
    "scoring_duration_seconds",
    "Time spent scoring a submission (parse + evaluate)",
    labelnames=("metric",),
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

CUSTOM_SCORER_RUNS_TOTAL = Counter(
    "custom_scorer_runs_total",
    "Sandboxed custom scorer executions",
    labelnames=("outcome",),  # ok | invalid | timeout | sandbox_error
)


# ----------
# Leaderboard
# ----------

LEADERBOARD_QUERIES_TOTAL = Counter(
    "leaderboard_queries_total",
    "Total leaderboard queries",
)

LEADERBOARD_QUERY_DURATION_SECONDS = Histogram(
    "leaderboard_query_duration_seconds",
    "Duration of leaderboard aggregation (including DB read)",
)

# Celery queue backlog
CELERY_QUEUE_LENGTH = Gauge(
    "celery_queue_length",
    "Length of Celery broker queue in Redis",
    labelnames=("queue_name",),
)


def init_fastapi_instrumentation(app) -> None:
    """Attach Prometheus HTTP instrumentation to the app.

    Imported lazily so worker processes don't need the instrumentator.
    """
    from prometheus_fastapi_instrumentator import Instrumentator
    from prometheus_client import REGISTRY

    Instrumentator(registry=REGISTRY).instrument(app)


def start_worker_metrics_server(port: Optional[int] = None) -> None:
    """Expose the worker's registry on its own port (the worker has no HTTP app)."""
    logger = logging.getLogger(__name__)
    port = int(port or os.getenv("WORKER_METRICS_PORT", "9101"))
    try:
        start_http_server(port, addr="0.0.0.0")
    except OSError as e:
        logger.error(f"Failed to start worker metrics server on port {port}: {str(e)}")
        return
    logger.info(f"Worker metrics server listening on 0.0.0.0:{port}")


def record_queue_lengths(client, queue_names: list[str]) -> None:
    for name in queue_names:
        CELERY_QUEUE_LENGTH.labels(queue_name=name).set(float(client.llen(name)))


def start_celery_queue_length_collector(
    broker_url: Optional[str],
    queue_names: Optional[list[str]] = None,
    interval_seconds: int = 10,
) -> Event:
    """Poll the Redis broker for pending scoring jobs in a daemon thread.

    Set the returned event to stop polling.
    """
    queue_names = queue_names or ["celery"]
    stop_event = Event()
    if not broker_url:
        return stop_event

    def _poll():
        client = None
        while not stop_event.is_set():
            try:
                client = client or redis_lib.from_url(broker_url, socket_timeout=5)
                record_queue_lengths(client, queue_names)
            except redis_lib.RedisError as e:
                client = None
                logging.getLogger(__name__).debug("queue_length_collect_failed", extra={"reason": str(e)})
            stop_event.wait(interval_seconds)

    Thread(target=_poll, name="celery-queue-length", daemon=True).start()
    return stop_event


class DurationTimer:
    """Time a block with perf_counter; optionally observe it on a histogram.

    ``seconds`` is set when the block exits, whether or not it raised.
    """

    def __init__(self, histogram=None):
        self.histogram = histogram
        self.seconds = 0.0
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.seconds = max(0.0, time.perf_counter() - self._start)
        if self.histogram is not None and exc_type is None:
            self.histogram.observe(self.seconds)
        return False
