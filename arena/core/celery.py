from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure, task_retry, worker_init
from arena.core.config import settings
import logging
from arena.core.metrics import start_worker_metrics_server, start_celery_queue_length_collector
from arena.core.logging_config import setup_logging

# Ensure structured JSON logging for the worker process
setup_logging()

celery_app = Celery(
    "arena",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Leave headroom over the in-container scorer timeout
    task_time_limit=int(settings.SCORER_TIMEOUT_SECONDS) + 120,
    task_reject_on_worker_lost=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_routes={
        "arena.core.celery.score_submission_task": {"queue": "celery"},
    },
)


@worker_init.connect
def setup_observability(sender=None, **kwargs):
    logger = logging.getLogger(__name__)
    logger.info("Setting up observability for Celery worker")
    start_worker_metrics_server()
    start_celery_queue_length_collector(
        settings.CELERY_BROKER_URL,
        queue_names=["celery"],
        interval_seconds=10,
    )


# ---- Celery task lifecycle structured logs ----

def _submission_id(args, kwargs):
    if isinstance(kwargs, dict) and kwargs.get("submission_id"):
        return kwargs.get("submission_id")
    if isinstance(args, (list, tuple)) and len(args) > 0 and isinstance(args[0], str):
        return args[0]
    return None


@task_prerun.connect
def _on_task_start(task_id=None, task=None, args=None, kwargs=None, **extra_kwargs):
    logging.getLogger("celery.task").info(
        "task_started",
        extra={"stage": getattr(task, "name", None), "submission_id": _submission_id(args, kwargs)},
    )


@task_postrun.connect
def _on_task_success(task_id=None, task=None, args=None, kwargs=None, retval=None, state=None, **extra_kwargs):
    logging.getLogger("celery.task").info(
        "task_finished",
        extra={"stage": state, "submission_id": _submission_id(args, kwargs)},
    )


@task_failure.connect
def _on_task_failure(task_id=None, exception=None, args=None, kwargs=None, sender=None, **extra_kwargs):
    logging.getLogger("celery.task").error(
        f"task_failed: {str(exception)}",
        extra={"stage": getattr(sender, "name", None), "submission_id": _submission_id(args, kwargs)},
    )


@task_retry.connect
def _on_task_retry(request=None, reason=None, **extra_kwargs):
    logging.getLogger("celery.task").warning(
        f"task_retry: {str(reason)}",
        extra={"submission_id": _submission_id(getattr(request, "args", None), getattr(request, "kwargs", None))},
    )


@celery_app.task(bind=True, max_retries=3)
def score_submission_task(self, submission_id: str):
    """Celery task to score a pending submission; marks it failed once retries run out."""
    from arena.services.evaluation import mark_failed, score_submission
    from arena.core.errors import ScoringError

    try:
        return score_submission(submission_id)
    except ScoringError as exc:
        if not exc.incident:
            raise
        if self.request.retries >= self.max_retries:
            mark_failed(submission_id, f"System error: {exc.message}")
            raise
        raise self.retry(exc=exc, countdown=60)
    except Exception as exc:
        mark_failed(submission_id, f"System error: {str(exc)[:500]}")
        raise
