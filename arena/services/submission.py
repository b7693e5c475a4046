import logging
import uuid
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from arena.core.config import settings
from arena.core.errors import (
    AnswerUnavailableError,
    FormatError,
    ScoringError,
    StorageError,
)
from arena.core.metrics import (
    SCORING_DURATION_SECONDS,
    SUBMISSIONS_RECEIVED_TOTAL,
    SUBMISSIONS_REJECTED_TOTAL,
    SUBMISSIONS_UPLOAD_BYTES_TOTAL,
    DurationTimer,
)
from arena.core.time import as_naive_utc, epoch_ms, utcnow
from arena.scoring.columns import row_objects
from arena.scoring.csv_parser import TabularValue, decode_csv_bytes, parse_csv
from arena.scoring.evaluators import ROW_ALIGNED_METRICS, Metric, check_dimensions, evaluate
from arena.services import store
from arena.services.policy import check_submission_policy

logger = logging.getLogger(__name__)


def parse_submission_file(file_bytes: bytes) -> TabularValue:
    if len(file_bytes) > settings.MAX_UPLOAD_BYTES:
        raise FormatError(
            f"File is larger than {settings.MAX_UPLOAD_BYTES} bytes",
            limit=settings.MAX_UPLOAD_BYTES,
        )
    return parse_csv(decode_csv_bytes(file_bytes))


def load_answer(task, answer_store) -> TabularValue:
    data = answer_store.download(task.answer_file_path)
    try:
        return parse_csv(decode_csv_bytes(data))
    except FormatError as e:
        logger.warning(
            f"Answer file for task {task.id} is malformed: {e.message}",
            extra={"task_id": task.id, "stage": "parse_answer"},
        )
        raise AnswerUnavailableError("Answer file is malformed") from e


def compute_score(task, metric: Metric, submission: TabularValue, answer_store, sandbox) -> float:
    """Load the ground truth and score an already-parsed submission.

    Row counts are compared once here, before any evaluator runs.
    """
    answer = load_answer(task, answer_store)
    if metric in ROW_ALIGNED_METRICS:
        check_dimensions(len(submission), len(answer))
    if metric is Metric.CUSTOM:
        return sandbox.score(
            task.custom_scoring_code,
            row_objects(answer),
            row_objects(submission),
            task_id=task.id,
        )
    return evaluate(metric, submission, answer)


def submission_file_path(task_id: str, user_id: str, submission_id: str, now: datetime) -> str:
    return f"{task_id}/{user_id}/{epoch_ms(now)}-{submission_id}.csv"


def _log_rejection(err: ScoringError, extra: dict) -> None:
    SUBMISSIONS_REJECTED_TOTAL.labels(reason=err.code).inc()
    if err.incident:
        logger.error(f"Submission failed: {err.message}", extra={**extra, "reason": err.code})
    else:
        logger.info("submission_rejected", extra={**extra, "reason": err.code})


def _persist(db: Session, file_store, path: str, file_bytes: bytes, **record):
    """Upload the file, then insert the record. The insert is the last step."""
    file_store.upload(path, file_bytes, "text/csv")
    try:
        return store.insert_submission(db, file_path=path, **record)
    except SQLAlchemyError as e:
        db.rollback()
        file_store.remove(path)
        raise StorageError("Failed to save submission") from e


def submit(
    db: Session,
    task_id: str,
    user_id: str,
    file_bytes: bytes,
    answer_store,
    submission_file_store,
    sandbox,
    now: datetime | None = None,
    enqueue=None,
) -> dict:
    """Validate, score and record one submission.

    In sync mode nothing is written unless scoring succeeded. In deferred mode
    the file and a pending record are stored once the upload parses, and a
    worker scores it later. Failures raise a :class:`ScoringError` subclass
    for the caller to render.
    """
    now = as_naive_utc(now) if now else utcnow()
    submission_id = str(uuid.uuid4())
    extra = {"task_id": task_id, "user_id": user_id, "submission_id": submission_id}
    try:
        task = store.get_task(db, task_id)
        decision = check_submission_policy(
            task,
            now,
            lambda since: store.count_submissions_since(db, task.id, user_id, since),
        )
        extra["metric"] = decision.metric.value
        parsed = parse_submission_file(file_bytes)
        path = submission_file_path(task.id, user_id, submission_id, now)

        if settings.SCORING_MODE == "deferred":
            return _submit_deferred(
                db, task, user_id, submission_id, path, file_bytes, submission_file_store,
                decision, now, extra, enqueue or enqueue_scoring,
            )

        with DurationTimer(SCORING_DURATION_SECONDS.labels(metric=decision.metric.value)):
            score = compute_score(task, decision.metric, parsed, answer_store, sandbox)

        submission = _persist(
            db,
            submission_file_store,
            path,
            file_bytes,
            task_id=task.id,
            user_id=user_id,
            score=score,
            status="completed",
            submitted_at=now,
            submission_id=submission_id,
        )
    except ScoringError as e:
        _log_rejection(e, extra)
        raise

    SUBMISSIONS_RECEIVED_TOTAL.labels(mode="sync").inc()
    SUBMISSIONS_UPLOAD_BYTES_TOTAL.inc(len(file_bytes))
    logger.info(f"Submission {submission.id} scored {score}", extra=extra)
    return {
        "submission_id": submission.id,
        "status": submission.status,
        "score": score,
        "metric": decision.metric.value,
        "higher_is_better": decision.higher_is_better,
        "remaining_submissions_today": decision.remaining_after_submit,
    }


def enqueue_scoring(submission_id: str) -> None:
    # Imported lazily so the API process only touches Celery in deferred mode
    from arena.core.celery import score_submission_task

    score_submission_task.delay(submission_id)


def _submit_deferred(
    db, task, user_id, submission_id, path, file_bytes, file_store, decision, now, extra, enqueue
) -> dict:
    submission = _persist(
        db,
        file_store,
        path,
        file_bytes,
        task_id=task.id,
        user_id=user_id,
        score=None,
        status="pending",
        submitted_at=now,
        submission_id=submission_id,
    )
    try:
        enqueue(submission.id)
    except Exception as e:
        submission.status = "failed"
        submission.error = "Submission could not be queued for scoring"
        db.commit()
        raise StorageError("Failed to queue submission for scoring") from e

    SUBMISSIONS_RECEIVED_TOTAL.labels(mode="deferred").inc()
    SUBMISSIONS_UPLOAD_BYTES_TOTAL.inc(len(file_bytes))
    logger.info(f"Queued submission {submission.id} for scoring", extra=extra)
    return {
        "submission_id": submission.id,
        "status": submission.status,
        "score": None,
        "metric": decision.metric.value,
        "higher_is_better": decision.higher_is_better,
        "remaining_submissions_today": decision.remaining_after_submit,
    }
