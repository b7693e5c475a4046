import logging

from sqlalchemy.exc import SQLAlchemyError

from arena.core.errors import ScoringError
from arena.core.metrics import SCORING_DURATION_SECONDS, SUBMISSIONS_REJECTED_TOTAL, DurationTimer
from arena.core.sandbox import get_scoring_sandbox
from arena.core.storage import get_answer_store, get_submission_file_store
from arena.db.session import SessionLocal
from arena.models import Submission
from arena.scoring.csv_parser import decode_csv_bytes, parse_csv
from arena.services import store
from arena.services.policy import resolve_metric
from arena.services.submission import compute_score

logger = logging.getLogger(__name__)


def mark_failed(submission_id: str, message: str) -> None:
    """Give a still-pending submission its terminal state after retries run out.

    Best-effort: a database outage here is logged and the pending record kept.
    """
    db = SessionLocal()
    try:
        submission = db.get(Submission, submission_id)
        if submission is None or submission.status != "pending":
            return
        submission.status = "failed"
        submission.error = message[:2000]
        db.commit()
        logger.info(
            f"Marked submission {submission_id} failed",
            extra={"submission_id": submission_id, "stage": "give_up"},
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to update DB after error: {str(e)}",
            extra={"submission_id": submission_id},
        )
    finally:
        db.close()


def score_submission(
    submission_id: str,
    db=None,
    answer_store=None,
    submission_file_store=None,
    sandbox=None,
) -> dict:
    """Score a pending submission recorded in deferred mode.

    Validation failures mark the record failed. Storage and sandbox
    incidents are re-raised with the record left pending so the task retries.
    """
    owns_session = db is None
    if owns_session:
        db = SessionLocal()
    if answer_store is None:
        answer_store = get_answer_store()
    if submission_file_store is None:
        submission_file_store = get_submission_file_store()
    if sandbox is None:
        sandbox = get_scoring_sandbox()
    extra = {"submission_id": submission_id}

    try:
        submission = store.get_submission(db, submission_id)
        if submission.status != "pending":
            logger.info(f"Submission {submission_id} already {submission.status}; skipping", extra=extra)
            return {"status": submission.status, "score": submission.score}

        task = store.get_task(db, submission.task_id)
        extra.update(task_id=task.id, user_id=submission.user_id)
        try:
            metric = resolve_metric(task)
            extra["metric"] = metric.value
            with DurationTimer(SCORING_DURATION_SECONDS.labels(metric=metric.value)):
                parsed = parse_csv(decode_csv_bytes(submission_file_store.download(submission.file_path)))
                score = compute_score(task, metric, parsed, answer_store, sandbox)
        except ScoringError as e:
            SUBMISSIONS_REJECTED_TOTAL.labels(reason=e.code).inc()
            if e.incident:
                logger.error(f"Scoring incident for {submission_id}: {e.message}", extra={**extra, "reason": e.code})
                raise
            submission.status = "failed"
            submission.error = e.message[:2000]
            db.commit()
            logger.info("submission_rejected", extra={**extra, "reason": e.code})
            return {"status": "failed", "error": e.message}

        submission.score = score
        submission.status = "completed"
        submission.error = None
        db.commit()
        logger.info(f"Deferred scoring completed for {submission_id}. Score: {score}", extra=extra)
        return {"status": "completed", "score": score}
    finally:
        if owns_session:
            db.close()
