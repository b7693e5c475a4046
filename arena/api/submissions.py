from fastapi import APIRouter, UploadFile, File, Depends, Form, Query
from sqlalchemy.orm import Session
from arena.db.session import get_db
from arena.core.sandbox import get_scoring_sandbox
from arena.core.storage import get_answer_store, get_submission_file_store
from arena.core.time import start_of_utc_day, utcnow
from arena.services import store
from arena.services.policy import daily_limit
from arena.services.submission import submit
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/tasks/{task_id}/submit")
def submit_predictions(
    task_id: str,
    file: UploadFile = File(...),
    user_id: str = Form(...),
    db: Session = Depends(get_db),
    answer_store=Depends(get_answer_store),
    submission_file_store=Depends(get_submission_file_store),
    sandbox=Depends(get_scoring_sandbox),
):
    """
    Submit a CSV prediction file for a task.

    Scored synchronously: the response carries the score, the metric and
    how many submissions the user has left today. Policy, format and scoring
    failures are rendered by the ScoringError handler.
    """
    content = file.file.read()
    logger.info(
        f"Received {file.filename} ({len(content)} bytes)",
        extra={"task_id": task_id, "user_id": user_id},
    )
    return submit(
        db,
        task_id=task_id,
        user_id=user_id,
        file_bytes=content,
        answer_store=answer_store,
        submission_file_store=submission_file_store,
        sandbox=sandbox,
    )


@router.get("/tasks/{task_id}/quota")
def get_quota(task_id: str, user_id: str = Query(...), db: Session = Depends(get_db)):
    task = store.get_task(db, task_id)
    limit = daily_limit(task)
    used = store.count_submissions_since(db, task.id, user_id, start_of_utc_day(utcnow()))
    return {
        "task_id": task.id,
        "user_id": user_id,
        "limit": limit,
        "used_today": used,
        "remaining": max(0, limit - used),
    }


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, db: Session = Depends(get_db)):
    submission = store.get_submission(db, submission_id)
    return {
        "id": submission.id,
        "task_id": submission.task_id,
        "user_id": submission.user_id,
        "status": submission.status,
        "score": submission.score,
        "error": submission.error,
        "submitted_at": submission.submitted_at.isoformat() if submission.submitted_at else None,
    }
