"""SQLAlchemy-backed task store and submission store."""
import uuid
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from arena.core.errors import SubmissionNotFoundError, TaskNotFoundError
from arena.core.time import utcnow
from arena.models import Submission, Task, User


def get_task(db: Session, task_id: str) -> Task:
    task = db.get(Task, task_id)
    if task is None:
        task = db.query(Task).filter(Task.slug == task_id).one_or_none()
    if task is None:
        raise TaskNotFoundError(f"Task not found: {task_id}", task_id=task_id)
    return task


def get_submission(db: Session, submission_id: str) -> Submission:
    submission = db.get(Submission, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(f"Submission not found: {submission_id}", submission_id=submission_id)
    return submission


def count_submissions_since(db: Session, task_id: str, user_id: str, since: datetime) -> int:
    return (
        db.query(func.count(Submission.id))
        .filter(Submission.task_id == task_id)
        .filter(Submission.user_id == user_id)
        .filter(Submission.submitted_at >= since)
        .scalar()
    ) or 0


def insert_submission(
    db: Session,
    task_id: str,
    user_id: str,
    file_path: str,
    score: float | None,
    status: str = "completed",
    submitted_at: datetime | None = None,
    submission_id: str | None = None,
) -> Submission:
    submission = Submission(
        id=submission_id or str(uuid.uuid4()),
        task_id=task_id,
        user_id=user_id,
        file_path=file_path,
        score=score,
        status=status,
        submitted_at=submitted_at or utcnow(),
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


def list_scored_submissions(db: Session, task_id: str) -> list[tuple[Submission, User | None]]:
    """Scored submissions for a task joined with the submitter's display fields."""
    return (
        db.query(Submission, User)
        .outerjoin(User, User.id == Submission.user_id)
        .filter(Submission.task_id == task_id)
        .filter(Submission.score.isnot(None))
        .order_by(Submission.submitted_at.asc(), Submission.id.asc())
        .all()
    )
