import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from arena.core.metrics import (
    LEADERBOARD_QUERIES_TOTAL,
    LEADERBOARD_QUERY_DURATION_SECONDS,
    DurationTimer,
)
from arena.core.time import utcnow
from arena.services import store
from arena.services.policy import higher_is_better, resolve_metric, task_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredSubmission:
    user_id: str
    score: float
    submitted_at: datetime
    submission_id: str = ""
    username: str | None = None
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    cohort: int | None = None


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    best_score: float
    submission_count: int
    last_submission: datetime
    best_achieved_at: datetime
    username: str | None = None
    name: str | None = None
    email: str = "Unknown"
    avatar_url: str | None = None
    cohort: int | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_submission"] = self.last_submission.isoformat()
        data["best_achieved_at"] = self.best_achieved_at.isoformat()
        return data


def _improves(score: float, best: float, higher: bool) -> bool:
    return score > best if higher else score < best


def aggregate(submissions: Iterable[ScoredSubmission], higher_is_better: bool) -> list[LeaderboardEntry]:
    """Fold scored submissions into one ranked entry per user.

    Submissions are folded in chronological order, so the result does not
    depend on input order. Equal best scores rank by who reached that score
    first, then by user id.
    """
    ordered = sorted(
        (s for s in submissions if s.score is not None),
        key=lambda s: (s.submitted_at, s.submission_id),
    )

    by_user: dict[str, LeaderboardEntry] = {}
    for sub in ordered:
        entry = by_user.get(sub.user_id)
        if entry is None:
            by_user[sub.user_id] = LeaderboardEntry(
                rank=0,
                user_id=sub.user_id,
                best_score=sub.score,
                submission_count=1,
                last_submission=sub.submitted_at,
                best_achieved_at=sub.submitted_at,
                username=sub.username,
                name=sub.name,
                email=sub.email or "Unknown",
                avatar_url=sub.avatar_url,
                cohort=sub.cohort,
            )
            continue
        entry.submission_count += 1
        if _improves(sub.score, entry.best_score, higher_is_better):
            entry.best_score = sub.score
            entry.best_achieved_at = sub.submitted_at
        entry.last_submission = max(entry.last_submission, sub.submitted_at)

    ranked = sorted(
        by_user.values(),
        key=lambda e: (
            -e.best_score if higher_is_better else e.best_score,
            e.best_achieved_at,
            e.user_id,
        ),
    )
    for i, entry in enumerate(ranked):
        entry.rank = i + 1
    return ranked


def get_task_leaderboard(db: Session, task_id: str, now: datetime | None = None) -> dict:
    """Recompute the leaderboard for a task from its stored scores."""
    with DurationTimer(LEADERBOARD_QUERY_DURATION_SECONDS):
        task = store.get_task(db, task_id)
        metric = resolve_metric(task)
        higher = higher_is_better(task, metric)
        rows = store.list_scored_submissions(db, task.id)
        entries = aggregate(
            (
                ScoredSubmission(
                    user_id=sub.user_id,
                    score=sub.score,
                    submitted_at=sub.submitted_at,
                    submission_id=sub.id,
                    username=user.username if user else None,
                    name=user.name if user else None,
                    email=user.email if user else None,
                    avatar_url=user.avatar_url if user else None,
                    cohort=user.cohort if user else None,
                )
                for sub, user in rows
            ),
            higher,
        )
    LEADERBOARD_QUERIES_TOTAL.inc()
    logger.info(
        "leaderboard_query",
        extra={"task_id": task.id, "metric": metric.value},
    )
    return {
        "task_id": task.id,
        "metric": metric.value,
        "higher_is_better": higher,
        "status": task_status(task, now or utcnow()),
        "entries": [e.to_dict() for e in entries],
    }
