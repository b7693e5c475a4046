"""Submission policy: checks that run before any file is parsed.

Order matters and the first failure wins:

1. task window (not started / ended)
2. answer file present
3. scoring configured (custom code stored, or a known metric)
4. daily quota for this user and task, counted from 00:00 UTC

Quota counting and the later insert are not one transaction, so two
concurrent submissions at the boundary can both pass. The limit is soft.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from arena.core.config import settings
from arena.core.errors import (
    AnswerUnavailableError,
    EndedError,
    NotStartedError,
    QuotaExceededError,
    ScoringNotConfiguredError,
)
from arena.core.time import as_naive_utc, start_of_utc_day
from arena.scoring.evaluators import HIGHER_IS_BETTER, Metric


@dataclass(frozen=True)
class PolicyDecision:
    metric: Metric
    higher_is_better: bool
    limit: int
    used_today: int

    @property
    def remaining_after_submit(self) -> int:
        return max(0, self.limit - self.used_today - 1)


def task_status(task, now: datetime) -> str:
    now = as_naive_utc(now)
    if now < task.start_date:
        return "upcoming"
    if now > task.end_date:
        return "ended"
    return "active"


def daily_limit(task) -> int:
    return task.max_submissions_per_day or settings.DEFAULT_MAX_SUBMISSIONS_PER_DAY


def resolve_metric(task) -> Metric:
    if task.use_custom_scoring:
        return Metric.CUSTOM
    if not task.evaluation_metric:
        raise ScoringNotConfiguredError("Task has no evaluation metric configured")
    metric = Metric.parse(task.evaluation_metric)
    if metric is Metric.CUSTOM:
        raise ScoringNotConfiguredError("Custom metric requires custom scoring to be enabled")
    return metric


def higher_is_better(task, metric: Metric) -> bool:
    if metric is Metric.CUSTOM:
        return bool(task.custom_higher_is_better)
    return HIGHER_IS_BETTER[metric]


def check_submission_policy(task, now: datetime, count_since: Callable[[datetime], int]) -> PolicyDecision:
    """Run the pre-parse checks for one submission attempt.

    ``count_since(ts)`` returns how many submissions the submitting user
    already made for this task at or after ``ts``.
    """
    status = task_status(task, now)
    if status == "upcoming":
        raise NotStartedError("Task has not started yet", start_date=task.start_date.isoformat())
    if status == "ended":
        raise EndedError("Task has ended", end_date=task.end_date.isoformat())

    if not task.answer_file_path:
        raise AnswerUnavailableError("Answer file not available")

    if task.use_custom_scoring and not (task.custom_scoring_code or "").strip():
        raise ScoringNotConfiguredError("Custom scoring is enabled but no scoring code is stored")
    metric = resolve_metric(task)

    limit = daily_limit(task)
    used = count_since(start_of_utc_day(now))
    if used >= limit:
        raise QuotaExceededError(limit)

    return PolicyDecision(
        metric=metric,
        higher_is_better=higher_is_better(task, metric),
        limit=limit,
        used_today=used,
    )
