from datetime import datetime

import pytest

from arena.core.errors import SandboxError, StorageError, SubmissionNotFoundError
from arena.services import store
from arena.services.evaluation import score_submission

from conftest import FakeSandbox, csv_bytes

SUBMITTED = datetime(2026, 1, 5, 8, 0)


def pending(db, file_store, data, user_id="alice"):
    path = f"task-1/{user_id}/1-x.csv"
    file_store.files[path] = data
    return store.insert_submission(db, "task-1", user_id, path, None, status="pending", submitted_at=SUBMITTED)


def run(db, submission, answer_store, file_store, sandbox=None):
    return score_submission(
        submission.id,
        db=db,
        answer_store=answer_store,
        submission_file_store=file_store,
        sandbox=sandbox or FakeSandbox(),
    )


def test_pending_submission_is_scored(db, make_task, answer_store, file_store):
    make_task(evaluation_metric="accuracy")
    sub = pending(db, file_store, csv_bytes("id,target", ["1,1.0", "2,0"]))

    result = run(db, sub, answer_store, file_store)

    assert result == {"status": "completed", "score": 0.5}
    db.refresh(sub)
    assert sub.status == "completed"
    assert sub.score == 0.5
    assert sub.error is None


def test_validation_failure_marks_record_failed(db, make_task, answer_store, file_store):
    make_task()
    sub = pending(db, file_store, csv_bytes("id,target", ["1,1.0"]))

    result = run(db, sub, answer_store, file_store)

    assert result["status"] == "failed"
    db.refresh(sub)
    assert sub.status == "failed"
    assert sub.score is None
    assert "Row count mismatch" in sub.error


def test_custom_scoring_uses_sandbox(db, make_task, answer_store, file_store):
    make_task(use_custom_scoring=True, custom_scoring_code="def score(a, s): return 7")
    sub = pending(db, file_store, csv_bytes("id,target", ["1,1", "2,2"]))

    result = run(db, sub, answer_store, file_store, sandbox=FakeSandbox(result=7.0))

    assert result == {"status": "completed", "score": 7.0}


@pytest.mark.parametrize("error", [SandboxError("docker down"), StorageError("bucket down")])
def test_incidents_leave_record_pending(db, make_task, answer_store, file_store, error):
    make_task(use_custom_scoring=True, custom_scoring_code="def score(a, s): return 7")
    sub = pending(db, file_store, csv_bytes("id,target", ["1,1", "2,2"]))

    with pytest.raises(type(error)):
        run(db, sub, answer_store, file_store, sandbox=FakeSandbox(result=error))

    db.refresh(sub)
    assert sub.status == "pending"


def test_missing_submission_file_is_an_incident(db, make_task, answer_store, file_store):
    make_task()
    sub = pending(db, file_store, b"")
    file_store.files.clear()
    with pytest.raises(StorageError):
        run(db, sub, answer_store, file_store)


def test_already_scored_submission_is_skipped(db, make_task, answer_store, file_store):
    make_task()
    sub = store.insert_submission(db, "task-1", "alice", "p.csv", 1.5, submitted_at=SUBMITTED)
    sandbox = FakeSandbox()

    result = run(db, sub, answer_store, file_store, sandbox=sandbox)

    assert result == {"status": "completed", "score": 1.5}


def test_unknown_submission(db, answer_store, file_store):
    with pytest.raises(SubmissionNotFoundError):
        score_submission("missing", db=db, answer_store=answer_store,
                         submission_file_store=file_store, sandbox=FakeSandbox())


@pytest.fixture
def worker_db(monkeypatch, session_factory):
    import arena.services.evaluation as evaluation

    monkeypatch.setattr(evaluation, "SessionLocal", session_factory)
    return evaluation


def test_exhausted_retries_mark_record_failed(db, make_task, file_store, worker_db, monkeypatch):
    from arena.core.celery import score_submission_task

    make_task()
    sub = pending(db, file_store, b"")

    def sandbox_down(submission_id):
        raise SandboxError("docker down")

    monkeypatch.setattr(worker_db, "score_submission", sandbox_down)
    result = score_submission_task.apply(args=[sub.id], retries=score_submission_task.max_retries)

    assert result.failed()
    db.expire_all()
    stored = store.get_submission(db, sub.id)
    assert stored.status == "failed"
    assert stored.error == "System error: docker down"


def test_unexpected_worker_error_marks_record_failed(db, make_task, file_store, worker_db, monkeypatch):
    from arena.core.celery import score_submission_task

    make_task()
    sub = pending(db, file_store, b"")

    def broken(submission_id):
        raise RuntimeError("lost connection to docker")

    monkeypatch.setattr(worker_db, "score_submission", broken)
    result = score_submission_task.apply(args=[sub.id])

    assert result.failed()
    db.expire_all()
    stored = store.get_submission(db, sub.id)
    assert stored.status == "failed"
    assert "lost connection to docker" in stored.error


def test_mark_failed_leaves_finished_records_alone(db, make_task, worker_db):
    make_task()
    sub = store.insert_submission(db, "task-1", "alice", "p.csv", 2.0, submitted_at=SUBMITTED)

    worker_db.mark_failed(sub.id, "System error: late")

    db.expire_all()
    assert store.get_submission(db, sub.id).status == "completed"


def test_scoring_task_is_registered_on_the_app():
    from arena.core.celery import celery_app, score_submission_task

    assert not celery_app.conf.include
    assert score_submission_task.name in celery_app.tasks
