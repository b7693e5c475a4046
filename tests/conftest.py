import os
from datetime import datetime, timedelta

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import arena.models  # noqa: F401
from arena.core.errors import StorageError
from arena.core.time import utcnow
from arena.db.base import Base
from arena.models import Task, User

ANSWER_PATH = "task-1/answer.csv"


class MemoryBlobStore:
    """In-memory stand-in for a Supabase bucket."""

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.removed = []
        self.fail_downloads = False
        self.fail_uploads = False

    def download(self, path):
        if self.fail_downloads or path not in self.files:
            raise StorageError(f"Failed to download {path}", path=path)
        return self.files[path]

    def upload(self, path, data, content_type):
        if self.fail_uploads:
            raise StorageError(f"Failed to upload {path}", path=path)
        self.files[path] = data

    def remove(self, path):
        self.removed.append(path)
        self.files.pop(path, None)


class FakeSandbox:
    def __init__(self, result=1.0):
        self.result = result
        self.calls = []

    def score(self, code, answer_rows, submission_rows, task_id=None):
        self.calls.append((code, answer_rows, submission_rows, task_id))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def csv_bytes(header, values):
    lines = [header] + [str(v) for v in values]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'arena.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def answer_store():
    return MemoryBlobStore({ANSWER_PATH: csv_bytes("id,target", ["1,1.0", "2,4.0"])})


@pytest.fixture
def file_store():
    return MemoryBlobStore()


@pytest.fixture
def sandbox():
    return FakeSandbox()


@pytest.fixture
def make_task(db):
    def _make(**overrides):
        fields = {
            "id": "task-1",
            "slug": "task-one",
            "title": "Task one",
            "start_date": datetime(2026, 1, 1),
            "end_date": datetime(2026, 1, 10),
            "evaluation_metric": "rmse",
            "answer_file_path": ANSWER_PATH,
            "max_submissions_per_day": 5,
            "use_custom_scoring": False,
            "custom_scoring_code": None,
            "custom_higher_is_better": True,
        }
        fields.update(overrides)
        task = Task(**fields)
        db.add(task)
        db.commit()
        return task

    return _make


@pytest.fixture
def active_window():
    now = utcnow()
    return {"start_date": now - timedelta(days=1), "end_date": now + timedelta(days=1)}


@pytest.fixture
def make_user(db):
    def _make(user_id, **fields):
        user = User(id=user_id, email=fields.pop("email", f"{user_id}@example.com"), **fields)
        db.add(user)
        db.commit()
        return user

    return _make
