from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text
from arena.db.base import Base
from arena.core.time import utcnow


class User(Base):
    """Display fields only; identity lives with the external auth provider."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, nullable=False, default="")
    username = Column(String, nullable=True)
    name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    cohort = Column(Integer, nullable=True)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True)
    title = Column(String, nullable=False, default="")
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    evaluation_metric = Column(String, nullable=True)  # rmse | accuracy | f1 | auc | map50
    answer_file_path = Column(String, nullable=True)
    max_submissions_per_day = Column(Integer, nullable=True)
    use_custom_scoring = Column(Boolean, nullable=False, default=False)
    custom_scoring_code = Column(Text, nullable=True)
    custom_higher_is_better = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
