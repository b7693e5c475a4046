from sqlalchemy import Column, String, Float, DateTime, ForeignKey
from arena.db.base import Base
from arena.core.time import utcnow


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, index=True)
    task_id = Column(String, ForeignKey("tasks.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    file_path = Column(String, nullable=False)
    score = Column(Float, nullable=True)  # null until scored
    status = Column(String, default="completed")  # pending, completed, failed
    error = Column(String, nullable=True)
    submitted_at = Column(DateTime, default=utcnow, index=True)
