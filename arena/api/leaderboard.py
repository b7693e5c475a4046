from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from arena.db.session import get_db
from arena.services.leaderboard import get_task_leaderboard

router = APIRouter()


@router.get("/tasks/{task_id}/leaderboard")
def get_leaderboard(task_id: str, db: Session = Depends(get_db)):
    """Best score per user for a task, ranked. Recomputed on every call."""
    return get_task_leaderboard(db, task_id)
