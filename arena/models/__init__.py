from arena.models.task import Task, User
from arena.models.submission import Submission

__all__ = ["Task", "User", "Submission"]
