import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./arena.db")

    # Redis / Celery (deferred scoring only)
    CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/1")
    CELERY_RESULT_BACKEND: str = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/1")

    # Supabase storage (all from env)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    ANSWERS_BUCKET: str = os.getenv("ANSWERS_BUCKET", "answers")
    SUBMISSIONS_BUCKET: str = os.getenv("SUBMISSIONS_BUCKET", "submissions")

    # Docker socket configuration
    DOCKER_SOCKET: str = os.getenv("DOCKER_SOCKET", "unix:///var/run/docker.sock")

    # Custom scorer sandbox
    SCORER_IMAGE: str = os.getenv("SCORER_IMAGE", "python:3.12-slim")
    SCORER_TIMEOUT_SECONDS: float = float(os.getenv("SCORER_TIMEOUT_SECONDS", "10"))
    SCORER_MEMORY_LIMIT: str = os.getenv("SCORER_MEMORY_LIMIT", "256m")
    SCORER_PIDS_LIMIT: int = int(os.getenv("SCORER_PIDS_LIMIT", "32"))
    SCORER_CPU_QUOTA: int = int(os.getenv("SCORER_CPU_QUOTA", "50000"))

    # Submission policy
    DEFAULT_MAX_SUBMISSIONS_PER_DAY: int = int(os.getenv("DEFAULT_MAX_SUBMISSIONS_PER_DAY", "5"))
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

    # "sync" scores inside the request; "deferred" queues a Celery task
    SCORING_MODE: str = os.getenv("SCORING_MODE", "sync")

    class Config:
        # Let BaseSettings read from project .env if present (local dev).
        env_file = ".env"


settings = Settings()
