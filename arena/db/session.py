import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from arena.core.config import settings
from arena.db.base import Base

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> dict:
    if url.startswith("postgresql://"):
        return {"connect_timeout": 30}
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a threadpool
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def get_db():
    """Dependency for FastAPI to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create tables.

    If the DB is temporarily unreachable, skip creation so the API can start;
    DB-backed endpoints fail until it returns.
    """
    import arena.models  # noqa: F401  registers tables on Base.metadata

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.warning("init_db_create_all_failed", extra={"reason": str(e)})
