from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response
from arena.api import submissions, leaderboard
from arena.core.errors import ScoringError
from arena.db.session import init_db
from arena.core.metrics import init_fastapi_instrumentation
from arena.core.logging_config import setup_logging
import datetime
import logging
import os
import time
from uuid import uuid4

# Configure logging (JSON)
setup_logging()

app = FastAPI(
    title="Arena Scoring",
    description="Scores CSV prediction files and ranks participants per task",
    version="1.0.0"
)

init_fastapi_instrumentation(app)

# CORS for the separately hosted frontend
_cors_origins_env = os.getenv("CORS_ORIGINS", "*")
_cors_origins = [o.strip() for o in _cors_origins_env.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if "*" in _cors_origins else _cors_origins,
    allow_credentials=False if "*" in _cors_origins else True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    init_db()
    logging.getLogger(__name__).info("Database initialized")


@app.exception_handler(ScoringError)
async def scoring_error_handler(request: Request, exc: ScoringError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    logger = logging.getLogger("request")
    start = time.perf_counter()
    extra = {
        "request_id": str(uuid4()),
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else "-",
    }
    try:
        response = await call_next(request)
    except Exception:
        extra.update(status_code=500, duration_ms=int((time.perf_counter() - start) * 1000))
        logger.exception("request_failed", extra=extra)
        raise
    extra.update(
        status_code=getattr(response, "status_code", 0),
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    logger.info("request_completed", extra=extra)
    return response


# Include API routes
app.include_router(submissions.router, prefix="/api", tags=["submissions"])
app.include_router(leaderboard.router, prefix="/api", tags=["leaderboard"])


@app.get("/metrics", include_in_schema=False)
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health_check():
    """Liveness + readiness: verify the database and answer storage.

    Returns JSON with overall status and component statuses.
    """
    from sqlalchemy import text
    from arena.core.config import settings
    from arena.db.session import engine
    from arena.core.client import get_supabase_client

    logger = logging.getLogger(__name__)
    statuses: dict[str, str] = {}

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        statuses["database"] = "ok"
    except Exception as e:
        statuses["database"] = f"error: {e}"

    try:
        get_supabase_client().storage.from_(settings.ANSWERS_BUCKET).list()
        statuses["storage"] = "ok"
    except Exception as e:
        statuses["storage"] = f"error: {e}"

    healthy = all(v == "ok" for v in statuses.values())
    now = datetime.datetime.now(datetime.timezone.utc).isoformat()
    if healthy:
        logger.info("health_check_passed", extra={"stage": "health"})
    else:
        logger.error(f"health_check_failed: {statuses}", extra={"stage": "health"})

    return {
        "status": "healthy" if healthy else "unhealthy",
        "components": statuses,
        "timestamp": now,
    }
