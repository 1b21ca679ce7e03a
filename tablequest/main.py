"""Main FastAPI application for TableQuest multiplication practice."""
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session
from tablequest.routers import practice, profiles
from tablequest.db.init_db import init_db
from tablequest.db.database import get_db
from tablequest.logging_config import setup_logging, get_logger
from tablequest.config import settings
from tablequest.constants import DEFAULT_LOG_LEVEL, DEFAULT_RATE_LIMIT
from tablequest.rate_limit import limiter

# Set up logging on module import
log_level = settings.LOG_LEVEL if settings.LOG_LEVEL else None
setup_logging(log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database on startup.

    This function runs once when the application starts, performing:
    - Table creation
    - Pending schema migrations
    - App state seeding
    """
    logger.info("Application startup initiated")
    try:
        init_db()
        logger.info("Database initialization completed successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        raise

    yield

    app.state.practice_sessions.clear()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="TableQuest API",
    description="""
    Adaptive multiplication-table practice for young learners.

    ## Features

    - **Three modes**: one times table, a set of chosen numbers, or a difficulty tier
    - **Adaptive difficulty**: the tier moves up or down based on the last 10 answers
    - **Stars and badges**: 10 stars per correct answer, 15 on a perfect streak
    - **Mastery tiers**: each table is rated 1 (Beginner) to 5 (Master)
    - **Local profiles**: several learners can share one device

    ## Session Flow

    1. **Pick a profile**: POST `/api/profiles` or `/api/profiles/{id}/activate`
    2. **Start**: POST `/api/session/start` returns the first question
    3. **Answer**: POST `/api/session/answer`, then `/api/session/question` for the next one
    4. **Adapt**: POST `/api/session/adjust` between questions (adaptive tier only)
    5. **Finish**: POST `/api/session/finish` to record stars, statistics and badges
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_tags=[
        {
            "name": "profiles",
            "description": "Learner profiles, settings, badges and dashboard"
        },
        {
            "name": "practice",
            "description": "Practice session lifecycle"
        },
        {
            "name": "health",
            "description": "Service health and readiness checks"
        }
    ]
)

# In-progress practice sessions, keyed by profile id
app.state.practice_sessions = {}

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

if settings.RATE_LIMIT_ENABLED:
    logger.info(f"Rate limiting enabled: default {DEFAULT_RATE_LIMIT} per IP")
else:
    logger.info("Rate limiting disabled")

# Include routers
app.include_router(profiles.router)
app.include_router(practice.router)


@app.get("/health", tags=["health"])
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint with database verification.

    Returns:
        200 OK: Service is healthy and database is accessible
        503 Service Unavailable: Database connection failed

    Example Response (Healthy):
        {
            "status": "healthy",
            "database": "connected",
            "timestamp": "2026-03-02T10:30:00.000000Z",
            "environment": "development",
            "active_sessions": 1
        }
    """
    timestamp = datetime.utcnow().isoformat() + "Z"

    try:
        db.execute(text("SELECT 1"))
        logger.debug("Health check passed")

        return {
            "status": "healthy",
            "database": "connected",
            "timestamp": timestamp,
            "environment": settings.ENVIRONMENT,
            "active_sessions": len(app.state.practice_sessions)
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)

        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
                "timestamp": timestamp
            }
        )


@app.get("/readiness", tags=["health"])
async def readiness_check(db: Session = Depends(get_db)):
    """Readiness check: 200 when the database answers, 503 otherwise."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "timestamp": datetime.utcnow().isoformat() + "Z"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": str(e)}
        )


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        "tablequest.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=(settings.LOG_LEVEL or DEFAULT_LOG_LEVEL).lower(),
    )


if __name__ == "__main__":
    run()
