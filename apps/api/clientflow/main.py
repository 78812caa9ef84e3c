"""FastAPI application entry point."""

import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clientflow.core.config import settings
from clientflow.core.deps import get_db
from clientflow.core.monitoring import setup_monitoring
from clientflow.core.rate_limit import limiter
from clientflow.routers import appointments, automations, internal, jobs, sla
from clientflow.services import job_service

logger = logging.getLogger(__name__)

monitoring = setup_monitoring("clientflow-api", with_fastapi=True)

app = FastAPI(
    title="ClientFlow API",
    description="Scheduled reminders and CRM automations",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Org-Id", "X-Internal-Secret", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)

app.include_router(automations.router)
app.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
app.include_router(sla.router, prefix="/sla", tags=["sla"])
app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Verifies database connectivity and reports queue depth, including the
    dead-letter count.
    """
    try:
        db.execute(text("SELECT 1"))
        stats = job_service.get_queue_stats(db)
    except SQLAlchemyError as e:
        logger.error("Health check database error: %s", type(e).__name__)
        return {
            "status": "degraded",
            "env": settings.ENV,
            "version": settings.VERSION,
            "database": "unavailable",
        }
    return {
        "status": "ok",
        "env": settings.ENV,
        "version": settings.VERSION,
        "database": "ok",
        "queue": stats,
    }
