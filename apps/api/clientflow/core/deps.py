"""FastAPI dependencies for database sessions and organization scoping."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from clientflow.core.config import settings
from clientflow.db.models import Organization
from clientflow.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_org(
    x_org_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Organization:
    """Resolve the organization named by the X-Org-Id header."""
    if not x_org_id:
        raise HTTPException(status_code=400, detail="X-Org-Id header is required")
    try:
        org_id = UUID(x_org_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Org-Id must be a UUID")
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


def verify_internal_secret(x_internal_secret: str | None = Header(default=None)) -> None:
    """Verify the internal secret header used by cron callers."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")
