"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite schema per test
- Organization / contact / appointment factories
- HTTPX AsyncClient wired to the app with the test session
"""
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

# Must be set before clientflow modules read settings
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENV"] = "test"
for _key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "SENDGRID_API_KEY", "SENTRY_DSN"):
    os.environ[_key] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from clientflow.core.deps import get_db
from clientflow.db.base import Base
from clientflow.db.enums import AppointmentStatus
from clientflow.db.models import Appointment, Contact, Organization
from clientflow.db.session import SessionLocal, engine
from clientflow.main import app


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates the schema, yields a session, then drops everything.

    App code commits freely; isolation comes from rebuilding the schema.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Organization",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
        timezone="UTC",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def other_org(db: Session) -> Organization:
    org = Organization(
        id=uuid.uuid4(),
        name="Other Organization",
        slug=f"other-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def test_contact(db: Session, test_org: Organization) -> Contact:
    contact = Contact(
        organization_id=test_org.id,
        first_name="Dana",
        last_name="Reyes",
        phone="+15555550123",
        email="dana@example.com",
    )
    db.add(contact)
    db.commit()
    return contact


@pytest.fixture
def make_appointment(db: Session, test_org: Organization, test_contact: Contact):
    """Factory: appointment for the test contact starting `in_` from now."""

    def _make(
        in_: timedelta,
        *,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        now: datetime | None = None,
        contact: Contact | None = test_contact,
        org: Organization = test_org,
    ) -> Appointment:
        now = now or datetime.now(timezone.utc)
        appointment = Appointment(
            organization_id=org.id,
            contact_id=contact.id if contact else None,
            starts_at=now + in_,
            status=status.value,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Async client with the app's database dependency pointed at the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def org_headers(test_org: Organization) -> dict[str, str]:
    return {"X-Org-Id": str(test_org.id)}
