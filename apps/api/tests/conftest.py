"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
- Recording message senders and small model factories
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Must be set before clinicflow.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["RESEND_API_KEY"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinicflow.core.deps import COOKIE_NAME, get_db
from clinicflow.core.security import create_session_token
from clinicflow.db.base import Base
from clinicflow.db.enums import Role
from clinicflow.db.models import Client, Organization, Workflow
from clinicflow.main import app
from clinicflow.services.message_senders import Senders, SendResult


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session on a private in-memory database.

    StaticPool keeps the single connection alive so every session (and the
    app under test) sees the same tables.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()

    yield session

    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Clinic",
        slug=f"test-clinic-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def other_org(db: Session) -> Organization:
    """A second tenant, for isolation tests."""
    org = Organization(
        id=uuid.uuid4(),
        name="Other Clinic",
        slug=f"other-clinic-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_client(db: Session, test_org: Organization):
    """Insert a client row directly (no workflow triggers)."""

    def _make(org: Organization | None = None, **overrides) -> Client:
        values = {
            "organization_id": (org or test_org).id,
            "full_name": "Jane Doe",
            "email": f"jane-{uuid.uuid4().hex[:6]}@example.com",
            "phones": ["+15555550100"],
            "tags": [],
        }
        values.update(overrides)
        client = Client(**values)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    return _make


@pytest.fixture
def make_workflow(db: Session, test_org: Organization):
    """Insert a workflow row directly (bypasses graph validation)."""

    def _make(org: Organization | None = None, **overrides) -> Workflow:
        values = {
            "organization_id": (org or test_org).id,
            "name": f"Workflow {uuid.uuid4().hex[:6]}",
            "trigger": "manual",
            "is_enabled": True,
            "blocks": [],
            "connections": [],
        }
        values.update(overrides)
        workflow = Workflow(**values)
        db.add(workflow)
        db.commit()
        db.refresh(workflow)
        return workflow

    return _make


# =============================================================================
# Message Senders
# =============================================================================

@dataclass
class RecordingSender:
    """Sender double that records calls and returns a canned result."""
    channel: str
    fail_for: set[str] = field(default_factory=set)
    sent: list[dict] = field(default_factory=list)
    key: str = "recording"

    async def send(self, to: str, body: str, subject: str | None = None) -> SendResult:
        self.sent.append({"to": to, "body": body, "subject": subject})
        if to in self.fail_for:
            return SendResult(success=False, error="Provider rejected recipient")
        return SendResult(success=True, external_id=f"{self.channel}-{len(self.sent)}")


@pytest.fixture
def senders() -> Senders:
    return Senders(email=RecordingSender("email"), sms=RecordingSender("sms"))


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user_id: uuid.UUID
    org: Organization
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(test_org: Organization) -> TestAuth:
    """Create an admin JWT for test_org."""
    user_id = uuid.uuid4()
    token = create_session_token(
        user_id=user_id,
        org_id=test_org.id,
        role=Role.ADMIN.value,
    )
    return TestAuth(user_id=user_id, org=test_org, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()
